"""
Order Explosion Engine

Turns a top-level manufacturing order into a tree of draft child orders,
one per BOM item, multiplying quantities down the tree:

    child.quantity = bom_item.quantity × order.quantity × inherited multiplier

The inherited multiplier is the product of the BOM quantities between
the order's root item and the current item, so a leaf's quantity is the
order quantity times every quantity on its path.

A child whose item has its own primary BOM is re-rooted: it takes that
BOM and is exploded from that BOM's root. The whole call, nested
re-rooted explosions included, is one transaction.
"""
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from mesflow.core.status_config import OrderStatus
from mesflow.db.session import transactional
from mesflow.exceptions import InvalidStateError, StructuralError
from mesflow.logging_config import get_logger
from mesflow.models import BomItem, ManufacturingOrder
from mesflow.services.bom_service import get_primary_bom, require_root_item
from mesflow.services.completion import refresh_child_counters
from mesflow.services.event_service import record_production_event
from mesflow.services.order_numbering import generate_child_order_number

logger = get_logger(__name__)


class OrderExplosionService:
    """
    Explodes manufacturing orders against their bills of material.

    Usage:
        created = OrderExplosionService(db).explode(order)
    """

    def __init__(self, db: Session, numbering_mode: Optional[str] = None):
        self.db = db
        self.numbering_mode = numbering_mode

    def explode(self, order: ManufacturingOrder, actor_id: Optional[int] = None) -> List[ManufacturingOrder]:
        """
        Create the order's child tree.

        Returns:
            Every order created, in creation order (depth-first)

        Raises:
            StructuralError: no BOM, no current version, no single root, root
                item differs from the order item, or a BOM cycle
            InvalidStateError: the order already has children or is not a draft
        """
        if order.bill_of_material is None:
            raise StructuralError(f"Order {order.order_number} has no bill of material")
        if order.status != OrderStatus.DRAFT:
            raise InvalidStateError(
                f"Only draft orders can be exploded; {order.order_number} is {order.status}",
                current_state=order.status,
                allowed_states=[OrderStatus.DRAFT.value],
            )
        if order.children:
            raise InvalidStateError(f"Order {order.order_number} has already been exploded")

        logger.info(
            f"Exploding order {order.order_number}",
            extra={"order_id": order.id, "bom_id": order.bill_of_material_id, "quantity": str(order.quantity)},
        )
        created: List[ManufacturingOrder] = []
        with transactional(self.db):
            self._explode_order(order, actor_id, bom_path=(), created=created)

        logger.info(
            f"Exploded order {order.order_number} into {len(created)} child orders",
            extra={"order_id": order.id, "child_order_count": len(created)},
        )
        return created

    def _explode_order(
        self,
        order: ManufacturingOrder,
        actor_id: Optional[int],
        bom_path: Sequence[int],
        created: List[ManufacturingOrder],
    ) -> None:
        bom = order.bill_of_material
        if bom.id in bom_path:
            raise StructuralError(
                f"BOM {bom.bom_number} contains itself through its components",
                bom_id=bom.id,
                details={"bom_path": list(bom_path) + [bom.id]},
            )
        root = require_root_item(bom, order.item_id)
        self._explode_children(
            anchor=root,
            parent_order=order,
            top_order=order,
            multiplier=Decimal("1"),
            actor_id=actor_id,
            bom_path=tuple(bom_path) + (bom.id,),
            created=created,
        )

    def _explode_children(
        self,
        anchor: BomItem,
        parent_order: ManufacturingOrder,
        top_order: ManufacturingOrder,
        multiplier: Decimal,
        actor_id: Optional[int],
        bom_path: Sequence[int],
        created: List[ManufacturingOrder],
    ) -> None:
        base_quantity = Decimal(str(top_order.quantity))

        for bom_item in sorted(anchor.children, key=lambda i: (i.sequence_number, i.id)):
            item_quantity = Decimal(str(bom_item.quantity))
            child = self._create_child(
                parent_order=parent_order,
                top_order=top_order,
                bom_item=bom_item,
                quantity=item_quantity * base_quantity * multiplier,
                actor_id=actor_id,
            )
            created.append(child)

            primary_bom = get_primary_bom(self.db, bom_item.item_id)
            if primary_bom is not None:
                logger.info(
                    f"Re-rooting {child.order_number} into BOM {primary_bom.bom_number}",
                    extra={"order_id": child.id, "bom_id": primary_bom.id},
                )
                child.bill_of_material = primary_bom
                self.db.flush()
                self._explode_order(child, actor_id, bom_path, created)
            else:
                self._explode_children(
                    anchor=bom_item,
                    parent_order=child,
                    top_order=top_order,
                    multiplier=multiplier * item_quantity,
                    actor_id=actor_id,
                    bom_path=bom_path,
                    created=created,
                )

            refresh_child_counters(self.db, child)

        refresh_child_counters(self.db, parent_order)

    def _create_child(
        self,
        parent_order: ManufacturingOrder,
        top_order: ManufacturingOrder,
        bom_item: BomItem,
        quantity: Decimal,
        actor_id: Optional[int],
    ) -> ManufacturingOrder:
        child = ManufacturingOrder(
            order_number=generate_child_order_number(self.db, parent_order, self.numbering_mode),
            item_id=bom_item.item_id,
            bom_item_id=bom_item.id,
            parent=parent_order,
            quantity=quantity,
            unit_of_measure=bom_item.unit_of_measure,
            status=OrderStatus.DRAFT.value,
            priority=top_order.priority,
            requested_date=top_order.requested_date,
            created_by=top_order.created_by,
            auto_complete_on_children=top_order.auto_complete_on_children,
        )
        self.db.add(child)
        self.db.flush()

        record_production_event(
            self.db,
            manufacturing_order_id=child.id,
            event_type="order_created",
            title=f"Order {child.order_number} created by explosion",
            actor_id=actor_id,
            payload={"parent_order_id": parent_order.id, "bom_item_id": bom_item.id},
        )
        return child


def explode(db: Session, order: ManufacturingOrder, actor_id: Optional[int] = None) -> List[ManufacturingOrder]:
    """Shortcut for ``OrderExplosionService(db).explode(order)``."""
    return OrderExplosionService(db).explode(order, actor_id=actor_id)
