"""
Routing Resolver

Finds the routing that governs a BOM item or order: the node's own
active routing, else the nearest ancestor's. Results are cached per node
and invalidated synchronously whenever a routing is attached, overridden
or deactivated.
"""
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from mesflow.core.status_config import RoutingType, StepType
from mesflow.db.session import transactional
from mesflow.exceptions import InvalidStateError, NotFoundError, ValidationError
from mesflow.logging_config import get_logger
from mesflow.models import (
    BomItem,
    BomVersion,
    ManufacturingOrder,
    ManufacturingRoute,
    ProductionRouting,
    RoutingStep,
    WorkCell,
)
from mesflow.schemas.routing import (
    EffectiveStep,
    InheritanceTreeNode,
    ResolvedRouting,
    RoutingValidationIssue,
)
from mesflow.services.routing_cache import MISSING, RoutingCache, routing_cache
from mesflow.services.step_state_machine import add_step

logger = get_logger(__name__)

CYCLE_TIME_MULTIPLIER_KEY = "cycle_time_multiplier"


class RoutingResolver:
    """
    Routing lookup for BOM items and orders.

    Usage:
        resolver = RoutingResolver(db)
        routing = resolver.resolve(bom_item)
        steps = resolver.effective_steps(bom_item)
    """

    def __init__(self, db: Session, cache: Optional[RoutingCache] = None):
        self.db = db
        self.cache = cache if cache is not None else routing_cache

    # ========================================================================
    # RESOLUTION
    # ========================================================================

    def resolve(self, bom_item: BomItem) -> Optional[ProductionRouting]:
        """Own active routing, else the nearest ancestor's, else None."""
        key = ("bom_item", bom_item.id)
        cached = self.cache.get(key)
        if cached is not MISSING:
            if cached is None:
                return None
            routing = self.db.get(ProductionRouting, cached)
            if routing is not None and routing.is_active:
                return routing
            self.cache.invalidate(key)

        routing = self._own_routing(bom_item)
        if routing is None and bom_item.parent is not None:
            routing = self.resolve(bom_item.parent)

        self.cache.set(key, routing.id if routing else None)
        return routing

    def resolve_source(self, bom_item: BomItem) -> Optional[BomItem]:
        """The BOM item whose own routing ``resolve`` returns."""
        node = bom_item
        while node is not None:
            if self._own_routing(node) is not None:
                return node
            node = node.parent
        return None

    def resolve_for_order(self, order: ManufacturingOrder) -> Optional[ManufacturingRoute]:
        """The order's own active route, else the nearest ancestor order's."""
        key = ("order", order.id)
        cached = self.cache.get(key)
        if cached is not MISSING:
            if cached is None:
                return None
            route = self.db.get(ManufacturingRoute, cached)
            if route is not None and route.is_active:
                return route
            self.cache.invalidate(key)

        route = order.active_route
        if route is None and order.parent is not None:
            route = self.resolve_for_order(order.parent)

        self.cache.set(key, route.id if route else None)
        return route

    def _own_routing(self, bom_item: BomItem) -> Optional[ProductionRouting]:
        return (
            self.db.query(ProductionRouting)
            .filter(
                ProductionRouting.bom_item_id == bom_item.id,
                ProductionRouting.is_active.is_(True),
            )
            .order_by(ProductionRouting.id.desc())
            .first()
        )

    # ========================================================================
    # STEPS
    # ========================================================================

    def routing_steps(self, routing: ProductionRouting) -> List[RoutingStep]:
        """
        Steps a routing runs.

        An inherited routing without steps of its own runs its parent
        routing's steps.
        """
        seen = set()
        current = routing
        while current is not None and current.id not in seen:
            seen.add(current.id)
            if current.steps or current.routing_type != RoutingType.INHERITED:
                return list(current.steps)
            current = current.parent_routing
        return []

    def effective_steps(self, bom_item: BomItem) -> List[EffectiveStep]:
        """
        Resolved steps with the item's cycle time multiplier applied.

        Stored steps are never modified.
        """
        routing = self.resolve(bom_item)
        if routing is None:
            return []

        multiplier = Decimal(str(bom_item.item.get_attribute(CYCLE_TIME_MULTIPLIER_KEY, 1) or 1))
        return [
            EffectiveStep(
                routing_step_id=step.id,
                step_number=step.step_number,
                name=step.name,
                work_cell_id=step.work_cell_id,
                setup_time=float(step.setup_time or 0),
                cycle_time=float(Decimal(str(step.cycle_time or 0)) * multiplier),
                tear_down_time=float(step.tear_down_time or 0),
                step_type=step.step_type,
                quality_check_mode=step.quality_check_mode,
                sampling_size=step.sampling_size,
            )
            for step in self.routing_steps(routing)
        ]

    def resolve_details(self, bom_item: BomItem) -> ResolvedRouting:
        routing = self.resolve(bom_item)
        source = self.resolve_source(bom_item) if routing else None
        return ResolvedRouting(
            bom_item_id=bom_item.id,
            routing_id=routing.id if routing else None,
            source_bom_item_id=source.id if source else None,
            inherited=bool(routing and (source is None or source.id != bom_item.id or routing.is_inherited)),
            steps=self.effective_steps(bom_item),
        )

    # ========================================================================
    # DIAGNOSTICS
    # ========================================================================

    def inheritance_tree(self, bom_item: BomItem) -> List[InheritanceTreeNode]:
        """
        Walk from the item toward the root, stopping at the first node with
        a 'defined' routing.
        """
        tree = []
        current = bom_item
        while current is not None:
            routing = current.routing
            tree.append(InheritanceTreeNode(
                bom_item_id=current.id,
                item_id=current.item_id,
                level=current.level,
                routing_id=routing.id if routing else None,
                routing_number=routing.routing_number if routing else None,
                routing_type=routing.routing_type if routing else None,
            ))
            if routing is not None and routing.routing_type == RoutingType.DEFINED:
                break
            current = current.parent
        return tree

    def validate_bom_routing(self, version: BomVersion) -> List[RoutingValidationIssue]:
        """BOM items of a version that resolve to no routing."""
        return [
            RoutingValidationIssue(
                bom_item_id=bom_item.id,
                item_id=bom_item.item_id,
                issue="No routing defined or inherited",
            )
            for bom_item in version.items
            if self.resolve(bom_item) is None
        ]

    def validate_routing_resources(self, routing: ProductionRouting) -> List[RoutingValidationIssue]:
        """Steps whose work cell is missing or inactive."""
        issues = []
        for step in self.routing_steps(routing):
            cell = step.work_cell
            if cell is None:
                issue = f"Step {step.step_number} has no work cell"
            elif not cell.is_active:
                issue = f"Work cell {cell.code} for step {step.step_number} is inactive"
            else:
                continue
            issues.append(RoutingValidationIssue(
                bom_item_id=routing.bom_item_id,
                routing_step_id=step.id,
                work_cell_id=step.work_cell_id,
                issue=issue,
            ))
        return issues

    def items_using_routing(self, routing: ProductionRouting) -> List[BomItem]:
        """BOM items using a routing directly or through inherited routings."""
        items = {}
        if routing.bom_item is not None:
            items[routing.bom_item.id] = routing.bom_item
        inherited = (
            self.db.query(ProductionRouting)
            .filter(ProductionRouting.parent_routing_id == routing.id)
            .all()
        )
        for child in inherited:
            if child.bom_item is not None:
                items.setdefault(child.bom_item.id, child.bom_item)
        return list(items.values())


# =============================================================================
# Routing authoring
# =============================================================================

def generate_routing_number(db: Session, bom_item: BomItem) -> str:
    """Next routing number in format RT-{item_number}-NNN"""
    prefix = f"RT-{bom_item.item.item_number}-"
    count = (
        db.query(func.count(ProductionRouting.id))
        .filter(ProductionRouting.routing_number.like(f"{prefix}%"))
        .scalar()
    )
    return f"{prefix}{(count or 0) + 1:03d}"


def attach_routing(
    db: Session,
    bom_item: BomItem,
    name: str,
    actor_id: Optional[int] = None,
    routing_type: str = RoutingType.DEFINED.value,
    parent_routing: Optional[ProductionRouting] = None,
    description: Optional[str] = None,
    cache: Optional[RoutingCache] = None,
) -> ProductionRouting:
    """
    Attach a new active routing to a BOM item.

    Raises:
        InvalidStateError: the item already has an active routing
    """
    routing_type = RoutingType(routing_type).value
    if bom_item.routing is not None:
        raise InvalidStateError(
            f"BOM item {bom_item.id} already has routing {bom_item.routing.routing_number}",
            current_state=bom_item.routing.routing_type,
        )

    with transactional(db):
        routing = ProductionRouting(
            routing_number=generate_routing_number(db, bom_item),
            name=name,
            description=description,
            bom_item=bom_item,
            routing_type=routing_type,
            parent_routing=parent_routing,
            is_active=True,
            created_by=actor_id,
        )
        db.add(routing)
        db.flush()
        (cache if cache is not None else routing_cache).invalidate_bom_item(bom_item)

    logger.info(
        f"Attached {routing_type} routing {routing.routing_number}",
        extra={"bom_item_id": bom_item.id, "routing_id": routing.id},
    )
    return routing


def add_routing_step(
    db: Session,
    routing: ProductionRouting,
    name: str,
    work_cell: Optional[WorkCell] = None,
    setup_time=0,
    cycle_time=0,
    tear_down_time=0,
    step_type: str = StepType.STANDARD.value,
    quality_check_mode: Optional[str] = None,
    sampling_size: Optional[int] = None,
    step_number: Optional[int] = None,
    description: Optional[str] = None,
) -> RoutingStep:
    """Append a step; it depends on the previous step automatically."""
    for field_name, value in (("setup_time", setup_time), ("cycle_time", cycle_time), ("tear_down_time", tear_down_time)):
        if Decimal(str(value)) < 0:
            raise ValidationError(f"{field_name} cannot be negative", field=field_name, value=value)

    step = RoutingStep(
        step_number=step_number,
        name=name,
        description=description,
        work_cell_id=work_cell.id if work_cell else None,
        setup_time=Decimal(str(setup_time)),
        cycle_time=Decimal(str(cycle_time)),
        tear_down_time=Decimal(str(tear_down_time)),
        step_type=step_type,
        quality_check_mode=quality_check_mode,
        sampling_size=sampling_size,
    )
    siblings = list(routing.steps)
    with transactional(db):
        step.routing = routing
        add_step(db, step, siblings)
    return step


def create_inherited_routing(
    db: Session,
    bom_item: BomItem,
    actor_id: Optional[int] = None,
    parent_routing: Optional[ProductionRouting] = None,
    cache: Optional[RoutingCache] = None,
) -> ProductionRouting:
    """
    Give a BOM item an explicit routing inherited from its ancestors.

    Raises:
        NotFoundError: no ancestor routing to inherit from
    """
    if parent_routing is None:
        if bom_item.parent is None:
            raise NotFoundError("Parent routing", details={"bom_item_id": bom_item.id})
        parent_routing = RoutingResolver(db, cache).resolve(bom_item.parent)
        if parent_routing is None:
            raise NotFoundError("Parent routing", details={"bom_item_id": bom_item.id})

    return attach_routing(
        db,
        bom_item,
        name=f"Inherited: {parent_routing.name}",
        actor_id=actor_id,
        routing_type=RoutingType.INHERITED.value,
        parent_routing=parent_routing,
        description=f"Inherited from parent routing {parent_routing.routing_number}",
        cache=cache,
    )


def override_inherited_routing(
    db: Session,
    bom_item: BomItem,
    actor_id: Optional[int] = None,
    cache: Optional[RoutingCache] = None,
) -> ProductionRouting:
    """
    Promote an inherited routing to a locally defined one.

    The new routing starts with a copy of the inherited steps; the old
    routing is deactivated. Cache entries for the node, its ancestors and
    its subtree are dropped before returning.

    Raises:
        InvalidStateError: the item's routing is not inherited
    """
    cache = cache if cache is not None else routing_cache
    current = bom_item.routing
    if current is None or current.routing_type != RoutingType.INHERITED:
        raise InvalidStateError(
            "BOM item does not have an inherited routing to override",
            current_state=current.routing_type if current else None,
        )

    resolver = RoutingResolver(db, cache)
    source_steps = resolver.routing_steps(current)

    with transactional(db):
        current.is_active = False
        db.flush()

        routing = ProductionRouting(
            routing_number=generate_routing_number(db, bom_item),
            name=f"Custom routing for {bom_item.item.name}",
            description="Overrides inherited routing",
            bom_item=bom_item,
            routing_type=RoutingType.DEFINED.value,
            is_active=True,
            created_by=actor_id,
        )
        db.add(routing)
        db.flush()
        _copy_steps(db, source_steps, routing)
        cache.invalidate_bom_item(bom_item)

    logger.info(
        f"Overrode inherited routing {current.routing_number} with {routing.routing_number}",
        extra={"bom_item_id": bom_item.id, "old_routing_id": current.id, "routing_id": routing.id},
    )
    return routing


def deactivate_routing(
    db: Session,
    routing: ProductionRouting,
    cache: Optional[RoutingCache] = None,
) -> ProductionRouting:
    with transactional(db):
        routing.is_active = False
        if routing.bom_item is not None:
            (cache if cache is not None else routing_cache).invalidate_bom_item(routing.bom_item)
    return routing


def clone_routing_for_item(
    db: Session,
    routing: ProductionRouting,
    bom_item: BomItem,
    actor_id: Optional[int] = None,
    cache: Optional[RoutingCache] = None,
) -> ProductionRouting:
    """Copy a routing and its steps onto another BOM item as a defined routing."""
    source_steps = RoutingResolver(db, cache).routing_steps(routing)
    with transactional(db):
        clone = attach_routing(
            db,
            bom_item,
            name=routing.name,
            actor_id=actor_id,
            description=f"Copied from {routing.routing_number}",
            cache=cache,
        )
        _copy_steps(db, source_steps, clone)
    return clone


def _copy_steps(db: Session, steps: List[RoutingStep], target: ProductionRouting) -> None:
    # Dependencies are re-derived in the copy so they point at copied steps
    for source in sorted(steps, key=lambda s: s.step_number):
        step = RoutingStep(
            step_number=source.step_number,
            name=source.name,
            description=source.description,
            work_cell_id=source.work_cell_id,
            setup_time=source.setup_time,
            cycle_time=source.cycle_time,
            tear_down_time=source.tear_down_time,
            step_type=source.step_type,
            quality_check_mode=source.quality_check_mode,
            sampling_size=source.sampling_size,
        )
        siblings = list(target.steps)
        step.routing = target
        add_step(db, step, siblings)
