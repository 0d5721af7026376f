"""
Manufacturing Order Service

Order lifecycle around the explosion engine:
- create (and explode) orders
- materialize an order's route from a routing
- release, queueing the steps that can start
- cancel, cascading to steps, schedules and child orders
"""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from mesflow.core.status_config import (
    ORDER_TERMINAL_STATUSES,
    SCHEDULE_OPEN_STATUSES,
    STEP_DONE_STATUSES,
    OrderStatus,
    ScheduleStatus,
    StepStatus,
)
from mesflow.db.session import transactional
from mesflow.exceptions import InvalidStateError, ValidationError
from mesflow.logging_config import get_logger
from mesflow.models import (
    BillOfMaterial,
    Item,
    ManufacturingOrder,
    ManufacturingRoute,
    ManufacturingStep,
    ProductionRouting,
)
from mesflow.services.completion import recheck_parent, refresh_child_counters
from mesflow.services.event_service import record_production_event
from mesflow.services.explosion import OrderExplosionService
from mesflow.services.order_numbering import generate_order_number
from mesflow.services.order_status import transition_order
from mesflow.services.routing_cache import routing_cache
from mesflow.services.routing_resolver import RoutingResolver
from mesflow.services.step_state_machine import add_step, queue_ready_steps

logger = get_logger(__name__)

RELEASABLE_STATUSES = {OrderStatus.DRAFT, OrderStatus.PLANNED}


def create_order(
    db: Session,
    item: Item,
    quantity,
    actor_id: Optional[int] = None,
    bill_of_material: Optional[BillOfMaterial] = None,
    priority: int = 50,
    requested_date: Optional[date] = None,
    auto_complete_on_children: bool = True,
    notes: Optional[str] = None,
    explode: bool = True,
) -> ManufacturingOrder:
    """
    Create a top-level order and, when it has a BOM, explode it.

    Creation and explosion commit together or not at all.

    Raises:
        ValidationError: quantity <= 0 or priority outside 0-100
        StructuralError: from the explosion
    """
    quantity = Decimal(str(quantity))
    if quantity <= 0:
        raise ValidationError("Order quantity must be greater than zero", field="quantity", value=quantity)
    if not 0 <= priority <= 100:
        raise ValidationError("Priority must be between 0 and 100", field="priority", value=priority)

    with transactional(db):
        order = ManufacturingOrder(
            order_number=generate_order_number(db),
            item_id=item.id,
            bill_of_material=bill_of_material,
            quantity=quantity,
            unit_of_measure=item.unit_of_measure,
            status=OrderStatus.DRAFT.value,
            priority=priority,
            requested_date=requested_date,
            auto_complete_on_children=auto_complete_on_children,
            notes=notes,
            created_by=actor_id,
        )
        db.add(order)
        db.flush()

        record_production_event(
            db,
            manufacturing_order_id=order.id,
            event_type="order_created",
            title=f"Order {order.order_number} created",
            actor_id=actor_id,
            payload={"item_id": item.id, "quantity": str(quantity)},
        )

        if bill_of_material is not None and explode:
            OrderExplosionService(db).explode(order, actor_id=actor_id)

    return order


def create_order_from_bom(
    db: Session,
    bom: BillOfMaterial,
    quantity,
    actor_id: Optional[int] = None,
    **kwargs,
) -> ManufacturingOrder:
    """Create an order for a BOM's output item."""
    return create_order(db, bom.output_item, quantity, actor_id=actor_id, bill_of_material=bom, **kwargs)


def build_route_from_routing(
    db: Session,
    order: ManufacturingOrder,
    routing: ProductionRouting,
    actor_id: Optional[int] = None,
    resolver: Optional[RoutingResolver] = None,
) -> ManufacturingRoute:
    """
    Give an order its own route: a copy of the routing's steps.

    Any previous active route is deactivated.
    """
    resolver = resolver or RoutingResolver(db)
    with transactional(db):
        for existing in order.routes:
            existing.is_active = False

        route = ManufacturingRoute(
            manufacturing_order=order,
            production_routing_id=routing.id,
            name=routing.name,
            is_active=True,
            created_by=actor_id,
        )
        db.add(route)
        db.flush()

        for source in resolver.routing_steps(routing):
            step = ManufacturingStep(
                routing_step_id=source.id,
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
                status=StepStatus.PENDING.value,
            )
            siblings = list(route.steps)
            step.route = route
            add_step(db, step, siblings)

        routing_cache.invalidate_order(order)
    return route


def release_order(
    db: Session,
    order: ManufacturingOrder,
    actor_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[ManufacturingStep]:
    """
    Release an order to the shop floor.

    Returns:
        The steps queued (those without an unmet dependency)

    Raises:
        InvalidStateError: order not draft/planned, or no route with steps
    """
    if order.status not in RELEASABLE_STATUSES:
        raise InvalidStateError(
            f"Order {order.order_number} cannot be released from '{order.status}'",
            current_state=order.status,
            allowed_states=[s.value for s in RELEASABLE_STATUSES],
        )
    route = order.active_route
    if route is None or not route.steps:
        raise InvalidStateError(
            f"Order {order.order_number} has no route with steps to release",
            current_state=order.status,
        )

    now = now or datetime.utcnow()
    with transactional(db):
        transition_order(db, order, OrderStatus.RELEASED, actor_id=actor_id, now=now)
        queued = queue_ready_steps(db, [s for s in route.steps if s.depends_on_step_id is None])
    return queued


def cancel_order(
    db: Session,
    order: ManufacturingOrder,
    actor_id: Optional[int] = None,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ManufacturingOrder:
    """
    Cancel an order and everything under it.

    Open steps are skipped, open schedules cancelled and non-terminal
    child orders cancelled recursively, in one transaction.
    """
    if order.status in ORDER_TERMINAL_STATUSES:
        raise InvalidStateError(
            f"Order {order.order_number} is already {order.status}", current_state=order.status
        )
    now = now or datetime.utcnow()
    with transactional(db):
        _cancel_tree(db, order, actor_id, reason, now)
        if order.parent_id is not None:
            recheck_parent(db, order.parent_id, actor_id=actor_id, now=now)

    logger.info(f"Cancelled order {order.order_number}", extra={"order_id": order.id, "reason": reason})
    return order


def _cancel_tree(db: Session, order: ManufacturingOrder, actor_id, reason, now) -> None:
    for route in order.routes:
        for step in route.steps:
            if step.status not in STEP_DONE_STATUSES:
                step.status = StepStatus.SKIPPED.value

    for schedule in order.schedules:
        if schedule.status in SCHEDULE_OPEN_STATUSES:
            schedule.status = ScheduleStatus.CANCELLED.value

    for child in order.children:
        if child.status not in ORDER_TERMINAL_STATUSES:
            _cancel_tree(db, child, actor_id, reason, now)
    refresh_child_counters(db, order)

    if reason:
        order.notes = f"{order.notes}\n{reason}" if order.notes else reason
    transition_order(db, order, OrderStatus.CANCELLED, actor_id=actor_id, now=now)
