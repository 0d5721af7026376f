"""
Completion propagation

When every step of an order's route is completed or skipped the order
completes, its open schedules are closed and the parent order's child
counters are updated. A parent that opted into auto-completion completes
once all its children have, and the check repeats one level further up.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from mesflow.core.status_config import (
    ORDER_TERMINAL_STATUSES,
    SCHEDULE_OPEN_STATUSES,
    STEP_DONE_STATUSES,
    OrderStatus,
    ScheduleStatus,
)
from mesflow.logging_config import get_logger
from mesflow.models import ManufacturingOrder, ManufacturingRoute, ProductionSchedule
from mesflow.services.locks import order_locks
from mesflow.services.order_status import transition_order

logger = get_logger(__name__)


def route_is_finished(route: ManufacturingRoute) -> bool:
    """True when the route has steps and all of them are completed or skipped."""
    return bool(route.steps) and all(step.status in STEP_DONE_STATUSES for step in route.steps)


def check_route_completion(
    db: Session,
    route: ManufacturingRoute,
    actor_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> bool:
    """Complete the route's order if its last step just finished. Returns True if it did."""
    order = route.manufacturing_order
    if order.status in ORDER_TERMINAL_STATUSES or not route_is_finished(route):
        return False
    complete_order(db, order, actor_id=actor_id, now=now)
    return True


def complete_order(
    db: Session,
    order: ManufacturingOrder,
    actor_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> ManufacturingOrder:
    """Mark an order completed, release its open bookings and notify its parent."""
    now = now or datetime.utcnow()
    transition_order(db, order, OrderStatus.COMPLETED, actor_id=actor_id, now=now)

    good = Decimal(str(order.quantity)) - Decimal(str(order.quantity_scrapped or 0))
    order.quantity_completed = max(good, Decimal("0"))
    close_open_schedules(db, order, now)
    db.flush()

    if order.parent_id is not None:
        notify_parent(db, order.parent_id, actor_id=actor_id, now=now)
    return order


def close_open_schedules(db: Session, order: ManufacturingOrder, now: datetime) -> int:
    """Mark every schedule of the order that is still open as completed."""
    closed = 0
    schedules = (
        db.query(ProductionSchedule)
        .filter(ProductionSchedule.manufacturing_order_id == order.id)
        .all()
    )
    for schedule in schedules:
        if schedule.status in SCHEDULE_OPEN_STATUSES:
            schedule.status = ScheduleStatus.COMPLETED.value
            schedule.actual_end = schedule.actual_end or now
            closed += 1
    if closed:
        logger.info(
            f"Closed {closed} open schedules of {order.order_number}",
            extra={"order_id": order.id},
        )
    return closed


def _lock_order(db: Session, order_id: int) -> ManufacturingOrder:
    return (
        db.query(ManufacturingOrder)
        .filter(ManufacturingOrder.id == order_id)
        .with_for_update()
        .populate_existing()
        .one()
    )


def _auto_complete_if_ready(
    db: Session,
    parent: ManufacturingOrder,
    actor_id: Optional[int],
    now: Optional[datetime],
) -> bool:
    if parent.status in ORDER_TERMINAL_STATUSES or not parent.should_auto_complete:
        return False
    logger.info(
        f"All {parent.child_orders_count} child orders of {parent.order_number} complete; auto-completing",
        extra={"order_id": parent.id},
    )
    complete_order(db, parent, actor_id=actor_id, now=now)
    return True


def notify_parent(
    db: Session,
    parent_id: int,
    actor_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> ManufacturingOrder:
    """
    Record one more completed child on the parent and re-check auto-completion.

    The parent row is locked for the increment-then-check so concurrent
    children can neither double-trigger nor miss the parent's completion.
    """
    with order_locks.hold(parent_id):
        parent = _lock_order(db, parent_id)
        parent.completed_child_orders_count = (parent.completed_child_orders_count or 0) + 1

        live_completed = sum(1 for child in parent.children if child.status == OrderStatus.COMPLETED)
        if parent.completed_child_orders_count != live_completed:
            logger.warning(
                f"Completed child counter drifted on {parent.order_number}; reconciling",
                extra={
                    "order_id": parent.id,
                    "counter": parent.completed_child_orders_count,
                    "live": live_completed,
                },
            )
            parent.completed_child_orders_count = live_completed
        db.flush()

        _auto_complete_if_ready(db, parent, actor_id, now)
    return parent


def recheck_parent(
    db: Session,
    parent_id: int,
    actor_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> ManufacturingOrder:
    """
    Recount the parent's children and auto-complete it if they are all done.

    Used when a child leaves the tree without completing (cancellation):
    the remaining children may already all be complete.
    """
    db.flush()
    with order_locks.hold(parent_id):
        parent = _lock_order(db, parent_id)
        refresh_child_counters(db, parent)
        _auto_complete_if_ready(db, parent, actor_id, now)
    return parent


def refresh_child_counters(db: Session, order: ManufacturingOrder) -> ManufacturingOrder:
    """Recompute both child counters from the live children."""
    children = order.children
    order.child_orders_count = sum(1 for c in children if c.status != OrderStatus.CANCELLED)
    order.completed_child_orders_count = sum(1 for c in children if c.status == OrderStatus.COMPLETED)
    db.flush()
    return order
