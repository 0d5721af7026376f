"""
Order Status Management

Validated status transitions for manufacturing orders. Every change goes
through ``transition_order`` so dates and events stay consistent.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from mesflow.core.status_config import (
    OrderStatus,
    get_allowed_order_transitions,
    is_valid_order_transition,
)
from mesflow.exceptions import InvalidStateError
from mesflow.logging_config import get_logger
from mesflow.models import ManufacturingOrder
from mesflow.services.event_service import record_status_change

logger = get_logger(__name__)


def transition_order(
    db: Session,
    order: ManufacturingOrder,
    new_status: str,
    actor_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> ManufacturingOrder:
    """
    Move an order to ``new_status``.

    Raises:
        InvalidStateError: if the transition would move the order backwards
            or out of a terminal state
    """
    new_status = OrderStatus(new_status).value
    old_status = order.status
    if old_status == new_status:
        return order

    if not is_valid_order_transition(old_status, new_status):
        raise InvalidStateError(
            f"Cannot change order {order.order_number} from '{old_status}' to '{new_status}'",
            current_state=old_status,
            allowed_states=get_allowed_order_transitions(old_status),
        )

    now = now or datetime.utcnow()
    order.status = new_status
    order.updated_at = now

    if new_status == OrderStatus.IN_PROGRESS and not order.actual_start_date:
        order.actual_start_date = now
    elif new_status == OrderStatus.COMPLETED:
        order.actual_end_date = now
        if not order.actual_start_date:
            order.actual_start_date = now
    elif new_status == OrderStatus.CANCELLED:
        order.cancelled_at = now

    record_status_change(db, order, old_status, new_status, actor_id=actor_id)
    logger.info(
        f"Order {order.order_number}: {old_status} -> {new_status}",
        extra={"order_id": order.id, "old_status": old_status, "new_status": new_status},
    )
    return order
