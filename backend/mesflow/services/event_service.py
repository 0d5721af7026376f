"""
Event Service

Helper functions for recording production events. Events are plain
records for the external notification/audit sink; delivery is not
handled here.
"""
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session

from mesflow.models.production_event import ProductionEvent


def record_production_event(
    db: Session,
    manufacturing_order_id: int,
    event_type: str,
    title: str,
    description: Optional[str] = None,
    old_value: Optional[str] = None,
    new_value: Optional[str] = None,
    manufacturing_step_id: Optional[int] = None,
    actor_id: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> ProductionEvent:
    """
    Record a production event for a manufacturing order.

    Args:
        db: Database session
        manufacturing_order_id: ID of the order (must already be flushed)
        event_type: Type of event (order_created, step_completed, etc.)
        title: Short description of the event
        description: Detailed description (optional)
        old_value: Previous value for status changes
        new_value: New value for status changes
        manufacturing_step_id: Step the event concerns, if any
        actor_id: Opaque id of the acting user
        payload: Extra structured context

    Returns:
        The created ProductionEvent instance
    """
    event = ProductionEvent(
        manufacturing_order_id=manufacturing_order_id,
        manufacturing_step_id=manufacturing_step_id,
        actor_id=actor_id,
        event_type=event_type,
        title=title,
        description=description,
        old_value=old_value,
        new_value=new_value,
        payload=payload,
    )
    db.add(event)
    # Don't commit - let the calling function handle the transaction
    return event


def record_status_change(
    db: Session,
    order,
    old_status: str,
    new_status: str,
    actor_id: Optional[int] = None,
) -> ProductionEvent:
    """Record an order status transition as ``order_{new_status}``."""
    return record_production_event(
        db,
        manufacturing_order_id=order.id,
        event_type=f"order_{new_status}",
        title=f"Order {order.order_number} {new_status.replace('_', ' ')}",
        old_value=old_status,
        new_value=new_status,
        actor_id=actor_id,
    )
