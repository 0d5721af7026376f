"""
Manufacturing order numbering

Top-level orders: MO-NNNNN-YYMM (sequence per month).
Child orders: {parent_number}-NNN, sequence per immediate parent.

Two child sequencing modes (CHILD_ORDER_NUMBERING):
- prefix_count: count the parent's existing direct children by number
  prefix, plus one
- per_parent_counter: monotonic counter stored on the parent row, taken
  under a row lock
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from mesflow.core.settings import settings
from mesflow.models import ManufacturingOrder


def generate_order_number(db: Session, now: Optional[datetime] = None) -> str:
    """Generate next top-level order number in format MO-NNNNN-YYMM"""
    now = now or datetime.utcnow()
    period = now.strftime("%y%m")
    last_order = (
        db.query(ManufacturingOrder)
        .filter(
            ManufacturingOrder.parent_id.is_(None),
            ManufacturingOrder.order_number.like(f"MO-%-{period}"),
        )
        .order_by(desc(ManufacturingOrder.order_number))
        .first()
    )

    if last_order:
        last_num = int(last_order.order_number.split("-")[1])
        next_num = last_num + 1
    else:
        next_num = 1

    return f"MO-{next_num:05d}-{period}"


def generate_child_order_number(
    db: Session,
    parent: ManufacturingOrder,
    mode: Optional[str] = None,
) -> str:
    """Next child number under ``parent``. Pending children must be flushed."""
    mode = mode or settings.CHILD_ORDER_NUMBERING
    if mode == "per_parent_counter":
        return _next_from_counter(db, parent)
    return _next_from_prefix(db, parent)


def _next_from_prefix(db: Session, parent: ManufacturingOrder) -> str:
    prefix = parent.order_number
    existing = (
        db.query(func.count(ManufacturingOrder.id))
        .filter(
            ManufacturingOrder.order_number.like(f"{prefix}-%"),
            ~ManufacturingOrder.order_number.like(f"{prefix}-%-%"),
        )
        .scalar()
    )
    return f"{prefix}-{(existing or 0) + 1:03d}"


def _next_from_counter(db: Session, parent: ManufacturingOrder) -> str:
    if parent.id is not None:
        db.query(ManufacturingOrder).filter(ManufacturingOrder.id == parent.id).with_for_update().first()
    parent.last_child_sequence = (parent.last_child_sequence or 0) + 1
    db.flush()
    return f"{parent.order_number}-{parent.last_child_sequence:03d}"
