"""
Production Event model for activity timeline tracking

Events are discrete data records handed to an external notification or
audit sink. The core only writes them.
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import relationship

from mesflow.db.base import Base


class ProductionEvent(Base):
    """
    Tracks activity on manufacturing orders.

    Event types:
    - order_created, order_released, order_completed, order_cancelled
    - step_started, step_completed, quality_failure
    - schedule_rescheduled
    """
    __tablename__ = "production_events"

    id = Column(Integer, primary_key=True, index=True)
    manufacturing_order_id = Column(
        Integer, ForeignKey("manufacturing_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    manufacturing_step_id = Column(Integer, ForeignKey("manufacturing_steps.id"), nullable=True)
    actor_id = Column(Integer, nullable=True)

    event_type = Column(String(50), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # For status changes
    old_value = Column(String(100), nullable=True)
    new_value = Column(String(100), nullable=True)

    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Relationships
    manufacturing_order = relationship("ManufacturingOrder", back_populates="events")

    def __repr__(self):
        return f"<ProductionEvent {self.event_type} order_id={self.manufacturing_order_id}>"
