"""
Work Cell and Production Schedule models

A work cell is a finite-capacity resource. Schedules are half-open
``[scheduled_start, scheduled_end)`` intervals booked on one work cell.
"""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from mesflow.core.status_config import SCHEDULE_ACTIVE_STATUSES
from mesflow.db.base import Base


class WorkCell(Base):
    """
    A production resource (machine, line, or external vendor slot).
    """
    __tablename__ = "work_cells"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    cell_type = Column(String(50), default="internal", nullable=False)  # internal, external

    # Capacity
    available_hours_per_day = Column(Numeric(10, 2), default=8, nullable=False)
    efficiency_percentage = Column(Numeric(5, 2), default=100, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    schedules = relationship("ProductionSchedule", back_populates="work_cell")

    def __repr__(self):
        return f"<WorkCell {self.code}: {self.name}>"

    @property
    def efficiency_factor(self) -> Decimal:
        """Efficiency as a fraction; zero or missing counts as 100%."""
        pct = Decimal(str(self.efficiency_percentage or 0))
        if pct <= 0:
            return Decimal("1")
        return pct / Decimal("100")

    @property
    def effective_capacity_hours(self) -> Decimal:
        """Productive hours per day."""
        return Decimal(str(self.available_hours_per_day or 0)) * self.efficiency_factor


class ProductionSchedule(Base):
    """
    A booked interval for one step on one work cell.

    Active statuses (scheduled, ready, in_progress) occupy the work cell;
    completed, cancelled and delayed schedules never conflict.
    """
    __tablename__ = "production_schedules"

    id = Column(Integer, primary_key=True, index=True)
    manufacturing_order_id = Column(
        Integer, ForeignKey("manufacturing_orders.id"), nullable=False, index=True
    )
    work_cell_id = Column(Integer, ForeignKey("work_cells.id"), nullable=False, index=True)
    routing_step_id = Column(Integer, ForeignKey("routing_steps.id"), nullable=True)
    manufacturing_step_id = Column(Integer, ForeignKey("manufacturing_steps.id"), nullable=True)
    bom_item_id = Column(Integer, ForeignKey("bom_items.id"), nullable=True)

    scheduled_start = Column(DateTime, nullable=False, index=True)
    scheduled_end = Column(DateTime, nullable=False, index=True)
    actual_start = Column(DateTime, nullable=True)
    actual_end = Column(DateTime, nullable=True)
    buffer_time = Column(Integer, default=0, nullable=False)  # minutes

    # scheduled, ready, in_progress, completed, delayed, cancelled
    status = Column(String(20), default="scheduled", nullable=False, index=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    manufacturing_order = relationship("ManufacturingOrder", back_populates="schedules")
    work_cell = relationship("WorkCell", back_populates="schedules")
    routing_step = relationship("RoutingStep")
    manufacturing_step = relationship("ManufacturingStep")
    bom_item = relationship("BomItem")

    def __repr__(self):
        return (
            f"<ProductionSchedule {self.id} cell={self.work_cell_id} "
            f"{self.scheduled_start}-{self.scheduled_end} ({self.status})>"
        )

    @property
    def is_active(self) -> bool:
        return self.status in SCHEDULE_ACTIVE_STATUSES

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open interval overlap with [start, end)."""
        return self.scheduled_start < end and start < self.scheduled_end
