"""
Production Routing Models

A routing defines HOW to make a BOM item: an ordered, linear sequence of
steps, each run on a work cell. Routings are either "defined" locally on
a BOM item or "inherited" from an ancestor's routing.
"""
from datetime import datetime

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
)
from sqlalchemy.orm import relationship

from mesflow.db.base import Base


class ProductionRouting(Base):
    """
    Routing attached to one BOM item.

    ``parent_routing_id`` records where an inherited routing came from.
    Only active routings take part in resolution.
    """
    __tablename__ = "production_routings"

    id = Column(Integer, primary_key=True, index=True)
    routing_number = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    bom_item_id = Column(Integer, ForeignKey("bom_items.id"), nullable=True, index=True)

    # 'defined' or 'inherited'
    routing_type = Column(String(20), default="defined", nullable=False)
    parent_routing_id = Column(Integer, ForeignKey("production_routings.id"), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    bom_item = relationship("BomItem", back_populates="routings")
    parent_routing = relationship("ProductionRouting", remote_side=[id])
    steps = relationship(
        "RoutingStep", back_populates="routing",
        cascade="all, delete-orphan", order_by="RoutingStep.step_number",
    )

    def __repr__(self):
        return f"<ProductionRouting {self.routing_number} ({self.routing_type})>"

    @property
    def is_inherited(self) -> bool:
        return self.routing_type == "inherited"


class RoutingStep(Base):
    """
    A single step in a routing template.

    Times are minutes. ``cycle_time`` is per unit; setup and tear-down are
    per run. Every step after the first depends on its predecessor.
    """
    __tablename__ = "routing_steps"
    __table_args__ = (
        UniqueConstraint("production_routing_id", "step_number", name="uq_routing_step_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    production_routing_id = Column(
        Integer, ForeignKey("production_routings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    step_number = Column(Integer, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    work_cell_id = Column(Integer, ForeignKey("work_cells.id"), nullable=True)

    # Time (minutes)
    setup_time = Column(Numeric(10, 2), default=0, nullable=False)
    cycle_time = Column(Numeric(10, 2), default=0, nullable=False)
    tear_down_time = Column(Numeric(10, 2), default=0, nullable=False)

    # 'standard', 'quality_check', 'rework'
    step_type = Column(String(20), default="standard", nullable=False)
    # quality_check only: 'every_part', 'entire_lot', 'sampling'
    quality_check_mode = Column(String(20), nullable=True)
    sampling_size = Column(Integer, nullable=True)

    depends_on_step_id = Column(Integer, ForeignKey("routing_steps.id"), nullable=True)
    can_start_when_dependency = Column(String(20), default="completed", nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    routing = relationship("ProductionRouting", back_populates="steps")
    work_cell = relationship("WorkCell")
    depends_on_step = relationship("RoutingStep", remote_side=[id])

    def __repr__(self):
        return f"<RoutingStep {self.step_number}: {self.name} ({self.step_type})>"

