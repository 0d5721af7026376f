"""
Manufacturing Order models

Manufacturing Orders (MOs) are demand instances produced by BOM explosion.
Orders form a tree through ``parent_id``. Each order carries a route: a
per-order copy of its routing whose steps are executed and tracked.

Lifecycle: draft → planned → released → in_progress → completed
(cancelled is reachable from any non-terminal state)
"""
from datetime import datetime

from sqlalchemy import (
    Boolean, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
)
from sqlalchemy.orm import relationship

from mesflow.db.base import Base


class ManufacturingOrder(Base):
    """
    Manufacturing Order - one node of an exploded order tree.

    Child counters are maintained by the explosion and completion services
    and always match the live children.
    """
    __tablename__ = "manufacturing_orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(100), unique=True, nullable=False, index=True)

    # References
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False, index=True)
    bill_of_material_id = Column(Integer, ForeignKey("bill_of_materials.id"), nullable=True, index=True)
    parent_id = Column(Integer, ForeignKey("manufacturing_orders.id"), nullable=True, index=True)
    # BOM node this order was exploded from (None for top-level orders)
    bom_item_id = Column(Integer, ForeignKey("bom_items.id"), nullable=True)

    # Quantities
    quantity = Column(Numeric(18, 4), nullable=False)
    quantity_completed = Column(Numeric(18, 4), default=0, nullable=False)
    quantity_scrapped = Column(Numeric(18, 4), default=0, nullable=False)
    unit_of_measure = Column(String(20), default="EA", nullable=False)

    # draft, planned, released, in_progress, completed, cancelled
    status = Column(String(20), default="draft", nullable=False, index=True)
    priority = Column(Integer, default=50, nullable=False)  # 0-100, higher is more urgent

    # Child tracking
    child_orders_count = Column(Integer, default=0, nullable=False)
    completed_child_orders_count = Column(Integer, default=0, nullable=False)
    last_child_sequence = Column(Integer, default=0, nullable=False)
    auto_complete_on_children = Column(Boolean, default=True, nullable=False)

    # Dates
    requested_date = Column(Date, nullable=True)
    planned_start_date = Column(DateTime, nullable=True)
    planned_end_date = Column(DateTime, nullable=True)
    actual_start_date = Column(DateTime, nullable=True)
    actual_end_date = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    notes = Column(Text, nullable=True)
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    item = relationship("Item")
    bill_of_material = relationship("BillOfMaterial")
    bom_item = relationship("BomItem")
    parent = relationship("ManufacturingOrder", remote_side=[id], back_populates="children")
    children = relationship("ManufacturingOrder", back_populates="parent", order_by="ManufacturingOrder.id")
    routes = relationship(
        "ManufacturingRoute", back_populates="manufacturing_order",
        cascade="all, delete-orphan", order_by="ManufacturingRoute.id",
    )
    schedules = relationship("ProductionSchedule", back_populates="manufacturing_order")
    events = relationship(
        "ProductionEvent", back_populates="manufacturing_order", order_by="ProductionEvent.id"
    )

    def __repr__(self):
        return f"<ManufacturingOrder {self.order_number} ({self.status})>"

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    @property
    def active_route(self):
        for route in self.routes:
            if route.is_active:
                return route
        return None

    @property
    def should_auto_complete(self) -> bool:
        """All children done and the order opted in."""
        return bool(
            self.auto_complete_on_children
            and self.child_orders_count > 0
            and self.child_orders_count == self.completed_child_orders_count
        )

    def ancestors(self):
        result = []
        node = self.parent
        while node is not None:
            result.append(node)
            node = node.parent
        return result


class ManufacturingRoute(Base):
    """
    The concrete route an order follows, copied from a ProductionRouting.
    """
    __tablename__ = "manufacturing_routes"

    id = Column(Integer, primary_key=True, index=True)
    manufacturing_order_id = Column(
        Integer, ForeignKey("manufacturing_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    production_routing_id = Column(Integer, ForeignKey("production_routings.id"), nullable=True)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    manufacturing_order = relationship("ManufacturingOrder", back_populates="routes")
    production_routing = relationship("ProductionRouting")
    steps = relationship(
        "ManufacturingStep", back_populates="route",
        cascade="all, delete-orphan", order_by="ManufacturingStep.step_number",
    )

    def __repr__(self):
        return f"<ManufacturingRoute {self.id} order_id={self.manufacturing_order_id}>"


class ManufacturingStep(Base):
    """
    One step of an order's route.

    Same timing and quality fields as RoutingStep plus execution status.
    A ``rework`` step is appended when a quality check fails with the
    rework action; it depends on the failed step.
    """
    __tablename__ = "manufacturing_steps"
    __table_args__ = (
        UniqueConstraint("manufacturing_route_id", "step_number", name="uq_route_step_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    manufacturing_route_id = Column(
        Integer, ForeignKey("manufacturing_routes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    routing_step_id = Column(Integer, ForeignKey("routing_steps.id"), nullable=True)
    step_number = Column(Integer, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    work_cell_id = Column(Integer, ForeignKey("work_cells.id"), nullable=True)

    # Time (minutes)
    setup_time = Column(Numeric(10, 2), default=0, nullable=False)
    cycle_time = Column(Numeric(10, 2), default=0, nullable=False)
    tear_down_time = Column(Numeric(10, 2), default=0, nullable=False)

    step_type = Column(String(20), default="standard", nullable=False)
    quality_check_mode = Column(String(20), nullable=True)
    sampling_size = Column(Integer, nullable=True)

    depends_on_step_id = Column(Integer, ForeignKey("manufacturing_steps.id"), nullable=True)
    can_start_when_dependency = Column(String(20), default="completed", nullable=False)

    # pending, queued, in_progress, on_hold, completed, skipped
    status = Column(String(20), default="pending", nullable=False, index=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    route = relationship("ManufacturingRoute", back_populates="steps")
    routing_step = relationship("RoutingStep")
    work_cell = relationship("WorkCell")
    depends_on_step = relationship("ManufacturingStep", remote_side=[id])
    executions = relationship(
        "ManufacturingStepExecution", back_populates="step",
        cascade="all, delete-orphan", order_by="ManufacturingStepExecution.id",
    )

    def __repr__(self):
        return f"<ManufacturingStep {self.step_number}: {self.name} ({self.status})>"

    @property
    def is_quality_check(self) -> bool:
        return self.step_type == "quality_check"

    def can_start(self) -> bool:
        """True iff there is no dependency or the dependency is completed."""
        if self.depends_on_step_id is None:
            return True
        dependency = self.depends_on_step
        return dependency is not None and dependency.status == "completed"


class ManufacturingStepExecution(Base):
    """
    One concrete run of a step.

    Quality checks in every_part or sampling mode fan out into one execution
    per inspected unit (``part_number`` 1..``total_parts``).
    """
    __tablename__ = "manufacturing_step_executions"

    id = Column(Integer, primary_key=True, index=True)
    manufacturing_step_id = Column(
        Integer, ForeignKey("manufacturing_steps.id", ondelete="CASCADE"), nullable=False, index=True
    )
    part_number = Column(Integer, nullable=True)
    total_parts = Column(Integer, nullable=True)
    quantity = Column(Numeric(18, 4), default=1, nullable=False)

    # in_progress, on_hold, completed
    status = Column(String(20), default="in_progress", nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    on_hold_at = Column(DateTime, nullable=True)
    resumed_at = Column(DateTime, nullable=True)
    hold_reason = Column(Text, nullable=True)
    total_hold_duration = Column(Integer, default=0, nullable=False)  # minutes

    # Quality outcome (quality_check steps only)
    quality_result = Column(String(20), nullable=True)  # passed, failed
    quality_notes = Column(Text, nullable=True)
    failure_action = Column(String(20), nullable=True)  # scrap, rework

    executed_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    step = relationship("ManufacturingStep", back_populates="executions")

    def __repr__(self):
        part = f" part {self.part_number}/{self.total_parts}" if self.part_number else ""
        return f"<ManufacturingStepExecution {self.id} step={self.manufacturing_step_id}{part} ({self.status})>"

    @property
    def actual_duration_minutes(self):
        """Wall-clock minutes minus time spent on hold."""
        if not self.started_at or not self.completed_at:
            return None
        elapsed = int((self.completed_at - self.started_at).total_seconds() // 60)
        return max(elapsed - (self.total_hold_duration or 0), 0)
