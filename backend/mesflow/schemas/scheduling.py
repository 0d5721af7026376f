"""
Scheduling and Capacity Management Schemas
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field


class ScheduleConflict(BaseModel):
    """A step that could not be placed without double-booking its work cell"""
    work_cell_id: int
    manufacturing_order_id: int
    routing_step_id: Optional[int] = None
    bom_item_id: Optional[int] = None
    requested_start: datetime
    requested_end: datetime
    reason: str
    conflicting_schedule_ids: List[int] = []


class ScheduledStep(BaseModel):
    """One schedule created during bulk scheduling"""
    schedule_id: int
    work_cell_id: int
    routing_step_id: Optional[int] = None
    bom_item_id: Optional[int] = None
    scheduled_start: datetime
    scheduled_end: datetime
    status: str


class ScheduleResult(BaseModel):
    """Outcome of scheduling one order"""
    manufacturing_order_id: int
    scheduled: List[ScheduledStep] = []
    conflicts: List[ScheduleConflict] = []
    planned_start: Optional[datetime] = None
    planned_end: Optional[datetime] = None

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


class RescheduleResult(BaseModel):
    """A moved schedule plus everything shifted along with it"""
    schedule_id: int
    delta_minutes: int
    new_start: datetime
    new_end: datetime
    cascaded_schedule_ids: List[int] = []


class AvailableSlot(BaseModel):
    """An available time slot"""
    work_cell_id: int
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    found: bool = Field(True, description="False when the search horizon was exhausted")


class WorkloadEntry(BaseModel):
    """Work cell load against capacity over a period"""
    work_cell_id: int
    work_cell_code: str
    work_cell_name: str
    working_days: int
    capacity_hours: float
    scheduled_hours: float
    utilization_percent: float
    schedule_count: int


class LeadTimeResult(BaseModel):
    """Routing time for an order tree expressed in working days"""
    manufacturing_order_id: int
    total_minutes: float
    total_hours: float
    working_days: int
