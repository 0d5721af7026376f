"""Status Configuration and Transition Rules

Valid status values and allowed transitions for manufacturing orders,
manufacturing steps, step executions and production schedules.
Services validate against these tables before changing any status.
"""
from enum import Enum
from typing import Dict, List, Set


# =============================================================================
# Manufacturing Order Status
# =============================================================================

class OrderStatus(str, Enum):
    """Valid status values for Manufacturing Orders"""
    DRAFT = "draft"
    PLANNED = "planned"
    RELEASED = "released"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Orders only move forward; cancellation is allowed from any non-terminal state.
# draft -> released and planned -> in_progress skip ranks but never go back.
ORDER_TRANSITIONS: Dict[str, Set[str]] = {
    OrderStatus.DRAFT: {
        OrderStatus.PLANNED,
        OrderStatus.RELEASED,
        OrderStatus.IN_PROGRESS,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.PLANNED: {
        OrderStatus.RELEASED,
        OrderStatus.IN_PROGRESS,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.RELEASED: {
        OrderStatus.IN_PROGRESS,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.IN_PROGRESS: {
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.COMPLETED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}

ORDER_TERMINAL_STATUSES: Set[str] = {OrderStatus.COMPLETED, OrderStatus.CANCELLED}


def get_allowed_order_transitions(current_status: str) -> List[str]:
    """Get list of allowed next statuses for a manufacturing order"""
    return [str(s.value) for s in ORDER_TRANSITIONS.get(current_status, set())]


def is_valid_order_transition(current_status: str, new_status: str) -> bool:
    """Check if a manufacturing order status transition is valid"""
    if current_status == new_status:
        return True  # No change is always valid
    allowed = ORDER_TRANSITIONS.get(current_status, set())
    return new_status in allowed


# =============================================================================
# Manufacturing Step Status
# =============================================================================

class StepStatus(str, Enum):
    """Valid status values for Manufacturing Steps"""
    PENDING = "pending"
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    SKIPPED = "skipped"


STEP_TRANSITIONS: Dict[str, Set[str]] = {
    StepStatus.PENDING: {
        StepStatus.QUEUED,
        StepStatus.IN_PROGRESS,
        StepStatus.SKIPPED,
    },
    StepStatus.QUEUED: {
        StepStatus.IN_PROGRESS,
        StepStatus.SKIPPED,
    },
    StepStatus.IN_PROGRESS: {
        StepStatus.ON_HOLD,
        StepStatus.COMPLETED,
        StepStatus.SKIPPED,
    },
    StepStatus.ON_HOLD: {
        StepStatus.IN_PROGRESS,
        StepStatus.SKIPPED,
    },
    StepStatus.COMPLETED: set(),  # Terminal
    StepStatus.SKIPPED: set(),  # Terminal
}

STEP_STARTABLE_STATUSES: Set[str] = {StepStatus.PENDING, StepStatus.QUEUED}
STEP_DONE_STATUSES: Set[str] = {StepStatus.COMPLETED, StepStatus.SKIPPED}


def is_valid_step_transition(current_status: str, new_status: str) -> bool:
    """Check if a manufacturing step status transition is valid"""
    if current_status == new_status:
        return True
    return new_status in STEP_TRANSITIONS.get(current_status, set())


class StepType(str, Enum):
    STANDARD = "standard"
    QUALITY_CHECK = "quality_check"
    REWORK = "rework"


class QualityCheckMode(str, Enum):
    EVERY_PART = "every_part"
    ENTIRE_LOT = "entire_lot"
    SAMPLING = "sampling"


# =============================================================================
# Step Execution Status
# =============================================================================

class ExecutionStatus(str, Enum):
    """Valid status values for a single run of a step"""
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"


class QualityResult(str, Enum):
    PASSED = "passed"
    FAILED = "failed"


class FailureAction(str, Enum):
    SCRAP = "scrap"
    REWORK = "rework"


# =============================================================================
# Production Schedule Status
# =============================================================================

class ScheduleStatus(str, Enum):
    """Valid status values for Production Schedules"""
    SCHEDULED = "scheduled"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DELAYED = "delayed"
    CANCELLED = "cancelled"


# Only these occupy a work cell; completed/cancelled/delayed never conflict
SCHEDULE_ACTIVE_STATUSES: Set[str] = {
    ScheduleStatus.SCHEDULED,
    ScheduleStatus.READY,
    ScheduleStatus.IN_PROGRESS,
}

# Not yet closed; work that starts or finishes moves these along
SCHEDULE_OPEN_STATUSES: Set[str] = SCHEDULE_ACTIVE_STATUSES | {ScheduleStatus.DELAYED}


# =============================================================================
# Routing Type
# =============================================================================

class RoutingType(str, Enum):
    DEFINED = "defined"
    INHERITED = "inherited"


# =============================================================================
# Utility Functions
# =============================================================================

def get_all_order_statuses() -> List[str]:
    """Get all valid manufacturing order statuses"""
    return [s.value for s in OrderStatus]
