"""
Step dependency state machine

Steps run in a strictly linear chain: every step after the first depends
on the step before it and may only start once that step is completed.

    pending → queued → in_progress ⇄ on_hold → completed
    (skipped is reachable from any non-terminal state)

Starting a quality_check step fans out into executions according to its
quality_check_mode. A failed check either scraps the unit or queues a
rework step that depends on the failed step.
"""
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from mesflow.core.status_config import (
    ORDER_TERMINAL_STATUSES,
    SCHEDULE_OPEN_STATUSES,
    STEP_DONE_STATUSES,
    STEP_STARTABLE_STATUSES,
    ExecutionStatus,
    FailureAction,
    OrderStatus,
    QualityCheckMode,
    QualityResult,
    ScheduleStatus,
    StepStatus,
    StepType,
    is_valid_step_transition,
)
from mesflow.db.session import transactional
from mesflow.exceptions import DependencyError, InvalidStateError, ValidationError
from mesflow.logging_config import get_logger
from mesflow.models import ManufacturingStep, ManufacturingStepExecution, ProductionSchedule
from mesflow.services.completion import check_route_completion
from mesflow.services.event_service import record_production_event
from mesflow.services.order_status import transition_order
from mesflow.services.sampling_policy import (
    calculate_sample_size,
    lot_size_from_quantity,
    validate_sampling_size,
)

logger = get_logger(__name__)

REWORK_CYCLE_FACTOR = Decimal("2")


# =============================================================================
# Step creation
# =============================================================================

def add_step(db: Session, step, siblings: Iterable):
    """
    Validate and persist a routing or route step.

    Works for RoutingStep and ManufacturingStep alike: ``siblings`` are the
    other steps of the same routing. A missing step_number appends the
    step; a missing dependency is assigned to the step with the next-lower
    number.

    Raises:
        ValidationError: duplicate or non-contiguous step number, no
            predecessor for a step after the first, bad quality settings
    """
    siblings = [s for s in siblings if s is not step]
    numbers = {s.step_number for s in siblings}
    highest = max(numbers, default=0)

    if step.step_number is None:
        step.step_number = highest + 1
    if step.step_number < 1:
        raise ValidationError("Step number must be 1 or greater", field="step_number", value=step.step_number)
    if step.step_number in numbers:
        raise ValidationError(
            f"Step number {step.step_number} already exists in this routing",
            field="step_number",
            value=step.step_number,
        )

    _validate_quality_settings(step)

    if step.step_number > 1 and step.depends_on_step_id is None and step.depends_on_step is None:
        lower = [s for s in siblings if s.step_number < step.step_number]
        if not lower:
            raise ValidationError(
                f"Step {step.step_number} has no predecessor to depend on",
                field="depends_on_step_id",
            )
        step.depends_on_step = max(lower, key=lambda s: s.step_number)

    if step.step_number > highest + 1:
        raise ValidationError(
            f"Step numbers must be contiguous; next step number is {highest + 1}",
            field="step_number",
            value=step.step_number,
        )

    step.can_start_when_dependency = "completed"
    db.add(step)
    db.flush()
    return step


def _validate_quality_settings(step) -> None:
    step_type = step.step_type or StepType.STANDARD.value
    if step_type not in {t.value for t in StepType}:
        raise ValidationError(f"Unknown step type '{step_type}'", field="step_type", value=step_type)
    if step_type == StepType.QUALITY_CHECK:
        mode = step.quality_check_mode or QualityCheckMode.ENTIRE_LOT.value
        if mode not in {m.value for m in QualityCheckMode}:
            raise ValidationError(
                f"Unknown quality check mode '{mode}'", field="quality_check_mode", value=mode
            )
        step.quality_check_mode = mode
    validate_sampling_size(step.sampling_size)


def can_start(step: ManufacturingStep) -> bool:
    """True iff the step has no dependency or its dependency is completed."""
    return step.can_start()


# =============================================================================
# Queueing
# =============================================================================

def queue_step(db: Session, step: ManufacturingStep) -> ManufacturingStep:
    if step.status == StepStatus.QUEUED:
        return step
    _set_step_status(step, StepStatus.QUEUED)
    return step


def queue_ready_steps(db: Session, steps: Iterable[ManufacturingStep]) -> List[ManufacturingStep]:
    """Queue every pending step whose dependency is satisfied."""
    queued = []
    for step in steps:
        if step.status == StepStatus.PENDING and step.can_start():
            queue_step(db, step)
            queued.append(step)
    return queued


def _set_step_status(step: ManufacturingStep, new_status: str) -> None:
    new_status = StepStatus(new_status).value
    if not is_valid_step_transition(step.status, new_status):
        raise InvalidStateError(
            f"Cannot change step {step.step_number} from '{step.status}' to '{new_status}'",
            current_state=step.status,
        )
    step.status = new_status


def _move_step_schedules(
    db: Session,
    step: ManufacturingStep,
    new_status: ScheduleStatus,
    now: Optional[datetime] = None,
) -> List[ProductionSchedule]:
    """
    Carry the step's open schedules along with the step.

    Started work marks its bookings in_progress; completed or skipped
    steps close them so the work cell is free again.
    """
    schedules = (
        db.query(ProductionSchedule)
        .filter(ProductionSchedule.manufacturing_step_id == step.id)
        .all()
    )
    moved = []
    for schedule in schedules:
        if schedule.status not in SCHEDULE_OPEN_STATUSES or schedule.status == new_status:
            continue
        schedule.status = new_status.value
        if new_status == ScheduleStatus.IN_PROGRESS:
            schedule.actual_start = schedule.actual_start or now
        elif new_status == ScheduleStatus.COMPLETED:
            schedule.actual_start = schedule.actual_start or now
            schedule.actual_end = now
        moved.append(schedule)
    return moved


# =============================================================================
# Start
# =============================================================================

def start_step(
    db: Session,
    step: ManufacturingStep,
    actor_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[ManufacturingStepExecution]:
    """
    Start a step and create its executions.

    Returns:
        The executions created (one per inspected unit for every_part and
        sampling quality checks, otherwise one)

    Raises:
        InvalidStateError: step not pending/queued, or order finished
        DependencyError: predecessor not completed
    """
    now = now or datetime.utcnow()
    order = step.route.manufacturing_order

    if step.status not in STEP_STARTABLE_STATUSES:
        raise InvalidStateError(
            f"Step {step.step_number} cannot start from '{step.status}'",
            current_state=step.status,
            allowed_states=[s.value for s in StepStatus if s in STEP_STARTABLE_STATUSES],
        )
    if order.status in ORDER_TERMINAL_STATUSES:
        raise InvalidStateError(
            f"Order {order.order_number} is {order.status}", current_state=order.status
        )
    if not step.can_start():
        dependency = step.depends_on_step
        raise DependencyError(
            f"Step {step.step_number} depends on step {dependency.step_number} "
            f"which is '{dependency.status}'",
            step_id=step.id,
            depends_on_step_id=step.depends_on_step_id,
        )

    with transactional(db):
        executions = _create_executions(db, step, order, actor_id, now)
        _set_step_status(step, StepStatus.IN_PROGRESS)
        step.started_at = step.started_at or now
        _move_step_schedules(db, step, ScheduleStatus.IN_PROGRESS, now)

        if order.status != OrderStatus.IN_PROGRESS:
            transition_order(db, order, OrderStatus.IN_PROGRESS, actor_id=actor_id, now=now)

        record_production_event(
            db,
            manufacturing_order_id=order.id,
            manufacturing_step_id=step.id,
            event_type="step_started",
            title=f"Step {step.step_number} started: {step.name}",
            actor_id=actor_id,
            payload={"executions": len(executions)},
        )

    logger.info(
        f"Started step {step.step_number} of {order.order_number}",
        extra={"step_id": step.id, "executions": len(executions), "step_type": step.step_type},
    )
    return executions


def _create_executions(db, step, order, actor_id, now) -> List[ManufacturingStepExecution]:
    if step.is_quality_check:
        mode = step.quality_check_mode or QualityCheckMode.ENTIRE_LOT.value
        if mode == QualityCheckMode.EVERY_PART:
            units = lot_size_from_quantity(order.quantity)
        elif mode == QualityCheckMode.SAMPLING:
            units = calculate_sample_size(lot_size_from_quantity(order.quantity), step.sampling_size)
        else:
            units = 0

        if units:
            executions = [
                ManufacturingStepExecution(
                    step=step,
                    part_number=part,
                    total_parts=units,
                    quantity=Decimal("1"),
                    status=ExecutionStatus.IN_PROGRESS.value,
                    started_at=now,
                    executed_by=actor_id,
                )
                for part in range(1, units + 1)
            ]
            db.add_all(executions)
            db.flush()
            return executions

    execution = ManufacturingStepExecution(
        step=step,
        quantity=order.quantity,
        status=ExecutionStatus.IN_PROGRESS.value,
        started_at=now,
        executed_by=actor_id,
    )
    db.add(execution)
    db.flush()
    return [execution]


# =============================================================================
# Hold / resume
# =============================================================================

def hold_execution(
    db: Session,
    execution: ManufacturingStepExecution,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ManufacturingStepExecution:
    """Pause an execution. The step goes on hold once none of its executions are running."""
    if execution.status != ExecutionStatus.IN_PROGRESS:
        raise InvalidStateError(
            "Only a running execution can be put on hold", current_state=execution.status
        )
    now = now or datetime.utcnow()
    with transactional(db):
        execution.status = ExecutionStatus.ON_HOLD.value
        execution.on_hold_at = now
        execution.hold_reason = reason

        step = execution.step
        if not any(e.status == ExecutionStatus.IN_PROGRESS for e in step.executions):
            _set_step_status(step, StepStatus.ON_HOLD)
    return execution


def resume_execution(
    db: Session,
    execution: ManufacturingStepExecution,
    now: Optional[datetime] = None,
) -> ManufacturingStepExecution:
    """Resume a held execution, adding the hold time (whole minutes) to its total."""
    if execution.status != ExecutionStatus.ON_HOLD:
        raise InvalidStateError("Execution is not on hold", current_state=execution.status)
    now = now or datetime.utcnow()
    with transactional(db):
        held_minutes = int((now - execution.on_hold_at).total_seconds() // 60)
        execution.total_hold_duration = (execution.total_hold_duration or 0) + max(held_minutes, 0)
        execution.resumed_at = now
        execution.status = ExecutionStatus.IN_PROGRESS.value

        step = execution.step
        if step.status == StepStatus.ON_HOLD:
            _set_step_status(step, StepStatus.IN_PROGRESS)
    return execution


# =============================================================================
# Completion
# =============================================================================

def complete_execution(
    db: Session,
    execution: ManufacturingStepExecution,
    actor_id: Optional[int] = None,
    quality_result: Optional[str] = None,
    quality_notes: Optional[str] = None,
    failure_action: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ManufacturingStepExecution:
    """
    Close one execution.

    Quality-check executions need a result; a failed result needs a
    failure action. When the last open execution of a step closes the
    step completes, its dependents are queued and the order is checked
    for completion.
    """
    if execution.status != ExecutionStatus.IN_PROGRESS:
        raise InvalidStateError(
            "Only a running execution can be completed; resume it first",
            current_state=execution.status,
        )
    step = execution.step

    if quality_result is not None and quality_result not in {r.value for r in QualityResult}:
        raise ValidationError("Unknown quality result", field="quality_result", value=quality_result)
    if step.is_quality_check and quality_result is None:
        raise ValidationError("Quality check executions need a result", field="quality_result")
    if quality_result == QualityResult.FAILED:
        if failure_action not in {a.value for a in FailureAction}:
            raise ValidationError(
                "A failed quality check needs a failure action (scrap or rework)",
                field="failure_action",
                value=failure_action,
            )
    else:
        failure_action = None

    now = now or datetime.utcnow()
    with transactional(db):
        execution.status = ExecutionStatus.COMPLETED.value
        execution.completed_at = now
        execution.executed_by = actor_id or execution.executed_by
        execution.quality_result = quality_result
        execution.quality_notes = quality_notes
        execution.failure_action = failure_action

        if quality_result == QualityResult.FAILED:
            handle_quality_failure(db, execution, failure_action, actor_id=actor_id)

        if all(e.status == ExecutionStatus.COMPLETED for e in step.executions):
            complete_step(db, step, actor_id=actor_id, now=now)
        elif step.status == StepStatus.IN_PROGRESS and not any(
            e.status == ExecutionStatus.IN_PROGRESS for e in step.executions
        ):
            # Only held executions remain open
            _set_step_status(step, StepStatus.ON_HOLD)
    return execution


def complete_step(
    db: Session,
    step: ManufacturingStep,
    actor_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> ManufacturingStep:
    """Mark a step completed, queue what it unblocks and propagate completion."""
    now = now or datetime.utcnow()
    _set_step_status(step, StepStatus.COMPLETED)
    step.completed_at = now
    _move_step_schedules(db, step, ScheduleStatus.COMPLETED, now)

    route = step.route
    record_production_event(
        db,
        manufacturing_order_id=route.manufacturing_order_id,
        manufacturing_step_id=step.id,
        event_type="step_completed",
        title=f"Step {step.step_number} completed: {step.name}",
        actor_id=actor_id,
    )

    dependents = [s for s in route.steps if s.depends_on_step_id == step.id]
    queue_ready_steps(db, dependents)
    db.flush()

    check_route_completion(db, route, actor_id=actor_id, now=now)
    return step


def skip_step(
    db: Session,
    step: ManufacturingStep,
    reason: Optional[str] = None,
    actor_id: Optional[int] = None,
) -> ManufacturingStep:
    """Skip a non-terminal step."""
    if step.status in STEP_DONE_STATUSES:
        raise InvalidStateError(f"Step is already {step.status}", current_state=step.status)
    with transactional(db):
        _set_step_status(step, StepStatus.SKIPPED)
        _move_step_schedules(db, step, ScheduleStatus.CANCELLED)
        if reason:
            step.notes = f"{step.notes}\n{reason}" if step.notes else reason
        db.flush()
        check_route_completion(db, step.route, actor_id=actor_id)
    return step


# =============================================================================
# Quality failure
# =============================================================================

def handle_quality_failure(
    db: Session,
    execution: ManufacturingStepExecution,
    action: str,
    actor_id: Optional[int] = None,
) -> Optional[ManufacturingStep]:
    """
    Apply the failure action of a failed quality execution.

    scrap: the order's scrapped quantity goes up by one unit.
    rework: a rework step depending on the failed step is created (or the
    existing open one reused) and queued. Returns the rework step.
    """
    step = execution.step
    route = step.route
    order = route.manufacturing_order

    record_production_event(
        db,
        manufacturing_order_id=order.id,
        manufacturing_step_id=step.id,
        event_type="quality_failure",
        title=f"Quality check failed on step {step.step_number}",
        description=execution.quality_notes,
        new_value=action,
        actor_id=actor_id,
        payload={"execution_id": execution.id, "part_number": execution.part_number},
    )
    logger.warning(
        f"Quality failure on {order.order_number} step {step.step_number}: {action}",
        extra={"order_id": order.id, "step_id": step.id, "execution_id": execution.id},
    )

    if action == FailureAction.SCRAP:
        order.quantity_scrapped = Decimal(str(order.quantity_scrapped or 0)) + 1
        return None

    rework = next(
        (
            s for s in route.steps
            if s.step_type == StepType.REWORK
            and s.depends_on_step_id == step.id
            and s.status not in STEP_DONE_STATUSES
        ),
        None,
    )
    if rework is None:
        rework = ManufacturingStep(
            route=route,
            step_number=max(s.step_number for s in route.steps) + 1,
            name=f"Rework: {step.name}",
            description=f"Rework after failed quality check on step {step.step_number}",
            work_cell_id=step.work_cell_id,
            setup_time=Decimal("0"),
            cycle_time=Decimal(str(step.cycle_time or 0)) * REWORK_CYCLE_FACTOR,
            tear_down_time=Decimal("0"),
            step_type=StepType.REWORK.value,
            depends_on_step=step,
            status=StepStatus.PENDING.value,
        )
        add_step(db, rework, route.steps)
    if rework.status == StepStatus.PENDING:
        _set_step_status(rework, StepStatus.QUEUED)
    return rework
