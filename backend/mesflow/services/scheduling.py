"""
Capacity Scheduler

Lays routing steps out on finite-capacity work cells:
- bulk scheduling of an order's BOM, bottom-up, with buffer chaining
- earliest non-conflicting slot inside the daily working window
- overlap detection between active schedules
- reschedule with cascade to later schedules of the same order
- workload and lead-time analysis

Slot search and schedule insert for a work cell happen under an
exclusive per-work-cell lock so two callers can't claim the same slot.
"""
import math
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from mesflow.core.settings import settings
from mesflow.core.status_config import (
    SCHEDULE_ACTIVE_STATUSES,
    OrderStatus,
    ScheduleStatus,
    StepStatus,
)
from mesflow.db.session import transactional
from mesflow.exceptions import InvalidStateError, SchedulingConflictError, StructuralError, ValidationError
from mesflow.logging_config import get_logger
from mesflow.models import (
    BomItem,
    ManufacturingOrder,
    ManufacturingRoute,
    ManufacturingStep,
    ProductionSchedule,
    WorkCell,
)
from mesflow.schemas.scheduling import (
    AvailableSlot,
    LeadTimeResult,
    RescheduleResult,
    ScheduleConflict,
    ScheduledStep,
    ScheduleResult,
    WorkloadEntry,
)
from mesflow.services.event_service import record_production_event
from mesflow.services.locks import work_cell_locks
from mesflow.services.order_status import transition_order
from mesflow.services.routing_resolver import RoutingResolver
from mesflow.services.step_state_machine import add_step

logger = get_logger(__name__)

ACTIVE_SCHEDULE_VALUES = [s.value for s in SCHEDULE_ACTIVE_STATUSES]


def _required_quantity(order: ManufacturingOrder, bom_item: BomItem) -> Decimal:
    """Units of ``bom_item`` needed for the whole order."""
    if bom_item.parent_id is None:
        return Decimal(str(order.quantity))
    return Decimal(str(order.quantity)) * bom_item.total_quantity()


def step_duration_minutes(setup_time, cycle_time, tear_down_time, quantity, work_cell: Optional[WorkCell]) -> int:
    """(setup + cycle × quantity + tear-down) / efficiency, whole minutes, at least 1."""
    raw = (
        Decimal(str(setup_time or 0))
        + Decimal(str(cycle_time or 0)) * Decimal(str(quantity))
        + Decimal(str(tear_down_time or 0))
    )
    factor = work_cell.efficiency_factor if work_cell is not None else Decimal("1")
    return max(int(math.ceil(raw / factor)), 1)


class CapacityScheduler:
    """
    Finite-capacity scheduler over work cells.

    Usage:
        scheduler = CapacityScheduler(db)
        result = scheduler.schedule_production(order, start_at=datetime(2025, 1, 6, 8))
        for conflict in result.conflicts:
            ...
    """

    def __init__(
        self,
        db: Session,
        resolver: Optional[RoutingResolver] = None,
        buffer_minutes: Optional[int] = None,
        horizon_days: Optional[int] = None,
    ):
        self.db = db
        self.resolver = resolver or RoutingResolver(db)
        self.buffer_minutes = settings.SCHEDULE_BUFFER_MINUTES if buffer_minutes is None else buffer_minutes
        self.horizon_days = horizon_days or settings.SLOT_SEARCH_HORIZON_DAYS
        self.workday_start = settings.WORKDAY_START
        self.workday_end = settings.WORKDAY_END
        self.working_weekdays = set(settings.WORKING_WEEKDAYS)

    # ========================================================================
    # WORKING CALENDAR
    # ========================================================================

    def is_working_day(self, day: date) -> bool:
        return day.weekday() in self.working_weekdays

    def _window(self, day: date):
        return datetime.combine(day, self.workday_start), datetime.combine(day, self.workday_end)

    def _next_day_open(self, moment: datetime) -> datetime:
        day = moment.date() + timedelta(days=1)
        while not self.is_working_day(day):
            day += timedelta(days=1)
        return datetime.combine(day, self.workday_start)

    def working_days_between(self, start: date, end: date) -> int:
        """Working days in [start, end)."""
        days = 0
        day = start
        while day < end:
            if self.is_working_day(day):
                days += 1
            day += timedelta(days=1)
        return days

    # ========================================================================
    # CONFLICTS
    # ========================================================================

    def check_capacity(
        self,
        work_cell_id: int,
        start: datetime,
        end: datetime,
        exclude_ids: Iterable[int] = (),
    ) -> List[ProductionSchedule]:
        """Active schedules on the work cell overlapping [start, end)."""
        query = self.db.query(ProductionSchedule).filter(
            ProductionSchedule.work_cell_id == work_cell_id,
            ProductionSchedule.status.in_(ACTIVE_SCHEDULE_VALUES),
            ProductionSchedule.scheduled_start < end,
            ProductionSchedule.scheduled_end > start,
        )
        exclude_ids = [i for i in exclude_ids if i is not None]
        if exclude_ids:
            query = query.filter(ProductionSchedule.id.notin_(exclude_ids))
        return query.order_by(ProductionSchedule.scheduled_start).all()

    def _active_bookings(self, work_cell_id: int, after: datetime, exclude_ids: Sequence[int]) -> List[ProductionSchedule]:
        return self.check_capacity(
            work_cell_id, after, after + timedelta(days=self.horizon_days + 1), exclude_ids
        )

    # ========================================================================
    # SLOT FINDING
    # ========================================================================

    def find_available_slot(
        self,
        work_cell: WorkCell,
        desired_start: datetime,
        duration_minutes: int,
        exclude_ids: Sequence[int] = (),
    ) -> AvailableSlot:
        """
        Earliest start at or after ``desired_start`` that fits the working
        window and overlaps no active schedule on the work cell.

        After ``horizon_days`` the desired start is returned with
        ``found=False`` so the caller can surface the conflict.
        """
        if duration_minutes <= 0:
            raise ValidationError("Duration must be positive", field="duration_minutes", value=duration_minutes)

        duration = timedelta(minutes=duration_minutes)
        horizon_end = desired_start + timedelta(days=self.horizon_days)
        bookings = self._active_bookings(work_cell.id, desired_start, exclude_ids)
        candidate = desired_start

        while candidate < horizon_end:
            if not self.is_working_day(candidate.date()):
                candidate = self._next_day_open(candidate)
                continue

            day_open, day_close = self._window(candidate.date())
            if candidate < day_open:
                candidate = day_open
            if candidate + duration > day_close:
                candidate = self._next_day_open(candidate)
                continue

            end = candidate + duration
            clashes = [b for b in bookings if b.overlaps(candidate, end)]
            if not clashes:
                return AvailableSlot(
                    work_cell_id=work_cell.id,
                    start_time=candidate,
                    end_time=end,
                    duration_minutes=duration_minutes,
                )
            candidate = max(b.scheduled_end for b in clashes)

        logger.warning(
            f"No slot on work cell {work_cell.code} within {self.horizon_days} days",
            extra={"work_cell_id": work_cell.id, "desired_start": desired_start.isoformat(), "duration": duration_minutes},
        )
        return AvailableSlot(
            work_cell_id=work_cell.id,
            start_time=desired_start,
            end_time=desired_start + duration,
            duration_minutes=duration_minutes,
            found=False,
        )

    def _lock_work_cell(self, work_cell_id: int) -> WorkCell:
        return (
            self.db.query(WorkCell)
            .filter(WorkCell.id == work_cell_id)
            .with_for_update()
            .one()
        )

    # ========================================================================
    # BOOKING
    # ========================================================================

    def create_schedule(
        self,
        order: ManufacturingOrder,
        work_cell: WorkCell,
        start: datetime,
        end: datetime,
        routing_step_id: Optional[int] = None,
        manufacturing_step: Optional[ManufacturingStep] = None,
        bom_item_id: Optional[int] = None,
        buffer_time: int = 0,
    ) -> ProductionSchedule:
        """
        Write one schedule after re-checking the work cell under its lock.

        Raises:
            SchedulingConflictError: the interval is already taken
        """
        if end <= start:
            raise ValidationError("Schedule must end after it starts", field="scheduled_end", value=end)
        with work_cell_locks.hold(work_cell.id), transactional(self.db):
            self._lock_work_cell(work_cell.id)
            clashes = self.check_capacity(work_cell.id, start, end)
            if clashes:
                raise SchedulingConflictError(
                    f"Work cell {work_cell.code} is booked between {start} and {end}",
                    work_cell_id=work_cell.id,
                    conflicting_schedule_ids=[c.id for c in clashes],
                )
            return self._insert(order, work_cell, start, end, routing_step_id, manufacturing_step,
                                bom_item_id, buffer_time, ScheduleStatus.SCHEDULED.value)

    def book_slot(
        self,
        order: ManufacturingOrder,
        work_cell: WorkCell,
        desired_start: datetime,
        duration_minutes: int,
        routing_step_id: Optional[int] = None,
        manufacturing_step: Optional[ManufacturingStep] = None,
        bom_item_id: Optional[int] = None,
    ) -> ProductionSchedule:
        """
        Book the earliest free slot at or after ``desired_start``.

        Search and insert run under the work cell's lock and are committed
        before it is released, so concurrent callers get consecutive slots.

        Raises:
            SchedulingConflictError: nothing free within the horizon
        """
        with work_cell_locks.hold(work_cell.id), transactional(self.db):
            self._lock_work_cell(work_cell.id)
            slot = self.find_available_slot(work_cell, desired_start, duration_minutes)
            if not slot.found:
                raise SchedulingConflictError(
                    f"No free slot on work cell {work_cell.code} within {self.horizon_days} days",
                    work_cell_id=work_cell.id,
                )
            return self._insert(order, work_cell, slot.start_time, slot.end_time, routing_step_id,
                                manufacturing_step, bom_item_id, 0, ScheduleStatus.SCHEDULED.value)

    def _insert(self, order, work_cell, start, end, routing_step_id, manufacturing_step, bom_item_id,
                buffer_time, status) -> ProductionSchedule:
        schedule = ProductionSchedule(
            manufacturing_order_id=order.id,
            work_cell_id=work_cell.id,
            routing_step_id=routing_step_id,
            manufacturing_step=manufacturing_step,
            bom_item_id=bom_item_id,
            scheduled_start=start,
            scheduled_end=end,
            buffer_time=buffer_time,
            status=status,
        )
        self.db.add(schedule)
        self.db.flush()
        return schedule

    # ========================================================================
    # BULK SCHEDULING
    # ========================================================================

    def schedule_production(
        self,
        order: ManufacturingOrder,
        start_at: Optional[datetime] = None,
        actor_id: Optional[int] = None,
    ) -> ScheduleResult:
        """
        Schedule every routing step of an order's BOM.

        Items are processed deepest level first. Each item's steps are
        chained (end + buffer) and cannot start before the latest end among
        the item's children. The order gets one route holding all steps in
        scheduling order.

        Conflicts are reported in the result: a step with no free slot in
        the horizon is written as a 'delayed' schedule at its desired start.

        Raises:
            StructuralError: no BOM or no current version
            InvalidStateError: order is not draft/planned or already scheduled
        """
        bom = order.bill_of_material
        if bom is None:
            raise StructuralError(f"Order {order.order_number} has no bill of material")
        version = bom.current_version
        if version is None:
            raise StructuralError(f"BOM {bom.bom_number} has no current version", bom_id=bom.id)
        if order.status not in (OrderStatus.DRAFT, OrderStatus.PLANNED):
            raise InvalidStateError(
                f"Order {order.order_number} cannot be scheduled from '{order.status}'",
                current_state=order.status,
                allowed_states=[OrderStatus.DRAFT.value, OrderStatus.PLANNED.value],
            )
        if any(s.status in SCHEDULE_ACTIVE_STATUSES for s in order.schedules):
            raise InvalidStateError(f"Order {order.order_number} is already scheduled")

        start_at = (start_at or datetime.utcnow()).replace(second=0, microsecond=0)
        result = ScheduleResult(manufacturing_order_id=order.id)
        items = sorted(version.items, key=lambda i: (-i.level, i.sequence_number, i.id))
        item_end: Dict[int, datetime] = {}
        buffer = timedelta(minutes=self.buffer_minutes)

        with transactional(self.db):
            route = self._fresh_route(order, actor_id)

            for bom_item in items:
                child_ends = [item_end[c.id] for c in bom_item.children if c.id in item_end]
                steps = self.resolver.effective_steps(bom_item)
                if not steps:
                    if child_ends:
                        item_end[bom_item.id] = max(child_ends)
                    continue

                quantity = _required_quantity(order, bom_item)
                cursor = max([start_at] + [end + buffer for end in child_ends])
                last_end = cursor
                for step in steps:
                    end = self._schedule_step(order, route, bom_item, step, quantity, cursor, result)
                    if end is None:
                        continue
                    last_end = end
                    cursor = end + buffer
                item_end[bom_item.id] = last_end

            if result.scheduled:
                result.planned_start = min(s.scheduled_start for s in result.scheduled)
                result.planned_end = max(s.scheduled_end for s in result.scheduled)
                order.planned_start_date = result.planned_start
                order.planned_end_date = result.planned_end
            if order.status == OrderStatus.DRAFT:
                transition_order(self.db, order, OrderStatus.PLANNED, actor_id=actor_id)

        logger.info(
            f"Scheduled {len(result.scheduled)} steps for {order.order_number}",
            extra={"order_id": order.id, "conflicts": len(result.conflicts)},
        )
        return result

    def _fresh_route(self, order: ManufacturingOrder, actor_id: Optional[int]) -> ManufacturingRoute:
        for existing in order.routes:
            existing.is_active = False
        route = ManufacturingRoute(
            manufacturing_order=order,
            name=f"Route for {order.order_number}",
            is_active=True,
            created_by=actor_id,
        )
        self.db.add(route)
        self.db.flush()
        return route

    def _schedule_step(self, order, route, bom_item, step, quantity, desired_start, result) -> Optional[datetime]:
        work_cell = self.db.get(WorkCell, step.work_cell_id) if step.work_cell_id else None

        manufacturing_step = ManufacturingStep(
            routing_step_id=step.routing_step_id,
            name=step.name,
            work_cell_id=step.work_cell_id,
            setup_time=Decimal(str(step.setup_time)),
            cycle_time=Decimal(str(step.cycle_time)),
            tear_down_time=Decimal(str(step.tear_down_time)),
            step_type=step.step_type,
            quality_check_mode=step.quality_check_mode,
            sampling_size=step.sampling_size,
            status=StepStatus.PENDING.value,
        )
        siblings = list(route.steps)
        manufacturing_step.route = route
        add_step(self.db, manufacturing_step, siblings)

        if work_cell is None or not work_cell.is_active:
            result.conflicts.append(ScheduleConflict(
                work_cell_id=step.work_cell_id or 0,
                manufacturing_order_id=order.id,
                routing_step_id=step.routing_step_id,
                bom_item_id=bom_item.id,
                requested_start=desired_start,
                requested_end=desired_start,
                reason="No active work cell for step",
            ))
            return None

        duration = step_duration_minutes(
            step.setup_time, step.cycle_time, step.tear_down_time, quantity, work_cell
        )

        with work_cell_locks.hold(work_cell.id):
            self._lock_work_cell(work_cell.id)
            slot = self.find_available_slot(work_cell, desired_start, duration)
            if slot.found:
                status = ScheduleStatus.SCHEDULED.value
            else:
                status = ScheduleStatus.DELAYED.value
                clashes = self.check_capacity(work_cell.id, slot.start_time, slot.end_time)
                result.conflicts.append(ScheduleConflict(
                    work_cell_id=work_cell.id,
                    manufacturing_order_id=order.id,
                    routing_step_id=step.routing_step_id,
                    bom_item_id=bom_item.id,
                    requested_start=slot.start_time,
                    requested_end=slot.end_time,
                    reason=f"No free slot within {self.horizon_days} days",
                    conflicting_schedule_ids=[c.id for c in clashes],
                ))
            schedule = self._insert(
                order, work_cell, slot.start_time, slot.end_time, step.routing_step_id,
                manufacturing_step, bom_item.id, self.buffer_minutes, status,
            )

        result.scheduled.append(ScheduledStep(
            schedule_id=schedule.id,
            work_cell_id=work_cell.id,
            routing_step_id=step.routing_step_id,
            bom_item_id=bom_item.id,
            scheduled_start=schedule.scheduled_start,
            scheduled_end=schedule.scheduled_end,
            status=schedule.status,
        ))
        return schedule.scheduled_end

    # ========================================================================
    # RESCHEDULING
    # ========================================================================

    def reschedule(
        self,
        schedule: ProductionSchedule,
        new_start: datetime,
        actor_id: Optional[int] = None,
    ) -> RescheduleResult:
        """
        Move a schedule, keeping its duration, and push later schedules of
        the same order forward by the same delta where they would now start
        before the moved work ends.

        All moves commit together; any conflict rolls every move back.

        Raises:
            InvalidStateError: schedule is not active
            SchedulingConflictError: the new interval, or a cascaded one, is taken
        """
        if schedule.status not in SCHEDULE_ACTIVE_STATUSES:
            raise InvalidStateError(
                f"Schedule {schedule.id} is {schedule.status} and cannot be moved",
                current_state=schedule.status,
            )

        duration = schedule.scheduled_end - schedule.scheduled_start
        old_start, old_end = schedule.scheduled_start, schedule.scheduled_end
        delta = new_start - old_start
        new_end = new_start + duration

        followers = (
            self.db.query(ProductionSchedule)
            .filter(
                ProductionSchedule.manufacturing_order_id == schedule.manufacturing_order_id,
                ProductionSchedule.id != schedule.id,
                ProductionSchedule.status.in_(ACTIVE_SCHEDULE_VALUES),
                ProductionSchedule.scheduled_start >= old_end,
            )
            .order_by(ProductionSchedule.scheduled_start, ProductionSchedule.id)
            .all()
        )
        follower_ids = [f.id for f in followers]
        cascaded: List[int] = []

        with transactional(self.db):
            self._move(schedule, new_start, new_end, exclude_ids=[schedule.id] + follower_ids)

            frontier = new_end
            pending = list(followers)
            while pending:
                follower = pending.pop(0)
                if delta <= timedelta(0) or follower.scheduled_start >= frontier:
                    continue
                self._move(
                    follower,
                    follower.scheduled_start + delta,
                    follower.scheduled_end + delta,
                    exclude_ids=[follower.id] + [p.id for p in pending],
                )
                cascaded.append(follower.id)
                frontier = max(frontier, follower.scheduled_end)

            record_production_event(
                self.db,
                manufacturing_order_id=schedule.manufacturing_order_id,
                manufacturing_step_id=schedule.manufacturing_step_id,
                event_type="schedule_rescheduled",
                title=f"Schedule {schedule.id} moved by {int(delta.total_seconds() // 60)} minutes",
                old_value=old_start.isoformat(),
                new_value=new_start.isoformat(),
                actor_id=actor_id,
                payload={"cascaded_schedule_ids": cascaded},
            )

        if cascaded:
            logger.info(
                f"Reschedule of {schedule.id} cascaded to {len(cascaded)} schedules",
                extra={"schedule_id": schedule.id, "cascaded": cascaded},
            )
        return RescheduleResult(
            schedule_id=schedule.id,
            delta_minutes=int(delta.total_seconds() // 60),
            new_start=schedule.scheduled_start,
            new_end=schedule.scheduled_end,
            cascaded_schedule_ids=cascaded,
        )

    def _move(self, schedule: ProductionSchedule, start: datetime, end: datetime, exclude_ids: Sequence[int]) -> None:
        with work_cell_locks.hold(schedule.work_cell_id):
            self._lock_work_cell(schedule.work_cell_id)
            clashes = self.check_capacity(schedule.work_cell_id, start, end, exclude_ids)
            if clashes:
                raise SchedulingConflictError(
                    f"Work cell {schedule.work_cell_id} is booked between {start} and {end}",
                    work_cell_id=schedule.work_cell_id,
                    conflicting_schedule_ids=[c.id for c in clashes],
                )
            schedule.scheduled_start = start
            schedule.scheduled_end = end
            self.db.flush()

    def delay_schedule(self, schedule: ProductionSchedule, minutes: int) -> ProductionSchedule:
        """Push a schedule back and mark it delayed (it stops occupying the cell)."""
        if minutes <= 0:
            raise ValidationError("Delay must be a positive number of minutes", field="minutes", value=minutes)
        with transactional(self.db):
            schedule.scheduled_start = schedule.scheduled_start + timedelta(minutes=minutes)
            schedule.scheduled_end = schedule.scheduled_end + timedelta(minutes=minutes)
            schedule.status = ScheduleStatus.DELAYED.value
        return schedule

    # ========================================================================
    # ANALYSIS
    # ========================================================================

    def workload_analysis(
        self,
        start: datetime,
        end: datetime,
        work_cell_ids: Optional[Sequence[int]] = None,
    ) -> List[WorkloadEntry]:
        """Booked hours against capacity per work cell over [start, end)."""
        query = self.db.query(WorkCell).filter(WorkCell.is_active.is_(True))
        if work_cell_ids:
            query = query.filter(WorkCell.id.in_(list(work_cell_ids)))

        working_days = self.working_days_between(start.date(), end.date())
        entries = []
        for cell in query.order_by(WorkCell.code).all():
            schedules = self.check_capacity(cell.id, start, end)
            booked_minutes = sum(
                (min(s.scheduled_end, end) - max(s.scheduled_start, start)).total_seconds() / 60
                for s in schedules
            )
            capacity_hours = float(cell.effective_capacity_hours) * working_days
            scheduled_hours = booked_minutes / 60
            entries.append(WorkloadEntry(
                work_cell_id=cell.id,
                work_cell_code=cell.code,
                work_cell_name=cell.name,
                working_days=working_days,
                capacity_hours=round(capacity_hours, 2),
                scheduled_hours=round(scheduled_hours, 2),
                utilization_percent=round(scheduled_hours / capacity_hours * 100, 2) if capacity_hours else 0.0,
                schedule_count=len(schedules),
            ))
        return entries

    def calculate_lead_time(self, order: ManufacturingOrder) -> LeadTimeResult:
        """Total routing time of an order's BOM in working days."""
        total = Decimal("0")
        bom = order.bill_of_material
        version = bom.current_version if bom is not None else None
        if version is not None:
            for bom_item in version.items:
                quantity = _required_quantity(order, bom_item)
                for step in self.resolver.effective_steps(bom_item):
                    work_cell = self.db.get(WorkCell, step.work_cell_id) if step.work_cell_id else None
                    total += step_duration_minutes(
                        step.setup_time, step.cycle_time, step.tear_down_time, quantity, work_cell
                    )

        hours = float(total) / 60
        return LeadTimeResult(
            manufacturing_order_id=order.id,
            total_minutes=float(total),
            total_hours=round(hours, 2),
            working_days=int(math.ceil(hours / settings.DEFAULT_HOURS_PER_DAY)) if hours else 0,
        )


def no_overlapping_schedules(schedules: Iterable[ProductionSchedule]) -> bool:
    """True when no two active schedules on the same work cell overlap."""
    by_cell: Dict[int, List[ProductionSchedule]] = {}
    for schedule in schedules:
        if schedule.is_active:
            by_cell.setdefault(schedule.work_cell_id, []).append(schedule)
    for cell_schedules in by_cell.values():
        cell_schedules.sort(key=lambda s: s.scheduled_start)
        for earlier, later in zip(cell_schedules, cell_schedules[1:]):
            if later.scheduled_start < earlier.scheduled_end:
                return False
    return True


# =============================================================================
# Module-level entry points
# =============================================================================

def schedule_production(db: Session, order: ManufacturingOrder, start_at: Optional[datetime] = None,
                        actor_id: Optional[int] = None) -> ScheduleResult:
    return CapacityScheduler(db).schedule_production(order, start_at=start_at, actor_id=actor_id)


def find_available_slot(db: Session, work_cell: WorkCell, desired_start: datetime,
                        duration_minutes: int) -> AvailableSlot:
    return CapacityScheduler(db).find_available_slot(work_cell, desired_start, duration_minutes)


def check_capacity(db: Session, work_cell: WorkCell, start: datetime, end: datetime,
                   exclude_ids: Iterable[int] = ()) -> List[ProductionSchedule]:
    return CapacityScheduler(db).check_capacity(work_cell.id, start, end, exclude_ids)


def reschedule(db: Session, schedule: ProductionSchedule, new_start: datetime,
               actor_id: Optional[int] = None) -> RescheduleResult:
    return CapacityScheduler(db).reschedule(schedule, new_start, actor_id=actor_id)


def delay_schedule(db: Session, schedule: ProductionSchedule, minutes: int) -> ProductionSchedule:
    return CapacityScheduler(db).delay_schedule(schedule, minutes)


def workload_analysis(db: Session, start: datetime, end: datetime,
                      work_cell_ids: Optional[Sequence[int]] = None) -> List[WorkloadEntry]:
    return CapacityScheduler(db).workload_analysis(start, end, work_cell_ids)


def calculate_lead_time(db: Session, order: ManufacturingOrder) -> LeadTimeResult:
    return CapacityScheduler(db).calculate_lead_time(order)
