"""Earliest vacation-free start for a candidate task, per designer."""

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime

from designer_scheduler.core.cache import USER_SLOTS_PREFIX
from designer_scheduler.core.context import SchedulingContext
from designer_scheduler.core.workload import DesignerWorkload, build_workload_snapshot
from designer_scheduler.db.models import UserVacation, VacationAwareUserSlot

logger = logging.getLogger(__name__)


@dataclass
class SlotWindow:
    start: datetime
    end: datetime
    vacations_skipped: int = 0
    conflicts: list[str] = field(default_factory=list)


def _overlaps(start: datetime, end: datetime, vac_start: datetime, vac_end: datetime) -> bool:
    # Half-open at the vacation start: a window ending exactly at 00:00 of the
    # first vacation day is free, unlike an inclusive end >= vacation start test.
    # A zero-length window still conflicts when it sits inside the vacation.
    return start < vac_end and (end > vac_start or start >= vac_start)


def describe_vacation(vacation: UserVacation) -> str:
    return f"{vacation.start_date.isoformat()} to {vacation.end_date.isoformat()}"


def find_conflict_free_window(
    ctx: SchedulingContext,
    base: datetime,
    duration_days: float,
    vacations: list[UserVacation],
) -> SlotWindow:
    """First working window of ``duration_days`` at or after ``base`` that avoids every vacation.

    Each conflict moves the candidate start past the end of the conflicting
    vacation, so a vacation can conflict at most once and the scan ends after
    at most ``len(vacations)`` moves.
    """
    calendar = ctx.calendar
    windows = sorted(
        ((calendar.vacation_window(v), v) for v in vacations),
        key=lambda item: item[0][0],
    )

    start = calendar.next_available_start(base)
    skipped = 0
    conflicts = []
    while True:
        end = calendar.deadline_for_days(start, duration_days)
        conflict = next(
            ((bounds, v) for bounds, v in windows if _overlaps(start, end, *bounds)),
            None,
        )
        if conflict is None:
            return SlotWindow(start=start, end=end, vacations_skipped=skipped, conflicts=conflicts)

        (_, vac_end), vacation = conflict
        skipped += 1
        conflicts.append(describe_vacation(vacation))
        logger.debug(
            "Window %s -> %s overlaps vacation %s; retrying after it",
            start.isoformat(), end.isoformat(), describe_vacation(vacation),
        )
        start = calendar.next_available_start(vac_end)


def calculate_vacation_aware_slot(
    ctx: SchedulingContext,
    workload: DesignerWorkload,
    duration_days: float,
) -> VacationAwareUserSlot:
    """Derive a designer's slot: when they could start the task without hitting a vacation."""
    now = ctx.now()
    last_deadline = max((t.deadline for t in workload.tasks), default=None)
    base = max(last_deadline, now) if last_deadline else now
    window = find_conflict_free_window(ctx, base, duration_days, workload.vacations)

    return VacationAwareUserSlot(
        user_id=workload.user.id,
        user_name=workload.user.name,
        available_date=window.start,
        task_count=len(workload.tasks),
        is_specialist=workload.is_specialist,
        last_task_deadline=last_deadline,
        total_assigned_days=workload.total_assigned_days,
        potential_task_start=window.start,
        potential_task_end=window.end,
        has_vacation_conflict=window.vacations_skipped > 0,
        vacations_skipped=window.vacations_skipped,
        vacation_conflict_details=window.conflicts,
        upcoming_vacations=list(workload.vacations),
        working_days_until_available=ctx.calendar.working_days_between(
            now, window.start, workload.vacations
        ),
    )


def calculate_vacation_aware_slots(
    db: sqlite3.Connection,
    ctx: SchedulingContext,
    type_id: int,
    brand_id: str,
    duration_days: float,
) -> list[VacationAwareUserSlot]:
    """Slots for every designer compatible with (type, brand), memoised."""
    key = f"{USER_SLOTS_PREFIX}{type_id}-{brand_id}-{duration_days}"

    def compute():
        snapshot = build_workload_snapshot(db, ctx, type_id, brand_id)
        return [calculate_vacation_aware_slot(ctx, w, duration_days) for w in snapshot]

    return ctx.cache.get_or_compute(key, compute)
