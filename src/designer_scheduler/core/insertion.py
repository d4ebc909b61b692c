"""Priority-driven insertion of a new task into a designer's queue.

A queue is a designer's active tasks ordered by start date. Inserting a task
never moves position pointers: the tasks behind the insertion point are
"pushed" by recomputing their start and deadline one after another, starting
right after the new task's deadline.

Policies:

- URGENT goes first and pushes the whole queue.
- HIGH goes right after the current first task.
- NORMAL goes before the last LOW task that has fewer than
  ``normal_before_low`` NORMAL tasks ahead of it, otherwise at the end.
- LOW goes at the end, unless the queue already ends with
  ``consecutive_low`` or more LOW tasks, in which case it goes before that run.
"""

import logging
import sqlite3
from datetime import datetime

from designer_scheduler.core import tasks as tasks_mod
from designer_scheduler.core import users as users_mod
from designer_scheduler.core.cache import invalidate_task_assignment_cache
from designer_scheduler.core.context import SchedulingContext, Thresholds
from designer_scheduler.core.slots import find_conflict_free_window
from designer_scheduler.core.validation import require_priority
from designer_scheduler.db.engine import transaction
from designer_scheduler.db.models import (
    InsertionResult,
    Priority,
    RestampedTask,
    Task,
    VacationAdjustment,
)

logger = logging.getLogger(__name__)


def find_insertion_index(
    queue: list[Task], priority: Priority, thresholds: Thresholds
) -> tuple[int, str]:
    """Index in ``queue`` the new task takes, and a human-readable reason."""
    priority = require_priority(priority)

    if not queue:
        return 0, f"{priority.value}: first task in the queue"

    if priority == Priority.URGENT:
        return 0, "URGENT: inserted first, pushes every task"

    if priority == Priority.HIGH:
        return 1, f'HIGH: after "{queue[0].name}"'

    if priority == Priority.NORMAL:
        limit = thresholds.normal_before_low
        for i in range(len(queue) - 1, -1, -1):
            if queue[i].priority != Priority.LOW:
                continue
            normals_before = sum(1 for t in queue[:i] if t.priority == Priority.NORMAL)
            if normals_before < limit:
                return i, f'NORMAL: before LOW "{queue[i].name}" ({normals_before}/{limit})'
        return len(queue), "NORMAL: appended at the end"

    limit = thresholds.consecutive_low
    trailing_low = 0
    for task in reversed(queue):
        if task.priority != Priority.LOW:
            break
        trailing_low += 1

    if trailing_low < limit:
        return len(queue), f"LOW: appended at the end ({trailing_low}/{limit} LOW)"
    return (
        len(queue) - trailing_low,
        f"LOW: before the trailing run of {trailing_low} LOW tasks (limit {limit})",
    )


def plan_insertion(
    ctx: SchedulingContext,
    queue: list[Task],
    priority: Priority,
    duration_days: float,
    now: datetime | None = None,
) -> InsertionResult:
    """Where a new task lands in ``queue`` and which tasks it pushes. Pure."""
    index, reason = find_insertion_index(queue, priority, ctx.thresholds)
    now = now or ctx.now()

    predecessor = queue[index - 1] if index > 0 else None
    anchor = max(predecessor.deadline, now) if predecessor else now

    start = ctx.calendar.next_available_start(anchor)
    deadline = ctx.calendar.deadline_for_days(start, duration_days)
    return InsertionResult(
        start_date=start,
        deadline=deadline,
        affected_tasks=list(queue[index:]),
        reason=reason,
    )


def restamp_chain(
    ctx: SchedulingContext, affected: list[Task], after: datetime
) -> list[RestampedTask]:
    """Fold the push-chain into new windows, each starting after the previous deadline."""
    plan = []
    cursor = after
    for task in affected:
        start = ctx.calendar.next_available_start(cursor)
        deadline = ctx.calendar.deadline_for_days(start, task.duration_days)
        plan.append(RestampedTask(task=task, new_start=start, new_deadline=deadline))
        cursor = deadline
    return plan


def calculate_priority_insertion(
    db: sqlite3.Connection,
    ctx: SchedulingContext,
    user_id: str,
    priority: Priority,
    duration_days: float,
    respect_vacations: bool = True,
) -> InsertionResult:
    """Plan the insertion of a new task into a designer's whole active queue.

    With ``respect_vacations`` the new task's own window is moved past any
    vacation it would overlap; the pushed tasks follow the moved deadline.
    """
    priority = require_priority(priority)
    users_mod.require_user(db, user_id)

    now = ctx.now()
    queue = tasks_mod.list_user_queue(db, user_id)
    result = plan_insertion(ctx, queue, priority, duration_days, now=now)

    if respect_vacations:
        today = now.astimezone(ctx.calendar.work_hours.tz).date()
        vacations = users_mod.list_vacations(db, user_id, ending_on_or_after=today)
        window = find_conflict_free_window(ctx, result.start_date, duration_days, vacations)
        if window.vacations_skipped:
            result.vacation_adjustment = VacationAdjustment(
                original_date=result.start_date,
                adjusted_date=window.start,
                conflicting_vacations=window.conflicts,
            )
            result.start_date = window.start
            result.deadline = window.end
            result.reason += " (adjusted for vacations)"

    logger.info(
        "Insertion for %s (%s, %s days): %s -> %s, pushes %d task(s); %s",
        user_id, priority.value, duration_days,
        result.start_date.isoformat(), result.deadline.isoformat(),
        len(result.affected_tasks), result.reason,
    )
    return result


def shift_tasks_after_insertion(
    db: sqlite3.Connection,
    ctx: SchedulingContext,
    affected: list[Task],
    new_deadline: datetime,
) -> list[RestampedTask]:
    """Re-stamp the push-chain after ``new_deadline`` and persist it atomically.

    The whole chain is computed before any write; the writes share one
    transaction so a failure leaves every task untouched.
    """
    plan = restamp_chain(ctx, affected, new_deadline)
    if not plan:
        return plan

    with transaction(db):
        for item in plan:
            if (item.new_start, item.new_deadline) == (item.task.start_date, item.task.deadline):
                continue
            tasks_mod._update_task_dates(db, item.task.id, item.new_start, item.new_deadline)

    invalidate_task_assignment_cache(ctx.cache)
    logger.info("Re-stamped %d pushed task(s) after %s", len(plan), new_deadline.isoformat())
    return plan
