"""Create a task and assign it: validate, pick designers, insert, push the queue."""

import logging
import sqlite3
from dataclasses import dataclass, field

from designer_scheduler.config import Config
from designer_scheduler.core import catalog as catalog_mod
from designer_scheduler.core import tasks as tasks_mod
from designer_scheduler.core.cache import invalidate_task_assignment_cache
from designer_scheduler.core.context import SchedulingContext
from designer_scheduler.core.insertion import (
    calculate_priority_insertion,
    shift_tasks_after_insertion,
)
from designer_scheduler.core.selection import find_available_designers, get_best_user_with_cache
from designer_scheduler.core.validation import (
    NoCandidateError,
    NotFoundError,
    TaskRequest,
    ValidationError,
)
from designer_scheduler.core.workload import find_compatible_users
from designer_scheduler.db.engine import transaction
from designer_scheduler.db.models import InsertionResult, RestampedTask, Status, Task
from designer_scheduler.integrations.slack import notify_task_changed

logger = logging.getLogger(__name__)

DURATION_TOLERANCE = 0.001


@dataclass
class AssignmentOutcome:
    task: Task
    insertion: InsertionResult
    restamped: list[RestampedTask] = field(default_factory=list)
    auto_assigned: bool = False


def _resolve_assignees(
    db: sqlite3.Connection, ctx: SchedulingContext, request: TaskRequest, type_id: int
) -> tuple[list[str], bool]:
    if request.assigned_user_ids:
        compatible = {u.id for u in find_compatible_users(db, ctx, type_id, request.brand_id)}
        assignees = list(dict.fromkeys(u for u in request.assigned_user_ids if u in compatible))
        if not assignees:
            raise ValidationError(
                "assigned_user_ids", "none of the users can take tasks of this type for this brand"
            )
        dropped = set(request.assigned_user_ids) - set(assignees)
        if dropped:
            logger.warning("Ignoring incompatible assignees: %s", ", ".join(sorted(dropped)))
        return assignees, False

    best = get_best_user_with_cache(
        db, ctx, type_id, request.brand_id, request.priority, request.duration_days
    )
    if not best:
        _, diagnostics = find_available_designers(
            db, ctx, type_id, request.brand_id, request.duration_days
        )
        raise NoCandidateError(diagnostics)
    return [best.user_id], True


def create_assigned_task(
    db: sqlite3.Connection,
    ctx: SchedulingContext,
    request: TaskRequest,
    config: Config | None = None,
) -> AssignmentOutcome:
    """Create a task, schedule it in its assignees' queues and push what follows.

    Without explicit assignees the best designer is chosen. With several
    assignees the duration is split evenly and the latest start among them
    wins. Reads, the insert and every push-chain write happen in one
    transaction.
    """
    category = catalog_mod.get_category(db, request.category_id)
    if not category:
        raise NotFoundError("Category", request.category_id)
    if request.type_id is not None and request.type_id != category.type_id:
        raise ValidationError("category_id", f"does not belong to type {request.type_id}")
    type_id = category.type_id

    brand = catalog_mod.get_brand(db, request.brand_id)
    if not brand:
        raise NotFoundError("Brand", request.brand_id)
    if not brand.is_active:
        raise ValidationError("brand_id", "brand is inactive")

    custom_duration = None
    if abs(request.duration_days - category.duration) > DURATION_TOLERANCE:
        custom_duration = request.duration_days

    with transaction(db):
        assignees, auto_assigned = _resolve_assignees(db, ctx, request, type_id)

        per_assignee = request.duration_days / len(assignees)
        insertions = {
            user_id: calculate_priority_insertion(
                db, ctx, user_id, request.priority, per_assignee
            )
            for user_id in assignees
        }
        chosen = max(insertions.values(), key=lambda r: r.start_date)

        task_id = tasks_mod._insert_task(
            db,
            request.name,
            type_id=type_id,
            category_id=category.id,
            brand_id=brand.id,
            start_date=chosen.start_date,
            deadline=chosen.deadline,
            priority=request.priority,
            status=Status.TO_DO,
            description=request.description,
            custom_duration=custom_duration,
            assignees=assignees,
        )

        restamped = []
        seen = set()
        for user_id in assignees:
            chain = [t for t in insertions[user_id].affected_tasks if t.id not in seen]
            seen.update(t.id for t in chain)
            restamped.extend(shift_tasks_after_insertion(db, ctx, chain, chosen.deadline))

    invalidate_task_assignment_cache(ctx.cache)
    task = tasks_mod.get_task(db, task_id)
    logger.info(
        "Created task %s for %s: %s -> %s (%s); pushed %d task(s)",
        task.id, ", ".join(assignees), task.start_date.isoformat(),
        task.deadline.isoformat(), chosen.reason, len(restamped),
    )

    if config:
        notify_task_changed(config.slack_bot_token, config.slack_channel, task, "created")
        for item in restamped:
            moved = tasks_mod.get_task(db, item.task.id)
            if moved:
                notify_task_changed(
                    config.slack_bot_token, config.slack_channel, moved, "rescheduled"
                )

    return AssignmentOutcome(
        task=task, insertion=chosen, restamped=restamped, auto_assigned=auto_assigned
    )


def change_task_status(
    db: sqlite3.Connection,
    ctx: SchedulingContext,
    task_id: str,
    status: Status,
    config: Config | None = None,
) -> Task:
    """Update a task's status; COMPLETE tasks leave every queue."""
    task = tasks_mod.update_task_status(db, task_id, status)
    if not task:
        raise NotFoundError("Task", task_id)
    invalidate_task_assignment_cache(ctx.cache)
    if config:
        notify_task_changed(config.slack_bot_token, config.slack_channel, task, "updated")
    return task
