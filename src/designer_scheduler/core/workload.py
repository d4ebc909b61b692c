"""Workload snapshots of the designers compatible with a task type and brand."""

import logging
import sqlite3
from dataclasses import dataclass, field

from designer_scheduler.core import tasks as tasks_mod
from designer_scheduler.core import users as users_mod
from designer_scheduler.core.cache import COMPATIBLE_USERS_PREFIX
from designer_scheduler.core.context import SchedulingContext
from designer_scheduler.db.models import Task, User, UserRole, UserVacation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Specialist:
    """The designer's only visible role is the scheduled type."""

    type_id: int


@dataclass(frozen=True)
class Generalist:
    """The designer holds more than one role, or roles beyond the scheduled type."""


Specialization = Specialist | Generalist


def classify(roles: list[UserRole], type_id: int) -> Specialization:
    matching = [r for r in roles if r.type_id == type_id]
    if len(matching) == 1 and len(roles) == 1:
        return Specialist(type_id)
    return Generalist()


@dataclass
class DesignerWorkload:
    user: User
    specialization: Specialization
    tasks: list[Task] = field(default_factory=list)
    vacations: list[UserVacation] = field(default_factory=list)

    @property
    def is_specialist(self) -> bool:
        return isinstance(self.specialization, Specialist)

    @property
    def last_task(self) -> Task | None:
        return self.tasks[-1] if self.tasks else None

    @property
    def total_assigned_days(self) -> float:
        return sum(t.duration_days for t in self.tasks)


def find_compatible_users(
    db: sqlite3.Connection, ctx: SchedulingContext, type_id: int, brand_id: str
) -> list[User]:
    """Active designers with a role for the type and brand (or a global role), memoised."""
    key = f"{COMPATIBLE_USERS_PREFIX}{type_id}-{brand_id}"
    return ctx.cache.get_or_compute(
        key, lambda: users_mod.list_compatible_users(db, type_id, brand_id)
    )


def build_workload_snapshot(
    db: sqlite3.Connection,
    ctx: SchedulingContext,
    type_id: int,
    brand_id: str,
) -> list[DesignerWorkload]:
    """Queue and upcoming vacations of every designer compatible with (type, brand).

    Queues hold active tasks of that type and brand ordered by start date;
    vacations are those not yet over. An empty list means nobody can take the task.
    """
    today = ctx.now().astimezone(ctx.calendar.work_hours.tz).date()
    snapshot = []
    for user in find_compatible_users(db, ctx, type_id, brand_id):
        snapshot.append(
            DesignerWorkload(
                user=user,
                specialization=classify(user.roles, type_id),
                tasks=tasks_mod.list_user_queue(db, user.id, type_id=type_id, brand_id=brand_id),
                vacations=users_mod.list_vacations(db, user.id, ending_on_or_after=today),
            )
        )

    logger.debug(
        "Workload snapshot for type=%s brand=%s: %d compatible designers",
        type_id, brand_id, len(snapshot),
    )
    return snapshot
