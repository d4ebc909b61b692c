"""Task management operations."""

import re
import sqlite3
from datetime import datetime, timezone

from designer_scheduler.db.models import ACTIVE_STATUSES, Priority, Status, Task, TaskEvent

_TASK_SELECT = """
    SELECT tk.*, tl.duration AS tier_duration
    FROM tasks tk
    JOIN task_categories c ON c.id = tk.category_id
    JOIN tier_lists tl ON tl.id = c.tier_id
"""

_ACTIVE_PLACEHOLDERS = ", ".join("?" for _ in ACTIVE_STATUSES)
_ACTIVE_VALUES = [s.value for s in ACTIVE_STATUSES]


def slugify(title: str) -> str:
    """Convert a title to a URL-friendly slug."""
    slug = title.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")[:60]


def _unique_id(db: sqlite3.Connection, base_slug: str) -> str:
    """Generate a unique task ID from a slug, appending a number if needed."""
    base_slug = base_slug or "task"
    existing = db.execute(
        "SELECT id FROM tasks WHERE id = ?", (base_slug,)
    ).fetchone()
    if not existing:
        return base_slug

    i = 2
    while True:
        candidate = f"{base_slug}-{i}"
        existing = db.execute(
            "SELECT id FROM tasks WHERE id = ?", (candidate,)
        ).fetchone()
        if not existing:
            return candidate
        i += 1


def _insert_task(
    db: sqlite3.Connection,
    name: str,
    type_id: int,
    category_id: int,
    brand_id: str,
    start_date: datetime,
    deadline: datetime,
    priority: Priority = Priority.NORMAL,
    status: Status = Status.TO_DO,
    description: str = "",
    custom_duration: float | None = None,
    assignees: list[str] | None = None,
    task_id: str | None = None,
    url: str | None = None,
) -> str:
    """Insert a task and its assignments without committing. Returns the task id."""
    task_id = task_id or _unique_id(db, slugify(name))
    db.execute(
        """INSERT INTO tasks (id, name, description, type_id, category_id, brand_id,
                              priority, status, start_date, deadline, custom_duration, url)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            task_id,
            name,
            description,
            type_id,
            category_id,
            brand_id,
            Priority(priority).value,
            Status(status).value,
            _dt_to_db(start_date),
            _dt_to_db(deadline),
            custom_duration,
            url,
        ),
    )
    for user_id in assignees or []:
        db.execute(
            "INSERT INTO task_assignments (task_id, user_id) VALUES (?, ?)",
            (task_id, user_id),
        )
    _log_event(db, task_id, "created", None, Status(status).value)
    return task_id


def create_task(db: sqlite3.Connection, name: str, **kwargs) -> Task:
    """Create a task with already-computed dates."""
    task_id = _insert_task(db, name, **kwargs)
    db.commit()
    return get_task(db, task_id)


def get_task(db: sqlite3.Connection, task_id: str) -> Task | None:
    """Get a task by ID with its assignees."""
    row = db.execute(_TASK_SELECT + " WHERE tk.id = ?", (task_id,)).fetchone()
    if not row:
        return None
    task = _row_to_task(row)
    task.assignees = _assignees(db, task_id)
    return task


def list_tasks(
    db: sqlite3.Connection,
    status: Status | None = None,
    user_id: str | None = None,
    brand_id: str | None = None,
    include_complete: bool = True,
) -> list[Task]:
    """List tasks ordered by start date, with optional filters."""
    query = _TASK_SELECT + " WHERE 1 = 1"
    params: list = []

    if status:
        query += " AND tk.status = ?"
        params.append(Status(status).value)
    elif not include_complete:
        query += f" AND tk.status IN ({_ACTIVE_PLACEHOLDERS})"
        params.extend(_ACTIVE_VALUES)

    if user_id:
        query += " AND tk.id IN (SELECT task_id FROM task_assignments WHERE user_id = ?)"
        params.append(user_id)

    if brand_id:
        query += " AND tk.brand_id = ?"
        params.append(brand_id)

    query += " ORDER BY tk.start_date ASC, tk.created_at ASC"
    tasks = []
    for row in db.execute(query, params).fetchall():
        task = _row_to_task(row)
        task.assignees = _assignees(db, task.id)
        tasks.append(task)
    return tasks


def list_user_queue(
    db: sqlite3.Connection,
    user_id: str,
    type_id: int | None = None,
    brand_id: str | None = None,
) -> list[Task]:
    """A designer's active (non-complete) tasks ordered by start date."""
    query = (
        _TASK_SELECT
        + " JOIN task_assignments a ON a.task_id = tk.id"
        + f" WHERE a.user_id = ? AND tk.status IN ({_ACTIVE_PLACEHOLDERS})"
    )
    params: list = [user_id, *_ACTIVE_VALUES]
    if type_id is not None:
        query += " AND tk.type_id = ?"
        params.append(type_id)
    if brand_id is not None:
        query += " AND tk.brand_id = ?"
        params.append(brand_id)
    query += " ORDER BY tk.start_date ASC, tk.deadline ASC"

    tasks = []
    for row in db.execute(query, params).fetchall():
        task = _row_to_task(row)
        task.assignees = _assignees(db, task.id)
        tasks.append(task)
    return tasks


def update_task_status(
    db: sqlite3.Connection,
    task_id: str,
    status: Status,
) -> Task | None:
    """Update a task's status. Returns the updated task."""
    task = get_task(db, task_id)
    if not task:
        return None

    status = Status(status)
    old_status = task.status
    db.execute(
        "UPDATE tasks SET status = ?, updated_at = datetime('now') WHERE id = ?",
        (status.value, task_id),
    )
    _log_event(db, task_id, "status_changed", old_status.value, status.value)
    db.commit()
    return get_task(db, task_id)


def _update_task_dates(
    db: sqlite3.Connection,
    task_id: str,
    start_date: datetime,
    deadline: datetime,
):
    """Re-stamp a task's window without committing."""
    row = db.execute(
        "SELECT start_date, deadline FROM tasks WHERE id = ?", (task_id,)
    ).fetchone()
    db.execute(
        """UPDATE tasks SET start_date = ?, deadline = ?, updated_at = datetime('now')
           WHERE id = ?""",
        (_dt_to_db(start_date), _dt_to_db(deadline), task_id),
    )
    old = f"{row['start_date']} -> {row['deadline']}" if row else None
    _log_event(
        db, task_id, "rescheduled", old, f"{_dt_to_db(start_date)} -> {_dt_to_db(deadline)}"
    )


def get_task_events(db: sqlite3.Connection, task_id: str) -> list[TaskEvent]:
    """Get the event history for a task."""
    rows = db.execute(
        "SELECT * FROM task_events WHERE task_id = ? ORDER BY id",
        (task_id,),
    ).fetchall()
    return [
        TaskEvent(
            id=r["id"],
            task_id=r["task_id"],
            event_type=r["event_type"],
            old_value=r["old_value"],
            new_value=r["new_value"],
            created_at=_parse_dt(r["created_at"]),
        )
        for r in rows
    ]


def _log_event(
    db: sqlite3.Connection,
    task_id: str,
    event_type: str,
    old_value: str | None,
    new_value: str | None,
):
    db.execute(
        "INSERT INTO task_events (task_id, event_type, old_value, new_value) VALUES (?, ?, ?, ?)",
        (task_id, event_type, old_value, new_value),
    )


def _assignees(db: sqlite3.Connection, task_id: str) -> list[str]:
    rows = db.execute(
        "SELECT user_id FROM task_assignments WHERE task_id = ? ORDER BY user_id",
        (task_id,),
    ).fetchall()
    return [r["user_id"] for r in rows]


def _row_to_task(row: sqlite3.Row) -> Task:
    return Task(
        id=row["id"],
        name=row["name"],
        description=row["description"] or "",
        type_id=row["type_id"],
        category_id=row["category_id"],
        brand_id=row["brand_id"],
        priority=Priority(row["priority"]),
        status=Status(row["status"]),
        start_date=_parse_dt(row["start_date"]),
        deadline=_parse_dt(row["deadline"]),
        custom_duration=row["custom_duration"],
        tier_duration=row["tier_duration"],
        url=row["url"],
        created_at=_parse_dt(row["created_at"]),
        updated_at=_parse_dt(row["updated_at"]),
    )


def _dt_to_db(val: datetime) -> str:
    if val.tzinfo is None:
        val = val.replace(tzinfo=timezone.utc)
    return val.astimezone(timezone.utc).isoformat()


def _parse_dt(val: str | None) -> datetime | None:
    if val is None:
        return None
    return datetime.fromisoformat(val)
