"""Map statuses and priorities from external project-management tools."""

from designer_scheduler.db.models import Priority, Status

# Ordered, first match wins. ``None`` means the task is finished and excluded.
STATUS_RULES: list[tuple[tuple[str, ...], Status | None]] = [
    (("approval", "review", "qa", "testing", "check"), Status.ON_APPROVAL),
    (("progress", "active", "working", "development", "doing"), Status.IN_PROGRESS),
    (("to do", "todo", "open", "backlog", "new", "pending", "ready"), Status.TO_DO),
    (
        ("done", "complete", "finished", "closed", "resolved", "delivered", "merged", "deployed"),
        None,
    ),
]

PRIORITY_RULES: list[tuple[tuple[str, ...], Priority]] = [
    (("urgent", "critical", "blocker", "asap"), Priority.URGENT),
    (("high", "important"), Priority.HIGH),
    (("low", "minor", "trivial"), Priority.LOW),
    (("normal", "medium", "default"), Priority.NORMAL),
]


def _normalize(raw: str | None) -> str:
    return " ".join((raw or "").lower().replace("_", " ").replace("-", " ").split())


def map_external_status(raw: str | None) -> Status | None:
    """Status for an external status name, or None when the task is finished."""
    text = _normalize(raw)
    for keywords, status in STATUS_RULES:
        if any(k in text for k in keywords):
            return status
    return Status.TO_DO


def is_active_external_status(raw: str | None) -> bool:
    return map_external_status(raw) is not None


def map_external_priority(raw: str | None) -> Priority:
    text = _normalize(raw)
    for keywords, priority in PRIORITY_RULES:
        if any(k in text for k in keywords):
            return priority
    return Priority.NORMAL
