"""Input validation and the error taxonomy of the assignment engine."""

from dataclasses import dataclass, field

from designer_scheduler.db.models import AssignmentDiagnostics, Priority

MIN_DURATION_DAYS = 0.1
MAX_DURATION_DAYS = 30
MAX_ASSIGNEES = 5


class ValidationError(ValueError):
    """Raised when a request field is missing or invalid."""

    def __init__(self, field_name: str, message: str):
        super().__init__(f"{field_name}: {message}")
        self.field = field_name
        self.message = message


class NotFoundError(LookupError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity: str, key):
        super().__init__(f"{entity} not found: {key}")
        self.entity = entity
        self.key = key


class UnknownPriorityError(ValueError):
    """Raised when the engine receives a value that is not a Priority."""


class NoCandidateError(Exception):
    """Raised by task creation when no designer can take the task."""

    def __init__(self, diagnostics: AssignmentDiagnostics, message: str | None = None):
        super().__init__(
            message
            or (
                "No designer available: "
                f"{diagnostics.total_compatible} compatible, "
                f"{diagnostics.total_available} available"
            )
        )
        self.diagnostics = diagnostics


def require_priority(value) -> Priority:
    """Engine-side guard: anything but a Priority member is a programming error."""
    if isinstance(value, Priority):
        return value
    raise UnknownPriorityError(f"Unknown priority: {value!r}")


def parse_priority(value) -> Priority:
    if value is None or value == "":
        raise ValidationError("priority", "is required")
    if isinstance(value, Priority):
        return value
    try:
        return Priority(str(value).upper())
    except ValueError:
        allowed = ", ".join(p.value for p in Priority)
        raise ValidationError("priority", f"must be one of {allowed}") from None


def parse_positive_int(field_name: str, value) -> int:
    if value is None or value == "":
        raise ValidationError(field_name, "is required")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(field_name, "must be an integer") from None
    if number <= 0:
        raise ValidationError(field_name, "must be greater than 0")
    return number


def parse_duration(value, field_name: str = "duration_days") -> float:
    if value is None or value == "":
        raise ValidationError(field_name, "is required")
    try:
        days = float(value)
    except (TypeError, ValueError):
        raise ValidationError(field_name, "must be a number") from None
    if not MIN_DURATION_DAYS <= days <= MAX_DURATION_DAYS:
        raise ValidationError(
            field_name,
            f"must be between {MIN_DURATION_DAYS} and {MAX_DURATION_DAYS} days",
        )
    return days


def require_text(field_name: str, value, min_length: int = 1, max_length: int = 100) -> str:
    if value is not None and not isinstance(value, str):
        raise ValidationError(field_name, "must be a string")
    text = (value or "").strip()
    if not text:
        raise ValidationError(field_name, "is required")
    if not min_length <= len(text) <= max_length:
        raise ValidationError(
            field_name, f"must be between {min_length} and {max_length} characters"
        )
    return text


@dataclass
class TaskRequest:
    """A validated request to create and assign a task."""

    name: str
    category_id: int
    brand_id: str
    priority: Priority
    duration_days: float
    type_id: int | None = None
    description: str = ""
    assigned_user_ids: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "TaskRequest":
        name = require_text("name", data.get("name"), min_length=2)
        description = data.get("description") or ""
        if not isinstance(description, str):
            raise ValidationError("description", "must be a string")
        if len(description) > 500:
            raise ValidationError("description", "must be less than 500 characters")

        brand_id = data.get("brand_id")
        if not brand_id:
            raise ValidationError("brand_id", "is required")

        type_id = data.get("type_id")
        assignees = data.get("assigned_user_ids") or []
        if not isinstance(assignees, list):
            raise ValidationError("assigned_user_ids", "must be a list")
        if len(assignees) > MAX_ASSIGNEES:
            raise ValidationError(
                "assigned_user_ids", f"at most {MAX_ASSIGNEES} users can be assigned"
            )

        return cls(
            name=name,
            category_id=parse_positive_int("category_id", data.get("category_id")),
            brand_id=str(brand_id),
            priority=parse_priority(data.get("priority")),
            duration_days=parse_duration(data.get("duration_days")),
            type_id=parse_positive_int("type_id", type_id) if type_id not in (None, "") else None,
            description=description,
            assigned_user_ids=[str(a) for a in assignees],
        )
