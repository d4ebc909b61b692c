"""Data models for the designer scheduler."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


class Priority(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


class Status(str, Enum):
    TO_DO = "TO_DO"
    IN_PROGRESS = "IN_PROGRESS"
    ON_APPROVAL = "ON_APPROVAL"
    COMPLETE = "COMPLETE"


ACTIVE_STATUSES = (Status.TO_DO, Status.IN_PROGRESS, Status.ON_APPROVAL)

TIER_NAMES = ("S", "A", "B", "C", "D", "E")

HOURS_PER_DAY = 8


@dataclass
class Brand:
    id: str
    name: str
    is_active: bool = True
    created_at: datetime | None = None


@dataclass
class TaskType:
    id: int
    name: str


@dataclass
class TierList:
    id: int
    name: str
    duration: float


@dataclass
class TaskCategory:
    id: int
    name: str
    type_id: int
    tier_id: int
    tier_name: str = ""
    duration: float = 0.0


@dataclass
class UserRole:
    id: int | None = None
    user_id: str = ""
    type_id: int = 0
    brand_id: str | None = None


@dataclass
class UserVacation:
    """A vacation covering whole days, ``end_date`` included."""

    id: int | None = None
    user_id: str = ""
    start_date: date | None = None
    end_date: date | None = None


@dataclass
class User:
    id: str
    name: str
    email: str | None = None
    active: bool = True
    created_at: datetime | None = None
    roles: list[UserRole] = field(default_factory=list)
    vacations: list[UserVacation] = field(default_factory=list)


@dataclass
class Task:
    id: str
    name: str
    type_id: int
    category_id: int
    brand_id: str
    start_date: datetime
    deadline: datetime
    priority: Priority = Priority.NORMAL
    status: Status = Status.TO_DO
    description: str = ""
    custom_duration: float | None = None
    tier_duration: float = 0.0
    url: str | None = None
    assignees: list[str] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def duration_days(self) -> float:
        if self.custom_duration is not None:
            return self.custom_duration
        return self.tier_duration


@dataclass
class TaskEvent:
    id: int | None = None
    task_id: str = ""
    event_type: str = ""
    old_value: str | None = None
    new_value: str | None = None
    created_at: datetime | None = None


@dataclass
class UserSlot:
    user_id: str
    user_name: str
    available_date: datetime
    task_count: int = 0
    is_specialist: bool = False
    last_task_deadline: datetime | None = None
    total_assigned_days: float = 0.0


@dataclass
class VacationAwareUserSlot(UserSlot):
    potential_task_start: datetime | None = None
    potential_task_end: datetime | None = None
    has_vacation_conflict: bool = False
    vacations_skipped: int = 0
    vacation_conflict_details: list[str] = field(default_factory=list)
    upcoming_vacations: list[UserVacation] = field(default_factory=list)
    working_days_until_available: int = 0

    def to_user_slot(self) -> UserSlot:
        return UserSlot(
            user_id=self.user_id,
            user_name=self.user_name,
            available_date=self.available_date,
            task_count=self.task_count,
            is_specialist=self.is_specialist,
            last_task_deadline=self.last_task_deadline,
            total_assigned_days=self.total_assigned_days,
        )


@dataclass
class VacationAdjustment:
    original_date: datetime
    adjusted_date: datetime
    conflicting_vacations: list[str] = field(default_factory=list)


@dataclass
class InsertionResult:
    start_date: datetime
    deadline: datetime
    affected_tasks: list[Task] = field(default_factory=list)
    reason: str = ""
    vacation_adjustment: VacationAdjustment | None = None


@dataclass
class RestampedTask:
    task: Task
    new_start: datetime
    new_deadline: datetime


@dataclass
class AssignmentDiagnostics:
    total_compatible: int = 0
    total_available: int = 0
    all_on_vacation: bool = False
