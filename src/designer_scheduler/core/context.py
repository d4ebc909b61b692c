"""Per-request scheduling context shared by the assignment engine."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from designer_scheduler.core.cache import CacheService
from designer_scheduler.core.calendar import WorkingCalendar


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Thresholds:
    generalist_threshold_days: float = 10
    normal_before_low: int = 5
    consecutive_low: int = 4


@dataclass
class SchedulingContext:
    calendar: WorkingCalendar = field(default_factory=WorkingCalendar)
    thresholds: Thresholds = field(default_factory=Thresholds)
    cache: CacheService = field(default_factory=CacheService)
    clock: Callable[[], datetime] = utcnow

    def now(self) -> datetime:
        return self.clock()
