"""Working-hours calendar.

All scheduling instants are timezone-aware UTC datetimes. The work window is
expressed in one fixed UTC offset (the organization's home time zone); the
calendar is not aware of per-designer time zones.

Two daily work blocks are used: ``start -> lunch_start`` and
``lunch_end -> end``. An ``end`` of 24 means midnight at the end of the day.
One working day is ``HOURS_PER_DAY`` hours regardless of the block sizes.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from designer_scheduler.db.models import HOURS_PER_DAY, UserVacation

SATURDAY = 5


@dataclass(frozen=True)
class WorkHours:
    start: int = 15
    lunch_start: int = 19
    lunch_end: int = 20
    end: int = 24
    utc_offset_hours: int = 0

    def __post_init__(self):
        if not 0 <= self.start < self.lunch_start <= self.lunch_end < self.end <= 24:
            raise ValueError(
                "Work hours must satisfy 0 <= start < lunch_start <= lunch_end < end <= 24, "
                f"got {self.start}/{self.lunch_start}/{self.lunch_end}/{self.end}"
            )
        if not -12 <= self.utc_offset_hours <= 14:
            raise ValueError(f"Invalid UTC offset: {self.utc_offset_hours}")

    @property
    def tz(self) -> timezone:
        return timezone(timedelta(hours=self.utc_offset_hours))

    @property
    def blocks(self) -> tuple[tuple[int, int], ...]:
        return ((self.start, self.lunch_start), (self.lunch_end, self.end))


def hours_for_days(days: float) -> float:
    return days * HOURS_PER_DAY


class WorkingCalendar:
    """Pure working-time arithmetic over a fixed work window."""

    def __init__(self, work_hours: WorkHours | None = None, holidays: Iterable[date] = ()):
        self.work_hours = work_hours or WorkHours()
        self.holidays = frozenset(holidays)

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _local(self, instant: datetime) -> datetime:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        return instant.astimezone(self.work_hours.tz)

    def _at_hour(self, day: date, hour: int) -> datetime:
        """Instant at ``hour`` of ``day`` in the home offset; hour 24 is the next midnight."""
        midnight = datetime.combine(day, time(0), tzinfo=self.work_hours.tz)
        return midnight + timedelta(hours=hour)

    @staticmethod
    def _utc(instant: datetime) -> datetime:
        return instant.astimezone(timezone.utc)

    # ── Operations ────────────────────────────────────────────────────────────

    def round_up_to_next_half_hour(self, instant: datetime) -> datetime:
        """Round up to the next :00 or :30 boundary; boundaries are returned unchanged."""
        if instant.minute in (0, 30) and instant.second == 0 and instant.microsecond == 0:
            return instant
        floored = instant.replace(minute=0, second=0, microsecond=0)
        if instant.minute < 30:
            return floored + timedelta(minutes=30)
        return floored + timedelta(hours=1)

    def next_available_start(self, instant: datetime) -> datetime:
        """Roll ``instant`` forward to the nearest working instant on a half-hour boundary."""
        wh = self.work_hours
        current = self.round_up_to_next_half_hour(self._local(instant))

        while True:
            weekday = current.weekday()
            if weekday >= SATURDAY:
                monday = current.date() + timedelta(days=7 - weekday)
                current = self._at_hour(monday, wh.start)
                continue

            day = current.date()
            hour = current.hour
            if hour < wh.start:
                current = self._at_hour(day, wh.start)
                continue
            if wh.lunch_start <= hour < wh.lunch_end:
                current = self._at_hour(day, wh.lunch_end)
                continue
            if hour >= wh.end:
                current = self._at_hour(day + timedelta(days=1), wh.start)
                continue

            return self._utc(current)

    def working_deadline(self, start: datetime, hours_needed: float) -> datetime:
        """Consume ``hours_needed`` of working time from ``start``.

        A non-positive duration consumes nothing and yields the rolled-forward start.
        """
        if hours_needed <= 0:
            return self.next_available_start(start)

        wh = self.work_hours
        remaining = timedelta(hours=hours_needed)
        current = self._local(start)

        while remaining > timedelta(0):
            weekday = current.weekday()
            if weekday >= SATURDAY:
                monday = current.date() + timedelta(days=7 - weekday)
                current = self._at_hour(monday, wh.start)
                continue

            day = current.date()
            for block_from, block_to in wh.blocks:
                block_start = self._at_hour(day, block_from)
                block_end = self._at_hour(day, block_to)
                if current < block_start:
                    current = block_start
                if current >= block_end:
                    continue

                used = min(block_end - current, remaining)
                current += used
                remaining -= used
                if remaining <= timedelta(0):
                    break

            if remaining > timedelta(0):
                current = self._at_hour(day + timedelta(days=1), wh.start)

        return self._utc(current)

    def deadline_for_days(self, start: datetime, duration_days: float) -> datetime:
        return self.working_deadline(start, hours_for_days(duration_days))

    def vacation_window(self, vacation: UserVacation) -> tuple[datetime, datetime]:
        """Half-open instant interval covered by a whole-day vacation."""
        starts = self._at_hour(vacation.start_date, 0)
        ends = self._at_hour(vacation.end_date + timedelta(days=1), 0)
        return self._utc(starts), self._utc(ends)

    def is_working_day(self, day: date) -> bool:
        return day.weekday() < SATURDAY and day not in self.holidays

    def working_days_between(
        self,
        start: datetime,
        end: datetime,
        vacations: Iterable[UserVacation] = (),
    ) -> int:
        """Count working days in ``[start, end)``, skipping holidays and vacation days."""
        if start >= end:
            return 0

        vacations = list(vacations)
        day = self._local(start).date()
        last = self._local(end).date()
        count = 0
        while day < last:
            on_vacation = any(v.start_date <= day <= v.end_date for v in vacations)
            if self.is_working_day(day) and not on_vacation:
                count += 1
            day += timedelta(days=1)
        return count
