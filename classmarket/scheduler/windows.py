"""
Time-window predicates for scheduled tasks.

Windows are evaluated against reporting-local time. The hour range is
half-open `[start_hour, end_hour)` and wraps midnight when `end_hour` is
not greater than `start_hour`, so `(6, 1)` covers 06:00 through 00:59.
"""

from dataclasses import dataclass
from datetime import datetime

ALL_DAYS: frozenset[int] = frozenset(range(7))
WEEKDAYS: frozenset[int] = frozenset(range(5))


@dataclass(frozen=True)
class TimeWindow:
    """Day-of-week, hour and minute constraints a local time must satisfy."""
    weekdays: frozenset[int] = ALL_DAYS      # datetime.weekday() values, Monday == 0
    start_hour: int = 0
    end_hour: int = 0                        # equal to start_hour means all day
    minute_step: int = 1
    minute_start: int = 0
    minute_end: int = 59

    def __post_init__(self) -> None:
        if not 0 <= self.start_hour < 24 or not 0 <= self.end_hour < 24:
            raise ValueError(f"hours must be within 0..23, got {self.start_hour}..{self.end_hour}")
        if not 0 <= self.minute_start <= self.minute_end <= 59:
            raise ValueError(f"invalid minute range {self.minute_start}..{self.minute_end}")
        if self.minute_step < 1:
            raise ValueError(f"minute_step must be positive, got {self.minute_step}")

    def _hour_matches(self, hour: int) -> bool:
        if self.start_hour == self.end_hour:
            return True
        if self.start_hour < self.end_hour:
            return self.start_hour <= hour < self.end_hour
        return hour >= self.start_hour or hour < self.end_hour

    def _minute_matches(self, minute: int) -> bool:
        if not self.minute_start <= minute <= self.minute_end:
            return False
        return (minute - self.minute_start) % self.minute_step == 0

    def matches(self, local_dt: datetime) -> bool:
        """True if `local_dt` (already in reporting time) falls inside the window."""
        return (
            local_dt.weekday() in self.weekdays
            and self._hour_matches(local_dt.hour)
            and self._minute_matches(local_dt.minute)
        )


def weekdays_between(start_hour: int, end_hour: int, minute_step: int = 1) -> TimeWindow:
    """Monday-to-Friday window between two hours."""
    return TimeWindow(weekdays=WEEKDAYS, start_hour=start_hour, end_hour=end_hour,
                      minute_step=minute_step)


def daily_at(hour: int, minute_start: int = 0, minute_end: int = 9,
             weekdays: frozenset[int] = ALL_DAYS) -> TimeWindow:
    """Once-a-day window: the first minutes of `hour`."""
    return TimeWindow(weekdays=weekdays, start_hour=hour, end_hour=(hour + 1) % 24,
                      minute_start=minute_start, minute_end=minute_end)


def hourly(minute_start: int = 0, minute_end: int = 9,
           weekdays: frozenset[int] = ALL_DAYS) -> TimeWindow:
    """The first minutes of every hour."""
    return TimeWindow(weekdays=weekdays, minute_start=minute_start, minute_end=minute_end)
