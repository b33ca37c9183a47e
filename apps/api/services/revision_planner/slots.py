"""
Open-slot arithmetic for a single week.

Pure functions: the caller loads the profile, blocked intervals,
recurring templates and existing block spans, this module turns them
into candidate study slots.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple

from .constants import DAYS_IN_WEEK, WEEKEND_DAYS


@dataclass(frozen=True)
class TimeSpan:
    """Half-open [start, end) interval."""
    start: datetime
    end: datetime

    def overlaps(self, other: "TimeSpan") -> bool:
        return self.start < other.end and other.start < self.end

    @property
    def day(self) -> date:
        return self.start.date()


@dataclass(frozen=True)
class AvailabilityWindows:
    """Time-of-day study windows taken from an AvailabilityProfile."""
    weekday_earliest: time
    weekday_latest: time
    weekend_earliest: Optional[time] = None
    weekend_latest: Optional[time] = None
    use_same_weekend_times: bool = True

    def window_for(self, day: date) -> Optional[Tuple[time, time]]:
        if (
            day.weekday() in WEEKEND_DAYS
            and not self.use_same_weekend_times
            and self.weekend_earliest is not None
            and self.weekend_latest is not None
        ):
            earliest, latest = self.weekend_earliest, self.weekend_latest
        else:
            earliest, latest = self.weekday_earliest, self.weekday_latest
        if earliest >= latest:
            return None
        return earliest, latest


@dataclass(frozen=True)
class RecurringTemplate:
    start_time: time
    end_time: time
    days_of_week: Tuple[int, ...]  # 0=Monday
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    def applies_on(self, day: date) -> bool:
        if day.weekday() not in self.days_of_week:
            return False
        if self.start_date and day < self.start_date:
            return False
        if self.end_date and day > self.end_date:
            return False
        return True


def monday_of(day: date) -> date:
    return day - timedelta(days=day.weekday())


def week_days(week_start: date) -> List[date]:
    return [week_start + timedelta(days=i) for i in range(DAYS_IN_WEEK)]


def week_bounds(week_start: date) -> Tuple[datetime, datetime]:
    start = datetime.combine(week_start, time.min)
    return start, start + timedelta(days=DAYS_IN_WEEK)


def ceil_to_grid(moment: datetime, granularity_minutes: int) -> datetime:
    """Round up to the next multiple of granularity past midnight."""
    midnight = datetime.combine(moment.date(), time.min)
    elapsed = moment - midnight
    step = timedelta(minutes=granularity_minutes)
    steps = -(-elapsed // step)  # ceiling division
    return midnight + steps * step


def expand_recurring(templates: Iterable[RecurringTemplate], week_start: date) -> List[TimeSpan]:
    """Concrete blocked spans for every template occurrence in the week."""
    spans = []
    days = week_days(week_start)
    for template in templates:
        # Overnight templates are rejected at write time; ignore any that slipped through
        if template.end_time <= template.start_time:
            continue
        for day in days:
            if template.applies_on(day):
                spans.append(TimeSpan(
                    datetime.combine(day, template.start_time),
                    datetime.combine(day, template.end_time),
                ))
    return spans


def day_slots(
    day: date,
    windows: AvailabilityWindows,
    blocked: Sequence[TimeSpan],
    duration_minutes: int,
    granularity_minutes: int,
    now: Optional[datetime] = None,
) -> List[TimeSpan]:
    """Open slots on one day, in chronological order."""
    window = windows.window_for(day)
    if window is None:
        return []
    if now is not None and day < now.date():
        return []

    earliest, latest = window
    cursor = ceil_to_grid(datetime.combine(day, earliest), granularity_minutes)
    if now is not None and day == now.date():
        cursor = max(cursor, ceil_to_grid(now, granularity_minutes))
    latest_at = datetime.combine(day, latest)
    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=granularity_minutes)

    slots = []
    while cursor + duration <= latest_at:
        candidate = TimeSpan(cursor, cursor + duration)
        if not any(candidate.overlaps(span) for span in blocked):
            slots.append(candidate)
        cursor += step
    return slots


def build_week_slots(
    week_start: date,
    windows: AvailabilityWindows,
    blocked: Iterable[TimeSpan],
    duration_minutes: int,
    granularity_minutes: int,
    now: Optional[datetime] = None,
) -> List[TimeSpan]:
    """
    Every open slot of the week, chronologically.

    ``blocked`` should already include expanded recurring events and the
    spans of existing scheduled/done blocks.
    """
    week_start_at, week_end_at = week_bounds(week_start)
    relevant = [
        span for span in blocked
        if span.start < week_end_at and span.end > week_start_at
    ]
    slots: List[TimeSpan] = []
    for day in week_days(week_start):
        slots.extend(day_slots(day, windows, relevant, duration_minutes, granularity_minutes, now))
    return slots


def has_same_day_capacity(
    now: datetime,
    windows: AvailabilityWindows,
    blocked: Iterable[TimeSpan],
    duration_minutes: int,
    granularity_minutes: int,
) -> bool:
    """Whether a session can still start today before the day's latest boundary."""
    return bool(day_slots(now.date(), windows, list(blocked), duration_minutes, granularity_minutes, now))
