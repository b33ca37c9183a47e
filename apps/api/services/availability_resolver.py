"""
Availability Resolver

Turns a student's time-of-day preferences, blocked intervals, recurring
events and existing blocks into open study slots for a week. Also owns
writes to the profile, explicit intervals and recurring events.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import IncompleteProfileError, NotFoundError, AuthorizationError, ValidationError
from models import AvailabilityProfile, Block, RecurringEvent, UnavailableInterval
from services.revision_planner.constants import DELIVERED_STATUSES
from services.revision_planner.slots import (
    AvailabilityWindows,
    RecurringTemplate,
    TimeSpan,
    build_week_slots,
    expand_recurring,
    has_same_day_capacity,
    monday_of,
    week_bounds,
)

logger = logging.getLogger(__name__)

# Longest block we ever create; bounds the look-back when loading spans that spill into a week
MAX_BLOCK_MINUTES = 240


@dataclass
class IntervalInput:
    start: datetime
    end: datetime
    reason: Optional[str] = None


@dataclass
class AvailabilitySaveResult:
    profile: AvailabilityProfile
    intervals: List[UnavailableInterval] = field(default_factory=list)
    # Scheduled blocks now overlapping blocked time; reported, never moved
    conflicting_block_ids: List[UUID] = field(default_factory=list)


def validate_window(earliest: Optional[time], latest: Optional[time], label: str) -> None:
    if earliest is None or latest is None:
        raise ValidationError(f"{label} earliest and latest times are required", field=label)
    if earliest >= latest:
        raise ValidationError(f"{label} earliest time must be before latest time", field=label)


def validate_days_of_week(days: Sequence[int]) -> bool:
    return bool(days) and all(isinstance(d, int) and 0 <= d <= 6 for d in days)


def get_profile(db: Session, student_id: UUID) -> Optional[AvailabilityProfile]:
    return db.query(AvailabilityProfile).filter(AvailabilityProfile.student_id == student_id).first()


def windows_from_profile(profile: AvailabilityProfile) -> AvailabilityWindows:
    return AvailabilityWindows(
        weekday_earliest=profile.weekday_earliest,
        weekday_latest=profile.weekday_latest,
        weekend_earliest=profile.weekend_earliest,
        weekend_latest=profile.weekend_latest,
        use_same_weekend_times=profile.use_same_weekend_times,
    )


def load_windows(db: Session, student_id: UUID) -> AvailabilityWindows:
    profile = get_profile(db, student_id)
    if not profile:
        raise IncompleteProfileError()
    return windows_from_profile(profile)


def load_blocked_spans(db: Session, student_id: UUID, week_start: date) -> List[TimeSpan]:
    """Explicit intervals overlapping the week plus that week's recurring occurrences."""
    week_start_at, week_end_at = week_bounds(week_start)
    intervals = (
        db.query(UnavailableInterval)
        .filter(
            UnavailableInterval.student_id == student_id,
            UnavailableInterval.start_at < week_end_at,
            UnavailableInterval.end_at > week_start_at,
        )
        .all()
    )
    spans = {TimeSpan(i.start_at, i.end_at) for i in intervals}

    events = db.query(RecurringEvent).filter(RecurringEvent.student_id == student_id).all()
    templates = [
        RecurringTemplate(
            start_time=e.start_time,
            end_time=e.end_time,
            days_of_week=tuple(e.days_of_week or ()),
            start_date=e.start_date,
            end_date=e.end_date,
        )
        for e in events
    ]
    spans.update(expand_recurring(templates, week_start))
    return sorted(spans, key=lambda span: (span.start, span.end))


def load_occupied_spans(db: Session, student_id: UUID, week_start: date) -> List[TimeSpan]:
    """Spans of scheduled/done blocks touching the week."""
    week_start_at, week_end_at = week_bounds(week_start)
    blocks = (
        db.query(Block)
        .filter(
            Block.student_id == student_id,
            Block.status.in_(DELIVERED_STATUSES),
            Block.scheduled_at < week_end_at,
            Block.scheduled_at >= week_start_at - timedelta(minutes=MAX_BLOCK_MINUTES),
        )
        .all()
    )
    return [TimeSpan(b.scheduled_at, b.ends_at) for b in blocks if b.ends_at > week_start_at]


def resolve_week_slots(
    db: Session,
    student_id: UUID,
    week_start: date,
    now: Optional[datetime] = None,
    duration_minutes: Optional[int] = None,
    windows: Optional[AvailabilityWindows] = None,
) -> List[TimeSpan]:
    """
    Open slots for the week, chronologically.

    Raises IncompleteProfileError when no windows are given and the
    student has no profile.
    """
    week_start = monday_of(week_start)
    windows = windows or load_windows(db, student_id)
    blocked = load_blocked_spans(db, student_id, week_start) + load_occupied_spans(db, student_id, week_start)
    slots = build_week_slots(
        week_start,
        windows,
        blocked,
        duration_minutes or settings.DEFAULT_BLOCK_DURATION_MINUTES,
        settings.SLOT_GRANULARITY_MINUTES,
        now=now,
    )
    logger.debug(
        f"Resolved {len(slots)} open slots for week {week_start}",
        extra={"extra_fields": {"student_id": str(student_id), "blocked_spans": len(blocked)}},
    )
    return slots


def same_day_capacity(
    db: Session,
    student_id: UUID,
    now: datetime,
    duration_minutes: Optional[int] = None,
) -> bool:
    """Whether a session can still be scheduled today."""
    windows = load_windows(db, student_id)
    week_start = monday_of(now.date())
    blocked = load_blocked_spans(db, student_id, week_start) + load_occupied_spans(db, student_id, week_start)
    return has_same_day_capacity(
        now,
        windows,
        blocked,
        duration_minutes or settings.DEFAULT_BLOCK_DURATION_MINUTES,
        settings.SLOT_GRANULARITY_MINUTES,
    )


def save_availability(
    db: Session,
    student_id: UUID,
    windows: AvailabilityWindows,
    intervals: Sequence[IntervalInput],
    now: datetime,
    week_start: Optional[date] = None,
) -> AvailabilitySaveResult:
    """
    Upsert the profile and replace explicit intervals.

    The replaced range is the given week, or else the days the new
    intervals cover. Existing blocks are never moved; the ones now
    colliding with blocked time are reported.
    """
    validate_window(windows.weekday_earliest, windows.weekday_latest, "weekday")
    if not windows.use_same_weekend_times:
        validate_window(windows.weekend_earliest, windows.weekend_latest, "weekend")
    for interval in intervals:
        if interval.end <= interval.start:
            raise ValidationError("Interval end must be after its start", field="intervals")

    profile = get_profile(db, student_id)
    if not profile:
        profile = AvailabilityProfile(student_id=student_id)
        db.add(profile)
    profile.weekday_earliest = windows.weekday_earliest
    profile.weekday_latest = windows.weekday_latest
    profile.weekend_earliest = windows.weekend_earliest
    profile.weekend_latest = windows.weekend_latest
    profile.use_same_weekend_times = windows.use_same_weekend_times
    profile.updated_at = now

    if week_start is not None:
        range_start, range_end = week_bounds(monday_of(week_start))
    elif intervals:
        range_start = datetime.combine(min(i.start for i in intervals).date(), time.min)
        range_end = datetime.combine(max(i.start for i in intervals).date(), time.min) + timedelta(days=1)
    else:
        range_start = range_end = None

    saved: List[UnavailableInterval] = []
    if range_start is not None:
        (
            db.query(UnavailableInterval)
            .filter(
                UnavailableInterval.student_id == student_id,
                UnavailableInterval.source == "explicit",
                UnavailableInterval.start_at >= range_start,
                UnavailableInterval.start_at < range_end,
            )
            .delete(synchronize_session=False)
        )
        seen = set()
        for interval in intervals:
            key = (interval.start, interval.end)
            if key in seen:
                continue
            seen.add(key)
            row = UnavailableInterval(
                student_id=student_id,
                start_at=interval.start,
                end_at=interval.end,
                reason=interval.reason,
                source="explicit",
                created_at=now,
            )
            db.add(row)
            saved.append(row)

    db.commit()

    conflicts = _conflicting_blocks(db, student_id, [TimeSpan(r.start_at, r.end_at) for r in saved])
    if conflicts:
        logger.info(
            f"{len(conflicts)} scheduled blocks overlap newly blocked time",
            extra={"extra_fields": {"student_id": str(student_id)}},
        )
    return AvailabilitySaveResult(profile=profile, intervals=saved, conflicting_block_ids=conflicts)


def _conflicting_blocks(db: Session, student_id: UUID, spans: List[TimeSpan]) -> List[UUID]:
    if not spans:
        return []
    earliest = min(s.start for s in spans) - timedelta(minutes=MAX_BLOCK_MINUTES)
    latest = max(s.end for s in spans)
    blocks = (
        db.query(Block)
        .filter(
            Block.student_id == student_id,
            Block.status == "scheduled",
            Block.scheduled_at >= earliest,
            Block.scheduled_at < latest,
        )
        .order_by(Block.scheduled_at)
        .all()
    )
    return [
        b.id for b in blocks
        if any(TimeSpan(b.scheduled_at, b.ends_at).overlaps(span) for span in spans)
    ]


# =============================================================================
# RECURRING EVENTS
# =============================================================================

def _validate_recurring(start_time: time, end_time: time, days_of_week: Sequence[int],
                        start_date: Optional[date], end_date: Optional[date]) -> None:
    if end_time <= start_time:
        raise ValidationError("Recurring event must end after it starts on the same day", field="end_time")
    if not validate_days_of_week(days_of_week):
        raise ValidationError("days_of_week must list days between 0 (Monday) and 6 (Sunday)", field="days_of_week")
    if start_date and end_date and end_date < start_date:
        raise ValidationError("end_date must not be before start_date", field="end_date")


def list_recurring_events(db: Session, student_id: UUID) -> List[RecurringEvent]:
    return (
        db.query(RecurringEvent)
        .filter(RecurringEvent.student_id == student_id)
        .order_by(RecurringEvent.start_time, RecurringEvent.label)
        .all()
    )


def get_owned_recurring_event(db: Session, student_id: UUID, event_id: UUID) -> RecurringEvent:
    event = db.query(RecurringEvent).filter(RecurringEvent.id == event_id).first()
    if not event:
        raise NotFoundError("Recurring event", str(event_id))
    if event.student_id != student_id:
        raise AuthorizationError("Recurring event belongs to another student")
    return event


def create_recurring_event(
    db: Session,
    student_id: UUID,
    label: str,
    start_time: time,
    end_time: time,
    days_of_week: Sequence[int],
    now: datetime,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> RecurringEvent:
    _validate_recurring(start_time, end_time, days_of_week, start_date, end_date)
    event = RecurringEvent(
        student_id=student_id,
        label=label,
        start_time=start_time,
        end_time=end_time,
        days_of_week=sorted(set(days_of_week)),
        start_date=start_date,
        end_date=end_date,
        created_at=now,
    )
    db.add(event)
    db.commit()
    return event


def update_recurring_event(db: Session, student_id: UUID, event_id: UUID, **changes) -> RecurringEvent:
    event = get_owned_recurring_event(db, student_id, event_id)
    for key, value in changes.items():
        if value is not None and hasattr(event, key):
            setattr(event, key, value)
    _validate_recurring(event.start_time, event.end_time, event.days_of_week, event.start_date, event.end_date)
    event.days_of_week = sorted(set(event.days_of_week))
    db.commit()
    return event


def delete_recurring_event(db: Session, student_id: UUID, event_id: UUID) -> None:
    event = get_owned_recurring_event(db, student_id, event_id)
    db.delete(event)
    db.commit()
