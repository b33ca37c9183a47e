"""
Weekly Confirmation Gate

Decides whether a target week may be planned, and tracks which weeks the
student has reviewed.

Rules:
- past weeks cannot be planned
- the current week can always be planned
- next week opens on Saturday (PLAN_GATE_BYPASS lifts this in test environments)
- later weeks stay closed until the Saturday before them
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import GateViolationError, ValidationError
from models import UnavailableInterval, WeekConfirmation
from services.revision_planner.constants import SATURDAY, WEEKEND_DAYS
from services.revision_planner.slots import monday_of, week_bounds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GateDecision:
    week_start: date
    relation: str  # "current" or "next"
    confirmed: bool
    bypassed: bool = False


def is_week_confirmed(db: Session, student_id: UUID, week_start: date) -> bool:
    """
    A week counts as confirmed once it has any blocked interval starting
    in it, or an explicit "nothing to block" confirmation.
    """
    week_start = monday_of(week_start)
    week_start_at, week_end_at = week_bounds(week_start)
    has_interval = (
        db.query(UnavailableInterval.id)
        .filter(
            UnavailableInterval.student_id == student_id,
            UnavailableInterval.start_at >= week_start_at,
            UnavailableInterval.start_at < week_end_at,
        )
        .first()
        is not None
    )
    if has_interval:
        return True
    return (
        db.query(WeekConfirmation.id)
        .filter(
            WeekConfirmation.student_id == student_id,
            WeekConfirmation.week_start_date == week_start,
        )
        .first()
        is not None
    )


def confirm_week(db: Session, student_id: UUID, week_start: date, now: datetime) -> WeekConfirmation:
    """Idempotent; re-confirming refreshes confirmed_at."""
    week_start = monday_of(week_start)
    row = (
        db.query(WeekConfirmation)
        .filter(
            WeekConfirmation.student_id == student_id,
            WeekConfirmation.week_start_date == week_start,
        )
        .first()
    )
    if row:
        row.confirmed_at = now
    else:
        row = WeekConfirmation(student_id=student_id, week_start_date=week_start, confirmed_at=now)
        db.add(row)
    db.commit()
    return row


def earliest_generation_day(week_start: date) -> date:
    """The Saturday before the week."""
    return monday_of(week_start) - timedelta(days=7 - SATURDAY)


def check_generation_allowed(
    db: Session,
    student_id: UUID,
    week_start: date,
    now: datetime,
    bypass: Optional[bool] = None,
) -> GateDecision:
    """
    Raise unless the week may be planned at ``now``.

    Raises:
        ValidationError: the week is already over
        GateViolationError: the week is not open yet; names the first permitted day
    """
    if bypass is None:
        bypass = settings.PLAN_GATE_BYPASS

    week_start = monday_of(week_start)
    current_week = monday_of(now.date())
    next_week = current_week + timedelta(days=7)

    if week_start < current_week:
        raise ValidationError("Cannot generate a plan for a past week", field="week_start")

    if week_start == current_week:
        return GateDecision(week_start, "current", is_week_confirmed(db, student_id, week_start))

    earliest = earliest_generation_day(week_start)
    if week_start > next_week:
        raise GateViolationError(
            f"The plan for the week of {week_start.isoformat()} can be generated from "
            f"{earliest.strftime('%A')} {earliest.isoformat()}",
            earliest_permitted=earliest,
        )

    weekend = now.weekday() in WEEKEND_DAYS
    if not weekend and not bypass:
        raise GateViolationError(
            f"Next week's plan can be generated from Saturday {earliest.isoformat()}",
            earliest_permitted=earliest,
        )

    confirmed = is_week_confirmed(db, student_id, week_start)
    if settings.REQUIRE_WEEK_CONFIRMATION and not confirmed:
        raise GateViolationError(
            f"Confirm your availability for the week of {week_start.isoformat()} before generating",
            earliest_permitted=now.date(),
        )

    if bypass and not weekend:
        logger.info(
            "Week gate bypassed for next-week generation",
            extra={"extra_fields": {"student_id": str(student_id), "week_start": week_start.isoformat()}},
        )
    return GateDecision(week_start, "next", confirmed, bypassed=bypass and not weekend)
