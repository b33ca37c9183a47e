"""
Availability API Router

Profile, blocked intervals, recurring events, resolved slots and weekly
confirmation.
"""
from datetime import date, datetime
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.clock import get_now
from core.database import get_db
from core.exceptions import NotFoundError
from models import Student, WeekConfirmation
from schemas import (
    AvailabilityProfileResponse,
    AvailabilitySave,
    AvailabilitySaveResponse,
    RecurringEventCreate,
    RecurringEventResponse,
    RecurringEventUpdate,
    SameDayResponse,
    WeekConfirmationResponse,
    WeekSlotsResponse,
)
from services.availability_resolver import (
    IntervalInput,
    create_recurring_event,
    delete_recurring_event,
    get_profile,
    list_recurring_events,
    resolve_week_slots,
    same_day_capacity,
    save_availability,
    update_recurring_event,
)
from services.revision_planner import AvailabilityWindows, monday_of
from services.week_gate import confirm_week, is_week_confirmed

router = APIRouter(prefix="/v1/availability", tags=["availability"])


def windows_from_schema(profile) -> AvailabilityWindows:
    return AvailabilityWindows(
        weekday_earliest=profile.weekday_earliest,
        weekday_latest=profile.weekday_latest,
        weekend_earliest=profile.weekend_earliest,
        weekend_latest=profile.weekend_latest,
        use_same_weekend_times=profile.use_same_weekend_times,
    )


@router.get("", response_model=AvailabilityProfileResponse)
def get_profile_endpoint(
    current_user: Student = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    profile = get_profile(db, current_user.id)
    if not profile:
        raise NotFoundError("Availability profile", str(current_user.id))
    return profile


@router.put("", response_model=AvailabilitySaveResponse)
def save_availability_endpoint(
    body: AvailabilitySave,
    current_user: Student = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    """
    Save study windows and blocked intervals.

    Intervals in the affected range (``week_start``'s week, or the days the
    intervals cover) are replaced. Scheduled blocks that now clash are
    reported in ``conflicting_block_ids`` but left where they are.
    """
    result = save_availability(
        db,
        current_user.id,
        windows_from_schema(body.profile),
        [IntervalInput(i.start, i.end, i.reason) for i in body.intervals],
        now,
        week_start=body.week_start,
    )
    return {
        "profile": result.profile,
        "intervals": result.intervals,
        "conflicting_block_ids": result.conflicting_block_ids,
    }


@router.get("/slots", response_model=WeekSlotsResponse)
def week_slots_endpoint(
    week_start: date = Query(...),
    current_user: Student = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    week_start = monday_of(week_start)
    slots = resolve_week_slots(db, current_user.id, week_start, now=now)
    return {
        "week_start": week_start,
        "slots": [{"start": s.start, "end": s.end} for s in slots],
    }


@router.get("/same-day", response_model=SameDayResponse)
def same_day_endpoint(
    current_user: Student = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    """Whether a session can still be fitted in today."""
    return {"day": now.date(), "same_day_available": same_day_capacity(db, current_user.id, now)}


@router.get("/recurring", response_model=List[RecurringEventResponse])
def list_recurring_endpoint(
    current_user: Student = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return list_recurring_events(db, current_user.id)


@router.post("/recurring", response_model=RecurringEventResponse, status_code=201)
def create_recurring_endpoint(
    body: RecurringEventCreate,
    current_user: Student = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    return create_recurring_event(
        db,
        current_user.id,
        label=body.label,
        start_time=body.start_time,
        end_time=body.end_time,
        days_of_week=body.days_of_week,
        now=now,
        start_date=body.start_date,
        end_date=body.end_date,
    )


@router.put("/recurring/{event_id}", response_model=RecurringEventResponse)
def update_recurring_endpoint(
    event_id: UUID,
    body: RecurringEventUpdate,
    current_user: Student = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return update_recurring_event(db, current_user.id, event_id, **body.model_dump(exclude_unset=True))


@router.delete("/recurring/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_recurring_endpoint(
    event_id: UUID,
    current_user: Student = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    delete_recurring_event(db, current_user.id, event_id)


@router.post("/weeks/{week_start}/confirm", response_model=WeekConfirmationResponse)
def confirm_week_endpoint(
    week_start: date,
    current_user: Student = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    """Mark a week as reviewed with nothing to block."""
    row = confirm_week(db, current_user.id, week_start, now)
    return {"week_start": row.week_start_date, "confirmed": True, "confirmed_at": row.confirmed_at}


@router.get("/weeks/{week_start}/confirmation", response_model=WeekConfirmationResponse)
def week_confirmation_endpoint(
    week_start: date,
    current_user: Student = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    week_start = monday_of(week_start)
    row = (
        db.query(WeekConfirmation)
        .filter(WeekConfirmation.student_id == current_user.id, WeekConfirmation.week_start_date == week_start)
        .first()
    )
    return {
        "week_start": week_start,
        "confirmed": is_week_confirmed(db, current_user.id, week_start),
        "confirmed_at": row.confirmed_at if row else None,
    }
