"""
Plan API Router

Plan generation and the block actions that feed back into it.
"""
from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.clock import get_now
from core.database import get_db
from models import Student
from routers.availability import windows_from_schema
from schemas import (
    BlockResponse,
    BlockTransitionResponse,
    PlanGenerateRequest,
    PlanGenerateResponse,
    ReratingRequest,
    ReratingResponse,
)
from services.block_lifecycle import (
    list_week_blocks,
    mark_done,
    mark_scheduled,
    mark_skipped,
    rerating_due,
)
from services.rerating import submit_rerating
from services.revision_planner import monday_of, week_bounds
from services.session_planner import generate_plan

router = APIRouter(prefix="/v1/plan", tags=["plan"])


@router.post("/generate", response_model=PlanGenerateResponse)
def generate_plan_endpoint(
    body: PlanGenerateRequest,
    current_user: Student = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    """
    Generate (or top up) the plan for a week.

    Safe to call repeatedly: sessions already scheduled are counted, so a
    second call on unchanged state creates nothing. Sessions that could
    not be placed are listed in ``unmet_demand``; they are not an error.
    """
    override = windows_from_schema(body.availability_override) if body.availability_override else None
    plan = generate_plan(
        db,
        current_user.id,
        body.week_start,
        body.subjects,
        now,
        availability_override=override,
        block_duration_minutes=body.block_duration_minutes,
    )
    return {
        "week_start": plan.week_start,
        "first_week": plan.first_week,
        "week_confirmed": plan.gate.confirmed,
        "blocks": plan.blocks,
        "unmet_demand": [
            {"topic_id": u.topic_id, "sessions": u.sessions, "reason": u.reason.value}
            for u in plan.unmet_demand
        ],
    }


@router.get("/blocks", response_model=List[BlockResponse])
def list_blocks_endpoint(
    week_start: date = Query(...),
    status: Optional[str] = Query(default=None),
    current_user: Student = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    start, end = week_bounds(monday_of(week_start))
    return list_week_blocks(db, current_user.id, start, end, status)


@router.post("/blocks/{block_id}/done", response_model=BlockTransitionResponse)
def mark_done_endpoint(
    block_id: UUID,
    current_user: Student = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    block = mark_done(db, current_user.id, block_id, now)
    return {"block": block, "rerating_due": rerating_due(block)}


@router.post("/blocks/{block_id}/skip", response_model=BlockTransitionResponse)
def mark_skipped_endpoint(
    block_id: UUID,
    current_user: Student = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    block = mark_skipped(db, current_user.id, block_id, now)
    return {"block": block}


@router.post("/blocks/{block_id}/reschedule", response_model=BlockTransitionResponse)
def mark_scheduled_endpoint(
    block_id: UUID,
    current_user: Student = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    """Revert a done, skipped or missed block to scheduled."""
    block = mark_scheduled(db, current_user.id, block_id, now)
    return {"block": block}


@router.post("/blocks/{block_id}/rerate", response_model=ReratingResponse)
def rerate_endpoint(
    block_id: UUID,
    body: ReratingRequest,
    current_user: Student = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    """Finish a block with a fresh 1-5 confidence rating."""
    outcome = submit_rerating(db, current_user.id, block_id, body.rating, now)
    return {"block": outcome.block, "next_action": outcome.next_action}
