"""
Progress API Router

Read-only views over blocks and the event log.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.clock import get_now
from core.database import get_db
from core.exceptions import ValidationError
from models import Student
from schemas import PlanEventResponse, ProgressStatsResponse
from services.event_store import EVENT_KINDS, list_events
from services.progress_stats import get_progress_stats

router = APIRouter(prefix="/v1/progress", tags=["progress"])


@router.get("/stats", response_model=ProgressStatsResponse)
def progress_stats_endpoint(
    current_user: Student = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    return get_progress_stats(db, current_user.id, now)


@router.get("/events", response_model=List[PlanEventResponse])
def list_events_endpoint(
    kind: Optional[List[str]] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    current_user: Student = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Event history, newest first."""
    if kind:
        unknown = sorted(set(kind) - set(EVENT_KINDS))
        if unknown:
            raise ValidationError(f"Unknown event kind(s): {', '.join(unknown)}", field="kind")
    events = list_events(db, current_user.id, kinds=kind, limit=limit)
    return [
        {
            "id": event.id,
            "kind": event.payload.kind,
            "created_at": event.created_at,
            "payload": event.payload.model_dump(mode="json"),
        }
        for event in events
    ]
