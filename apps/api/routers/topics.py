"""
Topics & Confidence Ratings API Router

Lists schedulable topics and stores the student's confidence ratings.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.clock import get_now
from core.database import get_db
from models import Student
from schemas import RatingResponse, RatingsBulkResponse, RatingsBulkUpdate, RatingUpdate, TopicResponse
from services.confidence_ledger import get_ratings, list_topics, save_rating, save_ratings

router = APIRouter(prefix="/v1/topics", tags=["topics"])


@router.get("", response_model=List[TopicResponse])
def list_topics_endpoint(
    subject: Optional[str] = Query(default=None),
    current_user: Student = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Schedulable (level 3) topics, in syllabus order."""
    return list_topics(db, subject)


@router.get("/ratings", response_model=List[RatingResponse])
def list_ratings_endpoint(
    subject: Optional[List[str]] = Query(default=None),
    current_user: Student = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    rows = get_ratings(db, current_user.id, subject)
    return [
        {
            "topic_id": topic.id,
            "subject": topic.subject,
            "title": topic.title,
            "rating": rating.rating,
            "last_updated": rating.last_updated,
        }
        for rating, topic in rows
    ]


@router.put("/ratings", response_model=RatingsBulkResponse)
def save_ratings_endpoint(
    body: RatingsBulkUpdate,
    current_user: Student = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    """Save many ratings at once, e.g. from onboarding. All or nothing."""
    saved = save_ratings(db, current_user.id, body.ratings, now)
    return {
        "saved_count": len(saved),
        "ratings": [
            {
                "topic_id": topic_id,
                "rating": row.rating if row else None,
                "last_updated": row.last_updated if row else None,
            }
            for topic_id, row in saved
        ],
    }


@router.put("/{topic_id}/rating", response_model=RatingResponse)
def save_rating_endpoint(
    topic_id: UUID,
    body: RatingUpdate,
    current_user: Student = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now)
):
    """
    Set a topic's confidence rating (-2..5), or clear it with null.

    Changing the value restarts the topic's revision cycle.
    """
    row = save_rating(db, current_user.id, topic_id, body.rating, now)
    return {
        "topic_id": topic_id,
        "rating": row.rating if row else None,
        "last_updated": row.last_updated if row else None,
    }
