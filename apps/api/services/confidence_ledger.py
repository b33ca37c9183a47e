"""
Confidence Ledger

One active rating per (student, topic). Every change of value appends a
rating_changed event, which is what restarts a topic's revision cycle.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from core.exceptions import NotFoundError, ValidationError
from models import ConfidenceRating, Topic
from services.audit_logger import log_rating_saved
from services.event_store import RatingChanged, append_event
from services.revision_planner.constants import (
    MAX_RATING,
    MIN_RATING,
    SCHEDULABLE_TOPIC_LEVEL,
    RatingSource,
)

logger = logging.getLogger(__name__)


def validate_rating(rating: Optional[int]) -> bool:
    return rating is None or MIN_RATING <= rating <= MAX_RATING


def get_schedulable_topic(db: Session, topic_id: UUID) -> Topic:
    topic = db.query(Topic).filter(Topic.id == topic_id).first()
    if not topic:
        raise NotFoundError("Topic", str(topic_id))
    if topic.level != SCHEDULABLE_TOPIC_LEVEL:
        raise ValidationError(
            f"Only level {SCHEDULABLE_TOPIC_LEVEL} topics can be rated",
            field="topic_id",
        )
    return topic


def save_rating(
    db: Session,
    student_id: UUID,
    topic_id: UUID,
    rating: Optional[int],
    now: datetime,
    source: RatingSource = RatingSource.MANUAL,
    block_id: Optional[UUID] = None,
    maintenance_interval_days: Optional[int] = None,
    commit: bool = True,
) -> Optional[ConfidenceRating]:
    """
    Upsert (or, with rating=None, delete) a student's rating for a topic.

    Manual saves append a rating_changed event only when the value actually
    changes. Reratings always append one, since each is an outcome the
    maintenance escalation counts.

    Returns:
        The active ConfidenceRating, or None after a delete
    """
    if not validate_rating(rating):
        raise ValidationError(
            f"Rating must be between {MIN_RATING} and {MAX_RATING}",
            field="rating",
        )
    get_schedulable_topic(db, topic_id)

    existing = (
        db.query(ConfidenceRating)
        .filter(ConfidenceRating.student_id == student_id, ConfidenceRating.topic_id == topic_id)
        .first()
    )
    previous = existing.rating if existing else None

    row = existing
    if rating is None:
        if existing:
            db.delete(existing)
        row = None
    elif existing:
        existing.rating = rating
        existing.last_updated = now
    else:
        row = ConfidenceRating(
            student_id=student_id,
            topic_id=topic_id,
            rating=rating,
            last_updated=now,
        )
        db.add(row)

    changed = previous != rating
    if changed or source == RatingSource.RERATING:
        append_event(
            db,
            student_id,
            RatingChanged(
                topic_id=topic_id,
                rating=rating,
                previous_rating=previous,
                source=source,
                block_id=block_id,
                maintenance_interval_days=maintenance_interval_days,
            ),
            at=now,
        )

    if commit:
        db.commit()

    if changed:
        log_rating_saved(student_id, topic_id, previous, rating, source.value)
    return row


def save_ratings(
    db: Session,
    student_id: UUID,
    ratings: Dict[UUID, Optional[int]],
    now: datetime,
) -> List[Tuple[UUID, Optional[ConfidenceRating]]]:
    """
    Save several ratings in one commit.

    Every entry is validated before anything is written, so one bad
    rating or unknown topic leaves all of them unsaved.
    """
    for topic_id, rating in ratings.items():
        if not validate_rating(rating):
            raise ValidationError(
                f"Rating for topic {topic_id} must be between {MIN_RATING} and {MAX_RATING}",
                field="rating",
            )
        get_schedulable_topic(db, topic_id)

    saved = []
    try:
        for topic_id, rating in ratings.items():
            saved.append((topic_id, save_rating(db, student_id, topic_id, rating, now, commit=False)))
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        f"Saved {len(saved)} ratings",
        extra={"extra_fields": {"student_id": str(student_id)}},
    )
    return saved


def get_ratings(
    db: Session,
    student_id: UUID,
    subjects: Optional[Sequence[str]] = None,
) -> List[Tuple[ConfidenceRating, Topic]]:
    query = (
        db.query(ConfidenceRating, Topic)
        .join(Topic, Topic.id == ConfidenceRating.topic_id)
        .filter(ConfidenceRating.student_id == student_id)
    )
    if subjects:
        query = query.filter(Topic.subject.in_(list(subjects)))
    return query.order_by(Topic.subject, Topic.order_index).all()


def get_schedulable_topics(
    db: Session,
    student_id: UUID,
    subjects: Sequence[str],
) -> List[Tuple[Topic, int]]:
    """
    Level-3 topics in the given subjects the student wants scheduled.

    Ratings of 0 and below mean "do not schedule" and are left out.
    """
    rows = (
        db.query(Topic, ConfidenceRating.rating)
        .join(ConfidenceRating, ConfidenceRating.topic_id == Topic.id)
        .filter(
            ConfidenceRating.student_id == student_id,
            ConfidenceRating.rating > 0,
            Topic.level == SCHEDULABLE_TOPIC_LEVEL,
            Topic.subject.in_(list(subjects)),
        )
        .order_by(Topic.subject, Topic.order_index)
        .all()
    )
    return [(topic, rating) for topic, rating in rows]


def list_topics(db: Session, subject: Optional[str] = None) -> List[Topic]:
    query = db.query(Topic).filter(Topic.level == SCHEDULABLE_TOPIC_LEVEL)
    if subject:
        query = query.filter(Topic.subject == subject)
    return query.order_by(Topic.subject, Topic.order_index).all()
