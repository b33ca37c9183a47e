"""
Re-rating & Maintenance Scheduler

After the last session of a cycle the student re-rates the topic. The
rerating finishes the block, updates the ledger and restarts the cycle
in one commit. It does not create blocks: the next planning pass sees
the new rating (and, for confident topics, the maintenance interval
carried on the event) and schedules from there.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import ValidationError
from models import Block
from services.audit_logger import log_rerating_decision
from services.block_lifecycle import apply_transition, get_owned_block
from services.confidence_ledger import save_rating
from services.event_store import ReratingDecision, append_event, rerating_history
from services.revision_planner.constants import (
    HIGH_CONFIDENCE_THRESHOLD,
    MAX_RERATING,
    MIN_RERATING,
    BlockStatus,
    RatingSource,
    maintenance_interval_days,
    sessions_needed,
)

logger = logging.getLogger(__name__)


@dataclass
class ReratingOutcome:
    block: Block
    next_action: Dict[str, Any]


def consecutive_high_reratings(db: Session, student_id: UUID, topic_id: UUID) -> int:
    """How many of the topic's latest rerating outcomes in a row were 4 or 5."""
    count = 0
    for event in rerating_history(db, student_id, topic_id):
        if event.rating is None or event.rating < HIGH_CONFIDENCE_THRESHOLD:
            break
        count += 1
    return count


def next_action_for(rating: int, prior_high: int, now: datetime) -> Dict[str, Any]:
    """Advisory follow-up shown to the student; scheduling happens in the next pass."""
    if rating < HIGH_CONFIDENCE_THRESHOLD:
        needed = sessions_needed(rating)
        return {
            "type": "reinforcement",
            "sessions_needed": needed,
            "message": f"We'll schedule {needed} more session{'s' if needed != 1 else ''} to strengthen this topic.",
        }
    days = maintenance_interval_days(prior_high)
    return {
        "type": "maintenance",
        "days_until_review": days,
        "review_date": (now.date() + timedelta(days=days)).isoformat(),
        "message": f"Great progress! We'll check back on this topic in {days} days.",
    }


def submit_rerating(
    db: Session,
    student_id: UUID,
    block_id: UUID,
    rating: int,
    now: datetime,
) -> ReratingOutcome:
    """
    Finish a block with a new confidence rating.

    The block transition, rating upsert and rating_changed event commit
    together. A block the sweep already marked missed is reverted first,
    so its history shows both the miss and the late completion. The
    decision record is written afterwards and may fail without undoing
    them.
    """
    if rating is None or not MIN_RERATING <= rating <= MAX_RERATING:
        raise ValidationError(
            f"Re-rating score must be between {MIN_RERATING} and {MAX_RERATING}",
            field="rating",
        )

    block = get_owned_block(db, student_id, block_id)
    prior_high = consecutive_high_reratings(db, student_id, block.topic_id)
    next_action = next_action_for(rating, prior_high, now)
    interval = next_action.get("days_until_review")

    try:
        if block.status == BlockStatus.MISSED.value:
            # Done late, after the sweep got to it
            apply_transition(db, block, BlockStatus.SCHEDULED, now, trigger="rerating", commit=False)
        apply_transition(db, block, BlockStatus.DONE, now, commit=False)
        block.rerating_score = rating
        save_rating(
            db,
            student_id,
            block.topic_id,
            rating,
            now,
            source=RatingSource.RERATING,
            block_id=block.id,
            maintenance_interval_days=interval,
            commit=False,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    try:
        append_event(
            db,
            student_id,
            ReratingDecision(block_id=block.id, topic_id=block.topic_id, rating=rating, next_action=next_action),
            at=now,
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(
            f"Rerating decision not recorded: {e}",
            extra={"extra_fields": {"block_id": str(block.id)}},
        )

    log_rerating_decision(student_id, block.id, block.topic_id, rating, next_action)
    return ReratingOutcome(block=block, next_action=next_action)
