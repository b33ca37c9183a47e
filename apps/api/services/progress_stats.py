"""
Progress statistics for a student.

Counts come from Block status; "first attempt" completions come from
the event log. A block is a first-attempt completion when it was never
missed, or when its completion precedes its earliest logged miss. A
block that is missed, reverted, done and later missed again still
compares against the earliest miss only.
"""

from collections import Counter
from datetime import date, datetime, timedelta
from typing import Dict, Any
from uuid import UUID

from sqlalchemy.orm import Session

from models import Block
from services.event_store import missed_event_times
from services.revision_planner.constants import BlockStatus


def calculate_streak(done_days: set, today: date) -> int:
    """Consecutive days with a done block, ending today or yesterday."""
    cursor = today if today in done_days else today - timedelta(days=1)
    streak = 0
    while cursor in done_days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def get_progress_stats(db: Session, student_id: UUID, now: datetime) -> Dict[str, Any]:
    blocks = db.query(Block).filter(Block.student_id == student_id).all()
    counts = Counter(block.status for block in blocks)

    done = counts.get(BlockStatus.DONE.value, 0)
    missed = counts.get(BlockStatus.MISSED.value, 0)
    skipped = counts.get(BlockStatus.SKIPPED.value, 0)
    actioned = done + missed + skipped

    misses = missed_event_times(db, student_id)
    first_attempt = 0
    done_days = set()
    for block in blocks:
        if block.status != BlockStatus.DONE.value:
            continue
        if block.completed_at:
            done_days.add(block.completed_at.date())
        block_misses = misses.get(block.id)
        if not block_misses or (block.completed_at and block.completed_at < block_misses[0]):
            first_attempt += 1

    return {
        "blocks_done": done,
        "blocks_missed": missed,
        "blocks_skipped": skipped,
        "blocks_scheduled": counts.get(BlockStatus.SCHEDULED.value, 0),
        "completion_rate": round(done / actioned, 3) if actioned else None,
        "first_attempt_completions": first_attempt,
        "topics_covered": len({b.topic_id for b in blocks if b.status == BlockStatus.DONE.value}),
        "streak_days": calculate_streak(done_days, now.date()),
    }
