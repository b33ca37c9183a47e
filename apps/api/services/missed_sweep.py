"""
Missed-Block Sweep

Marks elapsed, still-scheduled blocks as missed. Nothing is rescheduled
here: a missed block stops counting towards its cycle, so the next
planning pass owes (and creates) a fresh replacement.

Safe to run repeatedly; a block that is already missed is left alone.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Set, Tuple
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import APIException
from models import Block
from services.block_lifecycle import apply_transition
from services.revision_planner.constants import BlockStatus

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    missed_block_ids: List[UUID] = field(default_factory=list)
    # (student_id, topic_id) pairs that now carry compensating demand
    affected_topics: Set[Tuple[UUID, UUID]] = field(default_factory=set)
    failed_block_ids: List[UUID] = field(default_factory=list)

    @property
    def missed_count(self) -> int:
        return len(self.missed_block_ids)


def find_elapsed_blocks(db: Session, now: datetime, student_id: Optional[UUID] = None) -> List[Block]:
    """Scheduled blocks whose end is already in the past."""
    query = db.query(Block).filter(
        Block.status == BlockStatus.SCHEDULED.value,
        Block.scheduled_at < now,
    )
    if student_id is not None:
        query = query.filter(Block.student_id == student_id)
    candidates = query.order_by(Block.scheduled_at).all()
    return [block for block in candidates if block.ends_at < now]


def sweep_missed(db: Session, now: datetime, student_id: Optional[UUID] = None) -> SweepResult:
    """
    Transition every elapsed scheduled block to missed.

    Each block commits on its own; one failing block is logged and the
    sweep moves on.
    """
    result = SweepResult()
    for block in find_elapsed_blocks(db, now, student_id):
        try:
            apply_transition(db, block, BlockStatus.MISSED, now, trigger="sweep")
        except (SQLAlchemyError, APIException) as e:
            db.rollback()
            logger.error(
                f"Failed to mark block missed: {e}",
                extra={"extra_fields": {"block_id": str(block.id)}},
            )
            result.failed_block_ids.append(block.id)
            continue
        result.missed_block_ids.append(block.id)
        result.affected_topics.add((block.student_id, block.topic_id))

    if result.missed_block_ids or result.failed_block_ids:
        logger.info(
            f"Missed sweep: {result.missed_count} blocks marked missed",
            extra={"extra_fields": {
                "missed": result.missed_count,
                "failed": len(result.failed_block_ids),
                "topics": len(result.affected_topics),
            }},
        )
    return result
