"""
Block Lifecycle

    scheduled -> done | skipped | missed
    done | skipped | missed -> scheduled   (explicit revert, clears completed_at)

Each transition writes the new status and its event in one commit.
Asking for the status a block already has is a no-op.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from core.exceptions import AuthorizationError, NotFoundError, ValidationError
from models import Block
from services.audit_logger import log_block_transition
from services.event_store import BlockDone, BlockMissed, BlockRescheduled, BlockSkipped, append_event
from services.revision_planner.constants import ALLOWED_TRANSITIONS, BlockStatus

logger = logging.getLogger(__name__)

_EVENTS = {
    BlockStatus.DONE.value: BlockDone,
    BlockStatus.SKIPPED.value: BlockSkipped,
    BlockStatus.MISSED.value: BlockMissed,
    BlockStatus.SCHEDULED.value: BlockRescheduled,
}


def get_owned_block(db: Session, student_id: UUID, block_id: UUID) -> Block:
    block = db.query(Block).filter(Block.id == block_id).first()
    if not block:
        raise NotFoundError("Block", str(block_id))
    if block.student_id != student_id:
        raise AuthorizationError("Block belongs to another student")
    return block


def is_final_session(block: Block) -> bool:
    return block.session_number == block.session_total


def apply_transition(
    db: Session,
    block: Block,
    to_status: BlockStatus,
    now: datetime,
    trigger: str = "user",
    commit: bool = True,
) -> bool:
    """
    Move a block to ``to_status`` and append the matching event.

    Returns:
        False when the block was already in that status, True otherwise
    """
    from_status = block.status
    target = to_status.value
    if from_status == target:
        return False
    if target not in ALLOWED_TRANSITIONS.get(from_status, frozenset()):
        raise ValidationError(
            f"Cannot mark a {from_status} block as {target}; revert it to scheduled first",
            field="status",
        )

    block.status = target
    if target == BlockStatus.DONE.value:
        block.completed_at = now
    elif target == BlockStatus.SCHEDULED.value:
        block.completed_at = None

    event_cls = _EVENTS[target]
    append_event(
        db,
        block.student_id,
        event_cls(
            block_id=block.id,
            topic_id=block.topic_id,
            from_status=from_status,
            session_number=block.session_number,
            session_total=block.session_total,
        ),
        at=now,
    )
    if commit:
        db.commit()

    log_block_transition(block.student_id, block.id, block.topic_id, from_status, target, trigger)
    return True


def mark_done(db: Session, student_id: UUID, block_id: UUID, now: datetime) -> Block:
    block = get_owned_block(db, student_id, block_id)
    apply_transition(db, block, BlockStatus.DONE, now)
    return block


def mark_skipped(db: Session, student_id: UUID, block_id: UUID, now: datetime) -> Block:
    block = get_owned_block(db, student_id, block_id)
    apply_transition(db, block, BlockStatus.SKIPPED, now)
    return block


def mark_scheduled(db: Session, student_id: UUID, block_id: UUID, now: datetime) -> Block:
    """Revert a done, skipped or missed block."""
    block = get_owned_block(db, student_id, block_id)
    apply_transition(db, block, BlockStatus.SCHEDULED, now)
    return block


def rerating_due(block: Block) -> bool:
    """The student should be asked to re-rate after finishing this block."""
    return block.status == BlockStatus.DONE.value and is_final_session(block)


def list_week_blocks(db: Session, student_id: UUID, start: datetime, end: datetime,
                     status: Optional[str] = None):
    query = db.query(Block).filter(
        Block.student_id == student_id,
        Block.scheduled_at >= start,
        Block.scheduled_at < end,
    )
    if status:
        query = query.filter(Block.status == status)
    return query.order_by(Block.scheduled_at).all()
