"""
Audit Logger

Structured logging for student-impacting actions, alongside the event
store. The event store is what the planner reads back; these lines are
for operators and never block a scheduling write.

Format: one JSON object per line with
- timestamp
- student_hash (anonymized id)
- action
- before/after state (where applicable)
- metadata
"""

import logging
import json
import hashlib
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
from uuid import UUID

from core.logging import AUDIT_LOGGER_NAME

audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)

logger = logging.getLogger(__name__)


def _anonymize_id(student_id: UUID) -> str:
    """Hash student ID for privacy in logs."""
    return hashlib.sha256(str(student_id).encode()).hexdigest()[:12]


def log_audit(
    action: str,
    student_id: UUID,
    success: bool = True,
    before_state: Optional[Dict[str, Any]] = None,
    after_state: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    error: Optional[str] = None
) -> None:
    """
    Log an audit event.

    Args:
        action: Action type (e.g., "block.done", "plan.generated")
        student_id: Student UUID (will be anonymized)
        success: Whether the action succeeded
        before_state: State before action (optional)
        after_state: State after action (optional)
        metadata: Additional context
        error: Error message if failed
    """
    event = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "action": action,
        "student_hash": _anonymize_id(student_id),
        "success": success,
    }

    if before_state:
        event["before"] = before_state

    if after_state:
        event["after"] = after_state

    if metadata:
        event["metadata"] = metadata

    if error:
        event["error"] = error

    try:
        audit_logger.info(json.dumps(event, default=str))
    except Exception as e:  # audit must never break the caller
        logger.warning(f"Audit log write failed for {action}: {e}")


def log_block_transition(
    student_id: UUID,
    block_id: UUID,
    topic_id: UUID,
    from_status: str,
    to_status: str,
    trigger: str = "user"
) -> None:
    log_audit(
        action=f"block.{to_status}",
        student_id=student_id,
        before_state={"status": from_status},
        after_state={"status": to_status},
        metadata={"block_id": str(block_id), "topic_id": str(topic_id), "trigger": trigger},
    )


def log_rating_saved(
    student_id: UUID,
    topic_id: UUID,
    previous_rating: Optional[int],
    rating: Optional[int],
    source: str
) -> None:
    log_audit(
        action="rating.saved" if rating is not None else "rating.cleared",
        student_id=student_id,
        before_state={"rating": previous_rating},
        after_state={"rating": rating},
        metadata={"topic_id": str(topic_id), "source": source},
    )


def log_rerating_decision(
    student_id: UUID,
    block_id: UUID,
    topic_id: UUID,
    rating: int,
    next_action: Dict[str, Any]
) -> None:
    log_audit(
        action="topic.rerated",
        student_id=student_id,
        after_state={"rating": rating, "next_action": next_action},
        metadata={"block_id": str(block_id), "topic_id": str(topic_id)},
    )


def log_plan_generated(
    student_id: UUID,
    week_start: str,
    blocks_created: int,
    unmet: List[Dict[str, Any]],
    first_week: bool
) -> None:
    log_audit(
        action="plan.generated",
        student_id=student_id,
        after_state={"blocks_created": blocks_created, "unmet_topics": len(unmet)},
        metadata={"week_start": week_start, "first_week": first_week},
    )


def log_plan_rejected(student_id: UUID, week_start: str, reason: str) -> None:
    log_audit(
        action="plan.rejected",
        student_id=student_id,
        success=False,
        error=reason,
        metadata={"week_start": week_start},
    )
