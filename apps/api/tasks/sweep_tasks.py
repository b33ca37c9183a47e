"""
Missed-Block Sweep Task

Runs via Celery Beat. Marks elapsed scheduled blocks as missed so the
next planning pass owes replacements for them.
"""

from typing import Dict, Optional
from uuid import UUID
from celery import Task
from sqlalchemy.orm import Session
from core.clock import local_now
from core.database import get_db_sync
from tasks import celery_app
from services.missed_sweep import sweep_missed
import logging

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.sweep_missed_blocks", bind=True)
def sweep_missed_blocks_task(self: Task, student_id: Optional[str] = None) -> Dict:
    """
    Sweep every student (or one, when student_id is given).

    Returns a status dict; per-block failures are reported, not raised.
    """
    db: Session = get_db_sync()
    try:
        result = sweep_missed(
            db,
            local_now(),
            student_id=UUID(student_id) if student_id else None,
        )
        return {
            "status": "success",
            "missed": result.missed_count,
            "failed": len(result.failed_block_ids),
            "topics_needing_sessions": len(result.affected_topics),
        }
    except Exception as e:
        logger.error(f"Missed sweep failed: {e}", exc_info=True)
        return {"status": "error", "message": str(e)}
    finally:
        db.close()
