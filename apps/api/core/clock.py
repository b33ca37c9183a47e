"""
Wall clock used by every scheduling decision.

Blocks, intervals and events are stored as naive datetimes in the
planner's timezone, so "now" has to be produced the same way.
"""
from datetime import datetime
from zoneinfo import ZoneInfo

from core.config import settings


def local_now() -> datetime:
    """Current naive wall-clock time in PLANNER_TIMEZONE."""
    return datetime.now(ZoneInfo(settings.PLANNER_TIMEZONE)).replace(tzinfo=None, microsecond=0)


def get_now() -> datetime:
    """FastAPI dependency; tests override it to pin time."""
    return local_now()
