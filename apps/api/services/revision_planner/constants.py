"""
Constants for revision planning.

These are the scheduling rules every planning pass is measured against.
"""

from enum import Enum
from typing import Dict, List


class BlockStatus(str, Enum):
    """Lifecycle states of a Block."""
    SCHEDULED = "scheduled"    # initial
    DONE = "done"
    SKIPPED = "skipped"
    MISSED = "missed"          # set by the sweep only


class SessionKind(str, Enum):
    REVISION = "revision"          # part of a reinforcement cycle
    MAINTENANCE = "maintenance"    # single spaced review of a confident topic


class RatingSource(str, Enum):
    MANUAL = "manual"
    RERATING = "rerating"


# Sessions owed for a cycle, keyed by confidence rating
SESSIONS_BY_RATING: Dict[int, int] = {
    1: 3,
    2: 2,
    3: 1,
    4: 0,
    5: 0,
}

# Days until the next maintenance review, indexed by how many high
# reratings in a row preceded this one (capped at the last entry)
MAINTENANCE_INTERVALS_DAYS: List[int] = [7, 14, 30, 60, 90]

# Statuses that count towards a cycle; missed and skipped sessions are owed again
DELIVERED_STATUSES = (BlockStatus.SCHEDULED.value, BlockStatus.DONE.value)

ALLOWED_TRANSITIONS: Dict[str, frozenset] = {
    BlockStatus.SCHEDULED.value: frozenset({
        BlockStatus.DONE.value,
        BlockStatus.SKIPPED.value,
        BlockStatus.MISSED.value,
    }),
    BlockStatus.DONE.value: frozenset({BlockStatus.SCHEDULED.value}),
    BlockStatus.SKIPPED.value: frozenset({BlockStatus.SCHEDULED.value}),
    BlockStatus.MISSED.value: frozenset({BlockStatus.SCHEDULED.value}),
}

SCHEDULABLE_TOPIC_LEVEL = 3

MIN_RATING = -2
MAX_RATING = 5
MIN_RERATING = 1
MAX_RERATING = 5
HIGH_CONFIDENCE_THRESHOLD = 4

# date.weekday() values
WEEKEND_DAYS = frozenset({5, 6})
SATURDAY = 5

DAYS_IN_WEEK = 7


def sessions_needed(rating: int) -> int:
    """Sessions a fresh cycle owes for a rating; unrated or non-positive owe nothing."""
    return SESSIONS_BY_RATING.get(rating, 0)


def maintenance_interval_days(prior_high_reratings: int) -> int:
    index = min(max(prior_high_reratings, 0), len(MAINTENANCE_INTERVALS_DAYS) - 1)
    return MAINTENANCE_INTERVALS_DAYS[index]
