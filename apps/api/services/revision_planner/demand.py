"""
Per-topic demand: how many sessions a topic still owes this pass.

A cycle starts at the topic's most recent rating change. Scheduled and
done blocks created since then are the delivered sessions; missed and
skipped ones are owed again, which is how compensation happens.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence
from uuid import UUID

from .constants import (
    DELIVERED_STATUSES,
    HIGH_CONFIDENCE_THRESHOLD,
    RatingSource,
    SessionKind,
    sessions_needed,
)


@dataclass(frozen=True)
class CountedBlock:
    """The parts of a Block demand counting looks at."""
    scheduled_at: datetime
    created_at: datetime
    session_number: int
    status: str


@dataclass(frozen=True)
class RatingChange:
    at: datetime
    rating: Optional[int]
    source: str = RatingSource.MANUAL.value
    maintenance_interval_days: Optional[int] = None


@dataclass(frozen=True)
class TopicState:
    topic_id: UUID
    rating: int
    order_index: int
    exam_date: Optional[date] = None
    blocks: Sequence[CountedBlock] = ()
    latest_change: Optional[RatingChange] = None


@dataclass
class TopicDemand:
    topic_id: UUID
    rating: int
    order_index: int
    exam_date: Optional[date]
    kind: SessionKind
    session_total: int
    # Session numbers still owed, ascending; placed in chronological order.
    # The planner renumbers the whole cycle by date once they are written.
    session_numbers: List[int] = field(default_factory=list)
    # New sessions go strictly after this day
    last_session_day: Optional[date] = None
    # New sessions go on or after this day (maintenance due date)
    earliest_day: Optional[date] = None
    brand_new: bool = True

    @property
    def remaining(self) -> int:
        return len(self.session_numbers)


def current_cycle_blocks(state: TopicState) -> List[CountedBlock]:
    """Delivered blocks of the running cycle."""
    cycle_start = state.latest_change.at if state.latest_change else None
    return [
        block for block in state.blocks
        if block.status in DELIVERED_STATUSES
        and (cycle_start is None or block.created_at >= cycle_start)
    ]


def maintenance_due_date(change: Optional[RatingChange]) -> Optional[date]:
    if change is None or change.source != RatingSource.RERATING.value:
        return None
    if change.rating is None or change.rating < HIGH_CONFIDENCE_THRESHOLD:
        return None
    if not change.maintenance_interval_days:
        return None
    return change.at.date() + timedelta(days=change.maintenance_interval_days)


def compute_demand(state: TopicState, week_start: date) -> Optional[TopicDemand]:
    """
    Remaining demand for one topic against the week starting ``week_start``.

    Returns None when nothing is owed.
    """
    counted = current_cycle_blocks(state)
    needed = sessions_needed(state.rating)

    if needed > 0:
        remaining = needed - len(counted)
        if remaining <= 0:
            return None
        delivered_numbers = {block.session_number for block in counted}
        missing = [n for n in range(1, needed + 1) if n not in delivered_numbers][:remaining]
        if not missing:
            return None
        return TopicDemand(
            topic_id=state.topic_id,
            rating=state.rating,
            order_index=state.order_index,
            exam_date=state.exam_date,
            kind=SessionKind.REVISION,
            session_total=needed,
            session_numbers=missing,
            last_session_day=max((b.scheduled_at.date() for b in counted), default=None),
            brand_new=not counted,
        )

    due = maintenance_due_date(state.latest_change)
    if due is None or counted:
        return None
    week_end = week_start + timedelta(days=6)
    if due > week_end:
        return None
    return TopicDemand(
        topic_id=state.topic_id,
        rating=state.rating,
        order_index=state.order_index,
        exam_date=state.exam_date,
        kind=SessionKind.MAINTENANCE,
        session_total=1,
        session_numbers=[1],
        earliest_day=due,
        brand_new=True,
    )


def compute_demands(states: Sequence[TopicState], week_start: date) -> List[TopicDemand]:
    demands = []
    for state in states:
        demand = compute_demand(state, week_start)
        if demand is not None:
            demands.append(demand)
    return demands
