"""
Session allocation: place owed sessions into a week's open slots.

Usage:
    allocator = SessionAllocator(slots, topic_days, first_week=False)
    result = allocator.allocate(demands, week_start)

Rules, applied per demand in priority order and per owed session in
ascending session number:
- take the first chronological slot that is still free
- at most one session of a topic per calendar day
- sessions land strictly after the topic's latest delivered session, and
  later session numbers land on later days
- daily load: at most `max_sessions_per_day` sessions on a day (already
  booked ones included), and no run of back-to-back sessions longer than
  `max_consecutive`
- first planned week: a multi-session cycle may not start on a weekend
- later weeks: a brand new multi-session cycle is placed only if every
  session fits this week, otherwise it waits for the next pass
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set
from uuid import UUID

from .constants import WEEKEND_DAYS, SessionKind
from .demand import TopicDemand
from .priority import PriorityKey, order_demands
from .slots import TimeSpan


class UnmetReason(str, Enum):
    NO_OPEN_SLOT = "no_open_slot"
    DEFERRED = "deferred_to_next_week"
    WEEKEND_START = "weekend_start_in_first_week"
    CONFLICT = "slot_taken_concurrently"
    WRITE_FAILED = "write_failed"


@dataclass(frozen=True)
class Placement:
    topic_id: UUID
    session_number: int
    session_total: int
    kind: SessionKind
    cycle_rating: int
    span: TimeSpan


@dataclass(frozen=True)
class UnmetDemand:
    topic_id: UUID
    sessions: int
    reason: UnmetReason


@dataclass
class AllocationResult:
    placements: List[Placement] = field(default_factory=list)
    unmet: List[UnmetDemand] = field(default_factory=list)


class SessionAllocator:
    """Greedy first-fit allocator over one week of open slots."""

    def __init__(
        self,
        slots: Iterable[TimeSpan],
        topic_days: Optional[Dict[UUID, Set[date]]] = None,
        first_week: bool = False,
        priority_key: Optional[PriorityKey] = None,
        booked: Iterable[TimeSpan] = (),
        max_sessions_per_day: Optional[int] = None,
        max_consecutive: Optional[int] = None,
    ):
        self.slots = sorted(slots, key=lambda span: span.start)
        self.topic_days = {topic: set(days) for topic, days in (topic_days or {}).items()}
        self.first_week = first_week
        self.priority_key = priority_key
        self.max_sessions_per_day = max_sessions_per_day
        self.max_consecutive = max_consecutive
        self._booked = list(booked)
        self._taken: List[TimeSpan] = []

    def allocate(self, demands: Iterable[TopicDemand], week_start: date) -> AllocationResult:
        result = AllocationResult()
        for demand in order_demands(list(demands), week_start, self.priority_key):
            placed, failure = self._place_demand(demand)
            missing = demand.remaining - len(placed)

            if missing and self._must_fit_whole_week(demand):
                result.unmet.append(UnmetDemand(demand.topic_id, demand.remaining, UnmetReason.DEFERRED))
                continue

            self._commit(placed)
            result.placements.extend(placed)
            if missing:
                result.unmet.append(UnmetDemand(demand.topic_id, missing, failure))
        return result

    def _must_fit_whole_week(self, demand: TopicDemand) -> bool:
        return not self.first_week and demand.brand_new and demand.session_total > 1

    def _place_demand(self, demand: TopicDemand):
        """Tentative placements for a demand and, if short, why."""
        placed: List[Placement] = []
        days_used = set(self.topic_days.get(demand.topic_id, set()))
        last_day = demand.last_session_day

        for index, number in enumerate(demand.session_numbers):
            forbid_weekend = (
                self.first_week
                and demand.brand_new
                and demand.session_total > 1
                and index == 0
            )
            span = self._first_fit(demand, days_used, last_day, placed, forbid_weekend)
            if span is None:
                reason = UnmetReason.NO_OPEN_SLOT
                if forbid_weekend and self._first_fit(demand, days_used, last_day, placed, False):
                    reason = UnmetReason.WEEKEND_START
                return placed, reason

            placed.append(Placement(
                topic_id=demand.topic_id,
                session_number=number,
                session_total=demand.session_total,
                kind=demand.kind,
                cycle_rating=demand.rating,
                span=span,
            ))
            days_used.add(span.day)
            last_day = span.day
        return placed, None

    def _first_fit(
        self,
        demand: TopicDemand,
        days_used: Set[date],
        last_day: Optional[date],
        pending: List[Placement],
        forbid_weekend: bool,
    ) -> Optional[TimeSpan]:
        for span in self.slots:
            day = span.day
            if day in days_used:
                continue
            if last_day is not None and day <= last_day:
                continue
            if demand.earliest_day is not None and day < demand.earliest_day:
                continue
            if forbid_weekend and day.weekday() in WEEKEND_DAYS:
                continue
            if any(span.overlaps(taken) for taken in self._taken):
                continue
            if any(span.overlaps(p.span) for p in pending):
                continue
            if not self._within_daily_load(span, pending):
                continue
            return span
        return None

    def _within_daily_load(self, span: TimeSpan, pending: List[Placement]) -> bool:
        same_day = [
            other for other in self._booked + self._taken + [p.span for p in pending]
            if other.day == span.day
        ]
        if self.max_sessions_per_day is not None and len(same_day) >= self.max_sessions_per_day:
            return False
        if self.max_consecutive is not None and _run_length(span, same_day) > self.max_consecutive:
            return False
        return True

    def _commit(self, placed: List[Placement]) -> None:
        for placement in placed:
            self._taken.append(placement.span)
            self.topic_days.setdefault(placement.topic_id, set()).add(placement.span.day)


def _run_length(span: TimeSpan, others: List[TimeSpan]) -> int:
    """Sessions in the back-to-back run ``span`` would join, itself included."""
    ends = {other.end: other for other in others}
    starts = {other.start: other for other in others}
    run = 1
    edge = span.start
    while edge in ends:
        run += 1
        edge = ends[edge].start
    edge = span.end
    while edge in starts:
        run += 1
        edge = starts[edge].end
    return run
