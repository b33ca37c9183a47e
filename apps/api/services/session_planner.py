"""
Session Planner

Entry point for a planning pass:

    plan = generate_plan(db, student_id, week_start, ["maths"], now)
    plan.blocks        # Blocks created by this pass
    plan.unmet_demand  # sessions still owed, reported not raised

Each pass recomputes demand from scratch (ratings, the event log and
existing blocks), so running it twice on unchanged state creates nothing
the second time. Every placement is committed on its own; a failed write
costs that one session, which the next pass picks up again.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Sequence, Set
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import APIException, ConflictError, ValidationError
from models import Block
from services import availability_resolver
from services.audit_logger import log_plan_generated, log_plan_rejected
from services.confidence_ledger import get_schedulable_topics
from services.event_store import PlanGenerated, append_event, latest_rating_changes
from services.revision_planner import (
    AvailabilityWindows,
    BlockStatus,
    CountedBlock,
    PriorityKey,
    SessionAllocator,
    SessionKind,
    TopicState,
    UnmetDemand,
    UnmetReason,
    compute_demands,
    monday_of,
    week_bounds,
)
from services.revision_planner.constants import DELIVERED_STATUSES
from services.revision_planner.slots import TimeSpan
from services.week_gate import GateDecision, check_generation_allowed

logger = logging.getLogger(__name__)

MIN_BLOCK_MINUTES = 30
MAX_BLOCK_MINUTES = availability_resolver.MAX_BLOCK_MINUTES


@dataclass
class GeneratedPlan:
    week_start: date
    first_week: bool
    gate: GateDecision
    blocks: List[Block] = field(default_factory=list)
    unmet_demand: List[UnmetDemand] = field(default_factory=list)


def is_first_planned_week(db: Session, student_id: UUID, week_start: date) -> bool:
    """True until the student has any block scheduled before this week."""
    week_start_at, _ = week_bounds(week_start)
    earlier = (
        db.query(Block.id)
        .filter(Block.student_id == student_id, Block.scheduled_at < week_start_at)
        .first()
    )
    return earlier is None


def _validate_duration(duration_minutes: int) -> None:
    granularity = settings.SLOT_GRANULARITY_MINUTES
    if not MIN_BLOCK_MINUTES <= duration_minutes <= MAX_BLOCK_MINUTES or duration_minutes % granularity:
        raise ValidationError(
            f"Block duration must be a multiple of {granularity} minutes "
            f"between {MIN_BLOCK_MINUTES} and {MAX_BLOCK_MINUTES}",
            field="block_duration_minutes",
        )


def _load_topic_states(db: Session, student_id: UUID, subjects: Sequence[str]) -> List[TopicState]:
    topics = get_schedulable_topics(db, student_id, subjects)
    if not topics:
        return []
    topic_ids = [topic.id for topic, _ in topics]

    blocks_by_topic: Dict[UUID, List[CountedBlock]] = defaultdict(list)
    rows = (
        db.query(Block)
        .filter(Block.student_id == student_id, Block.topic_id.in_(topic_ids))
        .all()
    )
    for block in rows:
        blocks_by_topic[block.topic_id].append(CountedBlock(
            scheduled_at=block.scheduled_at,
            created_at=block.created_at,
            session_number=block.session_number,
            status=block.status,
        ))

    changes = latest_rating_changes(db, student_id, topic_ids)
    return [
        TopicState(
            topic_id=topic.id,
            rating=rating,
            order_index=topic.order_index,
            exam_date=topic.exam_date,
            blocks=tuple(blocks_by_topic.get(topic.id, ())),
            latest_change=changes.get(topic.id),
        )
        for topic, rating in topics
    ]


def _topic_days(db: Session, student_id: UUID, week_start: date) -> Dict[UUID, Set[date]]:
    """Days in the week on which each topic already has a live session."""
    week_start_at, week_end_at = week_bounds(week_start)
    rows = (
        db.query(Block.topic_id, Block.scheduled_at)
        .filter(
            Block.student_id == student_id,
            Block.status.in_(DELIVERED_STATUSES),
            Block.scheduled_at >= week_start_at,
            Block.scheduled_at < week_end_at,
        )
        .all()
    )
    days: Dict[UUID, Set[date]] = defaultdict(set)
    for topic_id, scheduled_at in rows:
        days[topic_id].add(scheduled_at.date())
    return days


def _ensure_slot_free(db: Session, student_id: UUID, span: TimeSpan) -> None:
    """Re-check the slot right before writing; another pass may have taken it."""
    candidates = (
        db.query(Block)
        .filter(
            Block.student_id == student_id,
            Block.status.in_(DELIVERED_STATUSES),
            Block.scheduled_at < span.end,
            Block.scheduled_at >= span.start - timedelta(minutes=MAX_BLOCK_MINUTES),
        )
        .all()
    )
    for block in candidates:
        if TimeSpan(block.scheduled_at, block.ends_at).overlaps(span):
            raise ConflictError(f"Slot {span.start.isoformat()} is already taken")


def _renumber_cycle(db: Session, student_id: UUID, topic_id: UUID, cycle_start: Optional[datetime]) -> None:
    """
    Number the live sessions of a topic's running cycle 1..n in date order.

    A replacement for a skipped or missed session lands after the sessions
    still on the calendar, so those move down one place and the
    replacement takes the last number.
    """
    query = db.query(Block).filter(
        Block.student_id == student_id,
        Block.topic_id == topic_id,
        Block.session_kind == SessionKind.REVISION.value,
        Block.status.in_(DELIVERED_STATUSES),
    )
    if cycle_start is not None:
        query = query.filter(Block.created_at >= cycle_start)
    changed = 0
    for position, block in enumerate(query.order_by(Block.scheduled_at).all(), start=1):
        if block.session_number != position:
            block.session_number = position
            changed += 1
    if not changed:
        return
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            f"Failed to renumber cycle: {e}",
            extra={"extra_fields": {"student_id": str(student_id), "topic_id": str(topic_id)}},
        )
        return
    logger.info(
        f"Renumbered {changed} session(s) of cycle",
        extra={"extra_fields": {"student_id": str(student_id), "topic_id": str(topic_id)}},
    )


def generate_plan(
    db: Session,
    student_id: UUID,
    week_start: date,
    subjects: Sequence[str],
    now: datetime,
    availability_override: Optional[AvailabilityWindows] = None,
    block_duration_minutes: Optional[int] = None,
    priority_key: Optional[PriorityKey] = None,
    bypass_gate: Optional[bool] = None,
) -> GeneratedPlan:
    """
    Create the blocks a week still needs.

    Args:
        week_start: any day of the target week; normalised to its Monday
        subjects: subjects whose rated topics take part in this pass
        now: wall-clock time; slots before it are never used
        availability_override: time-of-day windows to use instead of the stored profile
        priority_key: replaces the default demand ordering

    Raises:
        ValidationError, GateViolationError, IncompleteProfileError
    """
    week_start = monday_of(week_start)
    subjects = [s for s in (subjects or []) if s]
    if not subjects:
        raise ValidationError("At least one subject is required", field="subjects")

    duration = block_duration_minutes or settings.DEFAULT_BLOCK_DURATION_MINUTES
    _validate_duration(duration)

    try:
        gate = check_generation_allowed(db, student_id, week_start, now, bypass=bypass_gate)
        windows = availability_override or availability_resolver.load_windows(db, student_id)
    except APIException as e:
        log_plan_rejected(student_id, week_start.isoformat(), e.detail)
        raise

    states = _load_topic_states(db, student_id, subjects)
    demands = compute_demands(states, week_start)
    first_week = is_first_planned_week(db, student_id, week_start)

    plan = GeneratedPlan(week_start=week_start, first_week=first_week, gate=gate)
    if not demands:
        logger.info(
            "Plan already satisfies all demand",
            extra={"extra_fields": {"student_id": str(student_id), "week_start": week_start.isoformat()}},
        )
    else:
        slots = availability_resolver.resolve_week_slots(
            db, student_id, week_start, now=now, duration_minutes=duration, windows=windows
        )
        allocator = SessionAllocator(
            slots,
            topic_days=_topic_days(db, student_id, week_start),
            first_week=first_week,
            priority_key=priority_key,
            booked=availability_resolver.load_occupied_spans(db, student_id, week_start),
            max_sessions_per_day=settings.MAX_SESSIONS_PER_DAY,
            max_consecutive=settings.MAX_CONSECUTIVE_SESSIONS,
        )
        allocation = allocator.allocate(demands, week_start)
        plan.unmet_demand.extend(allocation.unmet)

        for placement in allocation.placements:
            try:
                _ensure_slot_free(db, student_id, placement.span)
                block = Block(
                    student_id=student_id,
                    topic_id=placement.topic_id,
                    scheduled_at=placement.span.start,
                    duration_minutes=duration,
                    status=BlockStatus.SCHEDULED.value,
                    session_number=placement.session_number,
                    session_total=placement.session_total,
                    session_kind=placement.kind.value,
                    cycle_rating=placement.cycle_rating,
                    created_at=now,
                )
                db.add(block)
                db.commit()
                plan.blocks.append(block)
            except ConflictError as e:
                db.rollback()
                logger.warning(
                    f"Skipping placement: {e.detail}",
                    extra={"extra_fields": {"student_id": str(student_id), "topic_id": str(placement.topic_id)}},
                )
                plan.unmet_demand.append(UnmetDemand(placement.topic_id, 1, UnmetReason.CONFLICT))
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(
                    f"Failed to write block: {e}",
                    extra={"extra_fields": {"student_id": str(student_id), "topic_id": str(placement.topic_id)}},
                )
                plan.unmet_demand.append(UnmetDemand(placement.topic_id, 1, UnmetReason.WRITE_FAILED))

        cycle_starts = {
            state.topic_id: state.latest_change.at if state.latest_change else None
            for state in states
        }
        for topic_id in sorted({b.topic_id for b in plan.blocks if b.session_kind == SessionKind.REVISION.value}):
            _renumber_cycle(db, student_id, topic_id, cycle_starts.get(topic_id))

    unmet = [
        {"topic_id": str(u.topic_id), "sessions": u.sessions, "reason": u.reason.value}
        for u in plan.unmet_demand
    ]
    try:
        append_event(
            db,
            student_id,
            PlanGenerated(
                week_start=week_start,
                blocks_created=len(plan.blocks),
                first_week=first_week,
                unmet=unmet,
            ),
            at=now,
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(f"Failed to record plan_generated event: {e}")

    log_plan_generated(student_id, week_start.isoformat(), len(plan.blocks), unmet, first_week)
    return plan
