"""
Typed event store.

Every block transition, rating change, rerating decision and planning pass
is appended to ``plan_event`` as one member of a tagged union. The same
log is the audit trail and the input for cycle resets, maintenance
lookback and missed-event counting, so readers always decode through
the union instead of poking at raw JSON.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Sequence, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from sqlalchemy.orm import Session

from models import PlanEvent
from services.revision_planner.constants import RatingSource
from services.revision_planner.demand import RatingChange


class _EventBase(BaseModel):
    model_config = ConfigDict(frozen=True)


class RatingChanged(_EventBase):
    kind: Literal["rating_changed"] = "rating_changed"
    topic_id: UUID
    rating: Optional[int]  # None when the rating was cleared
    previous_rating: Optional[int] = None
    source: RatingSource = RatingSource.MANUAL
    block_id: Optional[UUID] = None
    maintenance_interval_days: Optional[int] = None


class _BlockTransition(_EventBase):
    block_id: UUID
    topic_id: UUID
    from_status: str
    session_number: int
    session_total: int


class BlockDone(_BlockTransition):
    kind: Literal["block_done"] = "block_done"


class BlockSkipped(_BlockTransition):
    kind: Literal["block_skipped"] = "block_skipped"


class BlockMissed(_BlockTransition):
    kind: Literal["block_missed"] = "block_missed"


class BlockRescheduled(_BlockTransition):
    kind: Literal["block_rescheduled"] = "block_rescheduled"


class ReratingDecision(_EventBase):
    kind: Literal["rerating_decision"] = "rerating_decision"
    block_id: UUID
    topic_id: UUID
    rating: int
    next_action: Dict[str, Any]


class PlanGenerated(_EventBase):
    kind: Literal["plan_generated"] = "plan_generated"
    week_start: date
    blocks_created: int
    first_week: bool
    unmet: List[Dict[str, Any]] = Field(default_factory=list)


PlanEventPayload = Annotated[
    Union[
        RatingChanged,
        BlockDone,
        BlockSkipped,
        BlockMissed,
        BlockRescheduled,
        ReratingDecision,
        PlanGenerated,
    ],
    Field(discriminator="kind"),
]

_payload_adapter = TypeAdapter(PlanEventPayload)

EVENT_KINDS = (
    "rating_changed",
    "block_done",
    "block_skipped",
    "block_missed",
    "block_rescheduled",
    "rerating_decision",
    "plan_generated",
)


@dataclass(frozen=True)
class StoredEvent:
    id: UUID
    created_at: datetime
    payload: PlanEventPayload


def append_event(db: Session, student_id: UUID, payload: PlanEventPayload, at: datetime) -> PlanEvent:
    """Stage an event in the caller's transaction. The caller commits."""
    record = PlanEvent(
        student_id=student_id,
        kind=payload.kind,
        topic_id=getattr(payload, "topic_id", None),
        block_id=getattr(payload, "block_id", None),
        payload=payload.model_dump(mode="json"),
        created_at=at,
    )
    db.add(record)
    return record


def decode_event(record: PlanEvent) -> StoredEvent:
    return StoredEvent(
        id=record.id,
        created_at=record.created_at,
        payload=_payload_adapter.validate_python(record.payload),
    )


def list_events(
    db: Session,
    student_id: UUID,
    kinds: Optional[Sequence[str]] = None,
    limit: int = 100,
) -> List[StoredEvent]:
    """Newest first."""
    query = db.query(PlanEvent).filter(PlanEvent.student_id == student_id)
    if kinds:
        query = query.filter(PlanEvent.kind.in_(list(kinds)))
    records = query.order_by(PlanEvent.created_at.desc()).limit(limit).all()
    return [decode_event(record) for record in records]


def latest_rating_changes(db: Session, student_id: UUID, topic_ids: Iterable[UUID]) -> Dict[UUID, RatingChange]:
    """
    Most recent rating change per topic.

    Returns:
        topic_id -> RatingChange; topics never re-rated are absent
    """
    topic_ids = list(topic_ids)
    if not topic_ids:
        return {}

    records = (
        db.query(PlanEvent)
        .filter(
            PlanEvent.student_id == student_id,
            PlanEvent.kind == "rating_changed",
            PlanEvent.topic_id.in_(topic_ids),
        )
        .order_by(PlanEvent.created_at.desc())
        .all()
    )

    latest: Dict[UUID, RatingChange] = {}
    for record in records:
        if record.topic_id in latest:
            continue
        event = decode_event(record).payload
        latest[record.topic_id] = RatingChange(
            at=record.created_at,
            rating=event.rating,
            source=event.source.value,
            maintenance_interval_days=event.maintenance_interval_days,
        )
    return latest


def rerating_history(db: Session, student_id: UUID, topic_id: UUID) -> List[RatingChanged]:
    """Rerating outcomes for a topic, newest first."""
    records = (
        db.query(PlanEvent)
        .filter(
            PlanEvent.student_id == student_id,
            PlanEvent.kind == "rating_changed",
            PlanEvent.topic_id == topic_id,
        )
        .order_by(PlanEvent.created_at.desc())
        .all()
    )
    history = []
    for record in records:
        event = decode_event(record).payload
        if event.source == RatingSource.RERATING:
            history.append(event)
    return history


def missed_event_times(db: Session, student_id: UUID) -> Dict[UUID, List[datetime]]:
    """Every logged miss per block id, oldest first. A block can be missed more than once."""
    records = (
        db.query(PlanEvent.block_id, PlanEvent.created_at)
        .filter(PlanEvent.student_id == student_id, PlanEvent.kind == "block_missed")
        .order_by(PlanEvent.created_at.asc())
        .all()
    )
    times: Dict[UUID, List[datetime]] = {}
    for block_id, created_at in records:
        times.setdefault(block_id, []).append(created_at)
    return times
