"""
ORM models for the revision planner.

Column types are portable (Uuid, JSON) so the same schema runs on
PostgreSQL in production and SQLite in tests. Datetimes are naive
wall-clock values in PLANNER_TIMEZONE (see core.clock).
"""
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Text,
    Time,
    UniqueConstraint,
    Uuid,
)
from datetime import timedelta

from core.clock import local_now
from core.database import Base


class Student(Base):
    __tablename__ = "student"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(Text, nullable=True, unique=True)
    display_name = Column(Text, nullable=True)
    created_at = Column(DateTime, default=local_now, nullable=False)


class Topic(Base):
    """
    Node of the syllabus tree. Only level-3 leaves are rated and scheduled.
    """
    __tablename__ = "topic"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    subject = Column(Text, nullable=False, index=True)
    title = Column(Text, nullable=False)
    level = Column(Integer, nullable=False)
    parent_id = Column(Uuid, ForeignKey("topic.id"), nullable=True)
    order_index = Column(Integer, nullable=False, default=0)
    exam_date = Column(Date, nullable=True)  # drives exam urgency in the planner

    __table_args__ = (
        CheckConstraint("level BETWEEN 1 AND 3", name="ck_topic_level"),
        Index("ix_topic_subject_level_order", "subject", "level", "order_index"),
    )


class ConfidenceRating(Base):
    """
    Active self-assessment for one (student, topic) pair.

    -2..0 mean "do not schedule", 1..5 run from "no idea" to "confident".
    """
    __tablename__ = "confidence_rating"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("student.id"), nullable=False, index=True)
    topic_id = Column(Uuid, ForeignKey("topic.id"), nullable=False)
    rating = Column(Integer, nullable=False)
    last_updated = Column(DateTime, default=local_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("student_id", "topic_id", name="uq_confidence_rating_student_topic"),
        CheckConstraint("rating BETWEEN -2 AND 5", name="ck_confidence_rating_range"),
    )


class Block(Base):
    """
    One scheduled study session.

    Created only by the planner, status moved by the lifecycle service,
    never deleted by normal flow.
    """
    __tablename__ = "block"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("student.id"), nullable=False)
    topic_id = Column(Uuid, ForeignKey("topic.id"), nullable=False)
    scheduled_at = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=30)
    status = Column(Text, nullable=False, default="scheduled")  # scheduled, done, skipped, missed
    completed_at = Column(DateTime, nullable=True)
    session_number = Column(Integer, nullable=False, default=1)
    session_total = Column(Integer, nullable=False, default=1)
    session_kind = Column(Text, nullable=False, default="revision")  # revision, maintenance
    cycle_rating = Column(Integer, nullable=True)  # rating the cycle was planned from
    rerating_score = Column(Integer, nullable=True)
    rationale = Column(Text, nullable=True)  # decoration only, never read by the planner
    created_at = Column(DateTime, default=local_now, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('scheduled', 'done', 'skipped', 'missed')",
            name="ck_block_status",
        ),
        CheckConstraint(
            "session_number >= 1 AND session_number <= session_total",
            name="ck_block_session_number",
        ),
        Index("ix_block_student_scheduled_at", "student_id", "scheduled_at"),
        Index("ix_block_student_topic_created", "student_id", "topic_id", "created_at"),
        Index("ix_block_status_scheduled_at", "status", "scheduled_at"),
    )

    @property
    def ends_at(self):
        return self.scheduled_at + timedelta(minutes=self.duration_minutes)


class AvailabilityProfile(Base):
    __tablename__ = "availability_profile"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("student.id"), nullable=False, unique=True)
    weekday_earliest = Column(Time, nullable=False)
    weekday_latest = Column(Time, nullable=False)
    weekend_earliest = Column(Time, nullable=True)
    weekend_latest = Column(Time, nullable=True)
    # When true, weekends reuse the weekday window
    use_same_weekend_times = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime, default=local_now, onupdate=local_now, nullable=False)


class UnavailableInterval(Base):
    """Blocked time entered for a specific date range."""
    __tablename__ = "unavailable_interval"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("student.id"), nullable=False)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    reason = Column(Text, nullable=True)
    source = Column(Text, nullable=False, default="explicit")
    created_at = Column(DateTime, default=local_now, nullable=False)

    __table_args__ = (
        CheckConstraint("end_at > start_at", name="ck_unavailable_interval_order"),
        Index("ix_unavailable_interval_student_start", "student_id", "start_at"),
    )


class RecurringEvent(Base):
    """
    Weekly template of blocked time (school, clubs, shifts).

    Expanded into concrete intervals for each week being resolved.
    days_of_week uses 0=Monday .. 6=Sunday.
    """
    __tablename__ = "recurring_event"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("student.id"), nullable=False, index=True)
    label = Column(Text, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    days_of_week = Column(JSON, nullable=False, default=list)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    created_at = Column(DateTime, default=local_now, nullable=False)


class WeekConfirmation(Base):
    """Student reviewed the week and has nothing to block."""
    __tablename__ = "week_confirmation"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("student.id"), nullable=False)
    week_start_date = Column(Date, nullable=False)
    confirmed_at = Column(DateTime, default=local_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("student_id", "week_start_date", name="uq_week_confirmation_student_week"),
    )


class PlanEvent(Base):
    """
    Append-only typed event log.

    ``kind`` is the discriminator of services.event_store.PlanEventPayload;
    topic_id/block_id are denormalised out of the payload for lookups.
    """
    __tablename__ = "plan_event"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("student.id"), nullable=False)
    kind = Column(Text, nullable=False)
    topic_id = Column(Uuid, nullable=True)
    block_id = Column(Uuid, nullable=True)
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=local_now, nullable=False)

    __table_args__ = (
        Index("ix_plan_event_student_kind_created", "student_id", "kind", "created_at"),
        Index("ix_plan_event_student_topic_created", "student_id", "topic_id", "created_at"),
        Index("ix_plan_event_block", "block_id"),
    )
