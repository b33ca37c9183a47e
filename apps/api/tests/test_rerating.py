"""
Tests for re-rating and maintenance scheduling

Maintenance intervals escalate 7 -> 14 -> 30 -> 60 -> 90 days across
consecutive confident reratings and restart after a low one.
"""

import pytest
from datetime import date, datetime, time, timedelta

from core.exceptions import AuthorizationError, ValidationError
from models import Block, ConfidenceRating
from services.confidence_ledger import save_rating
from services.event_store import list_events, rerating_history
from services.rerating import consecutive_high_reratings, next_action_for, submit_rerating
from services.session_planner import generate_plan

MONDAY = date(2026, 10, 19)
NEXT_MONDAY = MONDAY + timedelta(days=7)


def at(day_offset, hour, minute=0):
    return datetime.combine(MONDAY + timedelta(days=day_offset), time(hour, minute))


def make_block(db, student_id, topic_id, scheduled_at, **kwargs):
    block = Block(
        student_id=student_id,
        topic_id=topic_id,
        scheduled_at=scheduled_at,
        created_at=kwargs.pop("created_at", scheduled_at - timedelta(days=1)),
        **kwargs,
    )
    db.add(block)
    db.commit()
    return block


class TestNextAction:

    def test_low_ratings_get_reinforcement(self):
        action = next_action_for(1, 3, at(0, 9))
        assert action["type"] == "reinforcement"
        assert action["sessions_needed"] == 3

    def test_high_rating_interval_escalates(self):
        now = at(0, 9)
        assert [next_action_for(4, n, now)["days_until_review"] for n in range(6)] == [7, 14, 30, 60, 90, 90]
        assert next_action_for(5, 0, now)["review_date"] == "2026-10-26"


class TestEscalation:

    def test_consecutive_confident_reratings(self, db_session, student, topic_factory):
        topic = topic_factory()
        save_rating(db_session, student.id, topic.id, 3, at(-30, 9))

        intervals = []
        for i, rating in enumerate((4, 5, 4, 5, 4, 5)):
            now = at(i, 10)
            block = make_block(db_session, student.id, topic.id, at(i, 9))
            outcome = submit_rerating(db_session, student.id, block.id, rating, now)
            intervals.append(outcome.next_action["days_until_review"])

        assert intervals == [7, 14, 30, 60, 90, 90]
        assert consecutive_high_reratings(db_session, student.id, topic.id) == 6

    def test_low_rerating_restarts_escalation(self, db_session, student, topic_factory):
        topic = topic_factory()
        save_rating(db_session, student.id, topic.id, 3, at(-30, 9))

        for i, rating in enumerate((5, 5, 3)):
            block = make_block(db_session, student.id, topic.id, at(i, 9))
            submit_rerating(db_session, student.id, block.id, rating, at(i, 10))
        block = make_block(db_session, student.id, topic.id, at(3, 9))
        outcome = submit_rerating(db_session, student.id, block.id, 4, at(3, 10))

        assert outcome.next_action["days_until_review"] == 7

    def test_manual_ratings_do_not_count(self, db_session, student, topic_factory):
        topic = topic_factory()
        save_rating(db_session, student.id, topic.id, 5, at(-3, 9))
        save_rating(db_session, student.id, topic.id, 4, at(-2, 9))

        block = make_block(db_session, student.id, topic.id, at(0, 9))
        outcome = submit_rerating(db_session, student.id, block.id, 5, at(0, 10))

        assert outcome.next_action["days_until_review"] == 7


class TestSubmitRerating:

    def test_updates_block_rating_and_events(self, db_session, student, topic_factory):
        topic = topic_factory()
        save_rating(db_session, student.id, topic.id, 3, at(-1, 9))
        block = make_block(db_session, student.id, topic.id, at(0, 9))

        submit_rerating(db_session, student.id, block.id, 4, at(0, 10))

        db_session.expire_all()
        stored = db_session.query(Block).filter(Block.id == block.id).one()
        assert stored.status == "done"
        assert stored.completed_at == at(0, 10)
        assert stored.rerating_score == 4
        rating = db_session.query(ConfidenceRating).filter(ConfidenceRating.topic_id == topic.id).one()
        assert rating.rating == 4

        history = rerating_history(db_session, student.id, topic.id)
        assert len(history) == 1
        assert history[0].maintenance_interval_days == 7
        assert history[0].block_id == block.id
        kinds = {e.payload.kind for e in list_events(db_session, student.id)}
        assert {"block_done", "rating_changed", "rerating_decision"} <= kinds

    def test_same_rating_still_recorded(self, db_session, student, topic_factory):
        topic = topic_factory()
        save_rating(db_session, student.id, topic.id, 4, at(-1, 9))
        block = make_block(db_session, student.id, topic.id, at(0, 9))

        submit_rerating(db_session, student.id, block.id, 4, at(0, 10))

        assert len(rerating_history(db_session, student.id, topic.id)) == 1

    def test_rejects_out_of_range(self, db_session, student, topic_factory):
        topic = topic_factory()
        block = make_block(db_session, student.id, topic.id, at(0, 9))

        with pytest.raises(ValidationError):
            submit_rerating(db_session, student.id, block.id, 0, at(0, 10))

    def test_rejects_other_students_block(self, db_session, student, other_student, topic_factory):
        topic = topic_factory()
        block = make_block(db_session, other_student.id, topic.id, at(0, 9))

        with pytest.raises(AuthorizationError):
            submit_rerating(db_session, student.id, block.id, 4, at(0, 10))

    def test_skipped_block_cannot_be_rerated(self, db_session, student, topic_factory):
        topic = topic_factory()
        save_rating(db_session, student.id, topic.id, 3, at(-1, 9))
        block = make_block(db_session, student.id, topic.id, at(0, 9), status="skipped")

        with pytest.raises(ValidationError):
            submit_rerating(db_session, student.id, block.id, 4, at(0, 10))

        db_session.expire_all()
        assert db_session.query(ConfidenceRating).filter(ConfidenceRating.topic_id == topic.id).one().rating == 3

    def test_block_swept_as_missed_can_still_be_rerated(self, db_session, student, topic_factory):
        from services.missed_sweep import sweep_missed

        topic = topic_factory()
        save_rating(db_session, student.id, topic.id, 3, at(-1, 9))
        block = make_block(db_session, student.id, topic.id, at(0, 9), session_number=1, session_total=1)
        sweep_missed(db_session, at(0, 12))

        outcome = submit_rerating(db_session, student.id, block.id, 4, at(0, 13))

        db_session.expire_all()
        stored = db_session.get(Block, block.id)
        assert stored.status == "done"
        assert stored.completed_at == at(0, 13)
        assert outcome.next_action["type"] == "maintenance"
        transitions = list_events(db_session, student.id, kinds=["block_missed", "block_rescheduled", "block_done"])
        assert sorted((e.payload.kind, e.payload.from_status) for e in transitions) == [
            ("block_done", "scheduled"),
            ("block_missed", "scheduled"),
            ("block_rescheduled", "missed"),
        ]


class TestFollowUpPlanning:
    """The next planning pass acts on the rerating."""

    def test_low_rerating_schedules_new_cycle(self, db_session, student, profile, topic_factory):
        topic = topic_factory()
        save_rating(db_session, student.id, topic.id, 3, at(0, 7))
        block = generate_plan(db_session, student.id, MONDAY, ["maths"], at(0, 7)).blocks[0]

        submit_rerating(db_session, student.id, block.id, 2, at(0, 10))
        plan = generate_plan(db_session, student.id, MONDAY, ["maths"], at(0, 10))

        assert [(b.session_number, b.session_total) for b in plan.blocks] == [(1, 2), (2, 2)]
        assert [b.scheduled_at for b in plan.blocks] == [at(1, 9), at(2, 9)]

    def test_confident_rerating_schedules_maintenance(self, db_session, student, profile, topic_factory):
        topic = topic_factory()
        save_rating(db_session, student.id, topic.id, 3, at(0, 7))
        block = generate_plan(db_session, student.id, MONDAY, ["maths"], at(0, 7)).blocks[0]

        submit_rerating(db_session, student.id, block.id, 4, at(0, 10))
        this_week = generate_plan(db_session, student.id, MONDAY, ["maths"], at(0, 10))
        next_week = generate_plan(db_session, student.id, NEXT_MONDAY, ["maths"], at(5, 10))

        assert this_week.blocks == []
        assert len(next_week.blocks) == 1
        review = next_week.blocks[0]
        assert review.session_kind == "maintenance"
        assert review.scheduled_at == datetime.combine(NEXT_MONDAY, time(9))

    def test_maintenance_not_scheduled_before_due(self, db_session, student, profile, topic_factory):
        topic = topic_factory()
        save_rating(db_session, student.id, topic.id, 3, at(0, 7))
        block = generate_plan(db_session, student.id, MONDAY, ["maths"], at(0, 7)).blocks[0]

        submit_rerating(db_session, student.id, block.id, 5, at(0, 10))
        # Second confident rerating in a row: 14 days
        second = make_block(db_session, student.id, topic.id, at(1, 9), created_at=at(0, 11))
        submit_rerating(db_session, student.id, second.id, 5, at(1, 10))

        plan = generate_plan(db_session, student.id, NEXT_MONDAY, ["maths"], at(5, 10))

        assert plan.blocks == []
