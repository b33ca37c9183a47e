"""
Integration tests for the block action endpoints

Done / skip / reschedule / rerate, ownership checks and the events each
transition leaves behind.
"""
import pytest
from datetime import date, datetime, time, timedelta
from uuid import uuid4

from fastapi.testclient import TestClient

from core.clock import get_now
from main import app
from models import Block, ConfidenceRating, PlanEvent
from services.confidence_ledger import save_rating
from services.session_planner import generate_plan

client = TestClient(app)

MONDAY = date(2026, 10, 19)
NOW = datetime(2026, 10, 19, 12, 0)


@pytest.fixture(autouse=True)
def pinned_clock():
    app.dependency_overrides[get_now] = lambda: NOW
    yield
    app.dependency_overrides.pop(get_now, None)


@pytest.fixture
def plan_blocks(db_session, student, profile, topic_factory):
    """Three sessions of a rating-1 topic: Monday, Tuesday, Wednesday at 09:00."""
    topic = topic_factory("Vectors")
    planned_at = datetime(2026, 10, 19, 7, 0)
    save_rating(db_session, student.id, topic.id, 1, planned_at)
    plan = generate_plan(db_session, student.id, MONDAY, ["maths"], planned_at)
    return plan.blocks


def events_for(db_session, block_id, kind=None):
    query = db_session.query(PlanEvent).filter(PlanEvent.block_id == block_id)
    if kind:
        query = query.filter(PlanEvent.kind == kind)
    return query.all()


class TestMarkDone:

    def test_done_sets_completed_at(self, auth_headers, plan_blocks):
        response = client.post(f"/v1/plan/blocks/{plan_blocks[0].id}/done", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["block"]["status"] == "done"
        assert data["block"]["completed_at"] == NOW.isoformat()
        assert data["rerating_due"] is False

    def test_final_session_asks_for_rerating(self, auth_headers, plan_blocks):
        response = client.post(f"/v1/plan/blocks/{plan_blocks[-1].id}/done", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["rerating_due"] is True

    def test_done_twice_is_a_no_op(self, db_session, auth_headers, plan_blocks):
        block_id = plan_blocks[0].id
        first = client.post(f"/v1/plan/blocks/{block_id}/done", headers=auth_headers)
        second = client.post(f"/v1/plan/blocks/{block_id}/done", headers=auth_headers)

        assert first.status_code == second.status_code == 200
        assert second.json()["block"]["status"] == "done"
        assert len(events_for(db_session, block_id, "block_done")) == 1

    def test_transition_is_logged_with_previous_status(self, db_session, auth_headers, plan_blocks):
        block_id = plan_blocks[0].id
        client.post(f"/v1/plan/blocks/{block_id}/done", headers=auth_headers)

        event = events_for(db_session, block_id, "block_done")[0]
        assert event.payload["from_status"] == "scheduled"
        assert event.payload["session_number"] == 1
        assert event.created_at == NOW


class TestSkipAndRevert:

    def test_skip(self, auth_headers, plan_blocks):
        response = client.post(f"/v1/plan/blocks/{plan_blocks[1].id}/skip", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["block"]["status"] == "skipped"
        assert response.json()["block"]["completed_at"] is None

    def test_done_block_cannot_be_skipped(self, auth_headers, plan_blocks):
        block_id = plan_blocks[0].id
        client.post(f"/v1/plan/blocks/{block_id}/done", headers=auth_headers)

        response = client.post(f"/v1/plan/blocks/{block_id}/skip", headers=auth_headers)

        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR_STATUS"

    def test_revert_done_clears_completed_at(self, db_session, auth_headers, plan_blocks):
        block_id = plan_blocks[0].id
        client.post(f"/v1/plan/blocks/{block_id}/done", headers=auth_headers)

        response = client.post(f"/v1/plan/blocks/{block_id}/reschedule", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["block"]["status"] == "scheduled"
        assert response.json()["block"]["completed_at"] is None
        assert len(events_for(db_session, block_id, "block_rescheduled")) == 1

    def test_revert_then_skip(self, auth_headers, plan_blocks):
        block_id = plan_blocks[0].id
        client.post(f"/v1/plan/blocks/{block_id}/done", headers=auth_headers)
        client.post(f"/v1/plan/blocks/{block_id}/reschedule", headers=auth_headers)

        response = client.post(f"/v1/plan/blocks/{block_id}/skip", headers=auth_headers)

        assert response.json()["block"]["status"] == "skipped"


class TestOwnership:

    def test_unknown_block(self, auth_headers, plan_blocks):
        response = client.post(f"/v1/plan/blocks/{uuid4()}/done", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_other_students_block(self, db_session, auth_headers, other_student, topic_factory):
        topic = topic_factory()
        block = Block(
            student_id=other_student.id,
            topic_id=topic.id,
            scheduled_at=datetime.combine(MONDAY, time(9)),
            created_at=NOW,
        )
        db_session.add(block)
        db_session.commit()

        response = client.post(f"/v1/plan/blocks/{block.id}/done", headers=auth_headers)

        assert response.status_code == 403
        db_session.expire_all()
        assert db_session.query(Block).filter(Block.id == block.id).one().status == "scheduled"

    def test_requires_authentication(self, plan_blocks):
        response = client.post(f"/v1/plan/blocks/{plan_blocks[0].id}/done")
        assert response.status_code == 401


class TestRerateEndpoint:

    def test_rerate_finishes_block_and_updates_rating(self, db_session, student, auth_headers, plan_blocks):
        final = plan_blocks[-1]

        response = client.post(
            f"/v1/plan/blocks/{final.id}/rerate", json={"rating": 5}, headers=auth_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["block"]["status"] == "done"
        assert data["block"]["rerating_score"] == 5
        assert data["next_action"]["type"] == "maintenance"
        assert data["next_action"]["days_until_review"] == 7
        assert data["next_action"]["review_date"] == (NOW.date() + timedelta(days=7)).isoformat()

        db_session.expire_all()
        rating = db_session.query(ConfidenceRating).filter(
            ConfidenceRating.student_id == student.id,
            ConfidenceRating.topic_id == final.topic_id,
        ).one()
        assert rating.rating == 5

    def test_low_rerate_asks_for_reinforcement(self, auth_headers, plan_blocks):
        response = client.post(
            f"/v1/plan/blocks/{plan_blocks[-1].id}/rerate", json={"rating": 2}, headers=auth_headers
        )

        assert response.json()["next_action"]["type"] == "reinforcement"
        assert response.json()["next_action"]["sessions_needed"] == 2

    @pytest.mark.parametrize("rating", [0, 6, -1])
    def test_rerate_out_of_range(self, db_session, auth_headers, plan_blocks, rating):
        block_id = plan_blocks[-1].id
        response = client.post(
            f"/v1/plan/blocks/{block_id}/rerate", json={"rating": rating}, headers=auth_headers
        )

        assert response.status_code == 422
        db_session.expire_all()
        assert db_session.query(Block).filter(Block.id == block_id).one().status == "scheduled"


class TestListBlocks:

    def test_week_listing_and_status_filter(self, auth_headers, plan_blocks):
        client.post(f"/v1/plan/blocks/{plan_blocks[0].id}/done", headers=auth_headers)

        all_blocks = client.get("/v1/plan/blocks", params={"week_start": "2026-10-21"}, headers=auth_headers)
        done = client.get(
            "/v1/plan/blocks", params={"week_start": "2026-10-19", "status": "done"}, headers=auth_headers
        )
        next_week = client.get("/v1/plan/blocks", params={"week_start": "2026-10-26"}, headers=auth_headers)

        assert [b["session_number"] for b in all_blocks.json()] == [1, 2, 3]
        assert [b["id"] for b in done.json()] == [str(plan_blocks[0].id)]
        assert next_week.json() == []
