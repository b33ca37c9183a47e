"""
Allocation Rule Tests

Exercise the pure planning engine (slots, demand, ordering, allocation)
without a database.
"""

import pytest
from datetime import date, datetime, time, timedelta
from uuid import uuid4

from services.revision_planner import (
    AvailabilityWindows,
    CountedBlock,
    RatingChange,
    RecurringTemplate,
    SessionAllocator,
    SessionKind,
    TimeSpan,
    TopicState,
    UnmetReason,
    build_week_slots,
    compute_demand,
    default_priority_key,
    exam_first_priority_key,
    expand_recurring,
    has_same_day_capacity,
    maintenance_interval_days,
    monday_of,
    order_demands,
    sessions_needed,
)

MONDAY = date(2026, 10, 19)
WEEKDAY_9_TO_5 = AvailabilityWindows(weekday_earliest=time(9), weekday_latest=time(17))


def at(day_offset, hour, minute=0):
    return datetime.combine(MONDAY + timedelta(days=day_offset), time(hour, minute))


def week_slots(windows=WEEKDAY_9_TO_5, blocked=(), now=None, duration=30):
    return build_week_slots(MONDAY, windows, list(blocked), duration, 30, now=now)


def fresh_state(rating, order_index=1, exam_date=None, blocks=(), change=None):
    return TopicState(
        topic_id=uuid4(),
        rating=rating,
        order_index=order_index,
        exam_date=exam_date,
        blocks=tuple(blocks),
        latest_change=change,
    )


class TestRules:
    """Cycle lengths and maintenance intervals."""

    def test_sessions_needed_table(self):
        assert [sessions_needed(r) for r in (1, 2, 3, 4, 5)] == [3, 2, 1, 0, 0]

    def test_non_positive_ratings_owe_nothing(self):
        assert sessions_needed(0) == 0
        assert sessions_needed(-2) == 0

    def test_maintenance_interval_escalates_and_caps(self):
        assert [maintenance_interval_days(n) for n in range(7)] == [7, 14, 30, 60, 90, 90, 90]


class TestSlots:
    """Open slots from windows, blocked time and cut-off."""

    def test_slots_stay_inside_window(self):
        slots = week_slots()
        monday = [s for s in slots if s.day == MONDAY]
        assert monday[0].start == at(0, 9)
        assert monday[-1].end == at(0, 17)
        assert len(monday) == 16

    def test_blocked_interval_removes_overlapping_slots(self):
        blocked = [TimeSpan(at(0, 9), at(0, 12))]
        monday = [s for s in week_slots(blocked=blocked) if s.day == MONDAY]
        assert monday[0].start == at(0, 12)

    def test_weekend_uses_own_window_when_not_shared(self):
        windows = AvailabilityWindows(
            weekday_earliest=time(16),
            weekday_latest=time(18),
            weekend_earliest=time(10),
            weekend_latest=time(11),
            use_same_weekend_times=False,
        )
        saturday = [s for s in week_slots(windows=windows) if s.day == MONDAY + timedelta(days=5)]
        assert [s.start.time() for s in saturday] == [time(10), time(10, 30)]

    def test_weekend_shares_weekday_window_by_default(self):
        sunday = [s for s in week_slots() if s.day == MONDAY + timedelta(days=6)]
        assert sunday[0].start.time() == time(9)

    def test_past_days_and_elapsed_slots_are_excluded(self):
        now = at(2, 10, 10)  # Wednesday 10:10
        slots = week_slots(now=now)
        assert all(s.day >= now.date() for s in slots)
        wednesday = [s for s in slots if s.day == now.date()]
        assert wednesday[0].start == at(2, 10, 30)

    def test_longer_blocks_must_end_by_latest(self):
        slots = week_slots(duration=90)
        monday = [s for s in slots if s.day == MONDAY]
        assert monday[-1].end == at(0, 17)
        assert monday[-1].start == at(0, 15, 30)

    def test_recurring_event_expands_inside_date_range(self):
        school = RecurringTemplate(
            start_time=time(9),
            end_time=time(15, 30),
            days_of_week=(0, 1, 2, 3, 4),
            start_date=MONDAY + timedelta(days=1),
            end_date=MONDAY + timedelta(days=3),
        )
        spans = expand_recurring([school], MONDAY)
        assert [s.day for s in spans] == [MONDAY + timedelta(days=i) for i in (1, 2, 3)]

    def test_overnight_recurring_event_is_ignored(self):
        shift = RecurringTemplate(start_time=time(22), end_time=time(2), days_of_week=(0,))
        assert expand_recurring([shift], MONDAY) == []

    def test_same_day_capacity(self):
        assert has_same_day_capacity(at(0, 16), WEEKDAY_9_TO_5, [], 30, 30)
        assert not has_same_day_capacity(at(0, 16, 45), WEEKDAY_9_TO_5, [], 30, 30)
        blocked = [TimeSpan(at(0, 16), at(0, 17))]
        assert not has_same_day_capacity(at(0, 15, 45), WEEKDAY_9_TO_5, blocked, 30, 30)

    def test_monday_of(self):
        assert monday_of(date(2026, 10, 25)) == MONDAY
        assert monday_of(MONDAY) == MONDAY


class TestDemand:
    """Remaining demand since the latest rating change."""

    def test_fresh_topic_owes_full_cycle(self):
        demand = compute_demand(fresh_state(1), MONDAY)
        assert demand.session_numbers == [1, 2, 3]
        assert demand.session_total == 3
        assert demand.brand_new

    def test_confident_topic_owes_nothing(self):
        assert compute_demand(fresh_state(4), MONDAY) is None

    def test_delivered_blocks_reduce_demand(self):
        blocks = [
            CountedBlock(at(-7, 9), at(-8, 12), 1, "done"),
            CountedBlock(at(-6, 9), at(-8, 12), 2, "scheduled"),
        ]
        demand = compute_demand(fresh_state(1, blocks=blocks), MONDAY)
        assert demand.session_numbers == [3]
        assert demand.last_session_day == (MONDAY - timedelta(days=6))
        assert not demand.brand_new

    def test_missed_and_skipped_blocks_are_owed_again(self):
        blocks = [
            CountedBlock(at(-7, 9), at(-8, 12), 1, "done"),
            CountedBlock(at(-6, 9), at(-8, 12), 2, "missed"),
            CountedBlock(at(-5, 9), at(-8, 12), 3, "skipped"),
        ]
        demand = compute_demand(fresh_state(1, blocks=blocks), MONDAY)
        assert demand.session_numbers == [2, 3]

    def test_rating_change_restarts_cycle(self):
        blocks = [
            CountedBlock(at(-7, 9), at(-8, 12), 1, "done"),
            CountedBlock(at(-6, 9), at(-8, 12), 2, "done"),
        ]
        change = RatingChange(at=at(-5, 18), rating=1)
        demand = compute_demand(fresh_state(1, blocks=blocks, change=change), MONDAY)
        assert demand.session_numbers == [1, 2, 3]
        assert demand.brand_new

    def test_maintenance_due_inside_week(self):
        change = RatingChange(at=at(-3, 12), rating=4, source="rerating", maintenance_interval_days=7)
        demand = compute_demand(fresh_state(4, change=change), MONDAY)
        assert demand.kind == SessionKind.MAINTENANCE
        assert demand.session_numbers == [1]
        assert demand.earliest_day == MONDAY + timedelta(days=4)

    def test_maintenance_not_yet_due(self):
        change = RatingChange(at=at(0, 12), rating=5, source="rerating", maintenance_interval_days=14)
        assert compute_demand(fresh_state(5, change=change), MONDAY) is None

    def test_maintenance_already_booked(self):
        change = RatingChange(at=at(-3, 12), rating=4, source="rerating", maintenance_interval_days=7)
        blocks = [CountedBlock(at(4, 9), at(-2, 9), 1, "scheduled")]
        assert compute_demand(fresh_state(4, blocks=blocks, change=change), MONDAY) is None

    def test_manual_high_rating_has_no_maintenance(self):
        change = RatingChange(at=at(-30, 12), rating=5, source="manual")
        assert compute_demand(fresh_state(5, change=change), MONDAY) is None


class TestPriority:
    """Demand ordering is deterministic and replaceable."""

    def test_default_orders_rating_then_exam_then_syllabus(self):
        weak = compute_demand(fresh_state(1, order_index=5), MONDAY)
        exam_soon = compute_demand(fresh_state(2, order_index=9, exam_date=MONDAY + timedelta(days=10)), MONDAY)
        exam_later = compute_demand(fresh_state(2, order_index=1, exam_date=MONDAY + timedelta(days=40)), MONDAY)
        undated = compute_demand(fresh_state(2, order_index=0), MONDAY)

        ordered = order_demands([undated, exam_later, exam_soon, weak], MONDAY)
        assert ordered == [weak, exam_soon, exam_later, undated]

    def test_exam_first_comparator(self):
        weak_undated = compute_demand(fresh_state(1), MONDAY)
        fair_exam = compute_demand(fresh_state(3, exam_date=MONDAY + timedelta(days=3)), MONDAY)

        assert order_demands([weak_undated, fair_exam], MONDAY)[0] is weak_undated
        assert order_demands([weak_undated, fair_exam], MONDAY, exam_first_priority_key)[0] is fair_exam

    def test_topic_id_breaks_remaining_ties(self):
        a = compute_demand(fresh_state(2, order_index=1), MONDAY)
        b = compute_demand(fresh_state(2, order_index=1), MONDAY)
        assert default_priority_key(a, MONDAY) != default_priority_key(b, MONDAY)
        assert order_demands([a, b], MONDAY) == order_demands([b, a], MONDAY)


class TestAllocator:
    """First-fit placement and week-boundary policy."""

    def test_rating_one_gets_three_consecutive_days(self):
        demand = compute_demand(fresh_state(1), MONDAY)
        result = SessionAllocator(week_slots(), first_week=True).allocate([demand], MONDAY)

        assert [(p.session_number, p.span.start) for p in result.placements] == [
            (1, at(0, 9)), (2, at(1, 9)), (3, at(2, 9)),
        ]
        assert result.unmet == []

    def test_topics_never_share_a_slot(self):
        demands = [compute_demand(fresh_state(1, order_index=i), MONDAY) for i in range(3)]
        result = SessionAllocator(week_slots(), first_week=True).allocate(demands, MONDAY)

        spans = [p.span for p in result.placements]
        assert len(spans) == 9
        for i, a in enumerate(spans):
            for b in spans[i + 1:]:
                assert not a.overlaps(b)

    def test_existing_topic_day_is_skipped(self):
        demand = compute_demand(fresh_state(3), MONDAY)
        allocator = SessionAllocator(week_slots(), topic_days={demand.topic_id: {MONDAY}}, first_week=True)
        result = allocator.allocate([demand], MONDAY)
        assert result.placements[0].span.day == MONDAY + timedelta(days=1)

    def test_continuation_lands_after_last_delivered_day(self):
        blocks = [CountedBlock(at(2, 9), at(-1, 9), 1, "done")]
        demand = compute_demand(fresh_state(2, blocks=blocks), MONDAY)
        result = SessionAllocator(week_slots(), first_week=False).allocate([demand], MONDAY)
        assert result.placements[0].span.day == MONDAY + timedelta(days=3)

    def test_later_week_defers_cycle_that_cannot_finish(self):
        now = at(5, 8)  # Saturday: only Saturday and Sunday remain
        demand = compute_demand(fresh_state(1), MONDAY)
        result = SessionAllocator(week_slots(now=now), first_week=False).allocate([demand], MONDAY)

        assert result.placements == []
        assert result.unmet[0].reason == UnmetReason.DEFERRED
        assert result.unmet[0].sessions == 3

    def test_first_week_overflows_but_never_starts_on_weekend(self):
        now = at(4, 8)  # Friday
        demand = compute_demand(fresh_state(1), MONDAY)
        result = SessionAllocator(week_slots(now=now), first_week=True).allocate([demand], MONDAY)

        assert [p.span.day.weekday() for p in result.placements] == [4, 5, 6]

        saturday = compute_demand(fresh_state(1), MONDAY)
        late = SessionAllocator(week_slots(now=at(5, 8)), first_week=True).allocate([saturday], MONDAY)
        assert late.placements == []
        assert late.unmet[0].reason == UnmetReason.WEEKEND_START

    def test_single_session_may_start_on_weekend(self):
        demand = compute_demand(fresh_state(3), MONDAY)
        result = SessionAllocator(week_slots(now=at(5, 8)), first_week=True).allocate([demand], MONDAY)
        assert result.placements[0].span.start == at(5, 9)
        assert result.unmet == []

    def test_continuation_places_what_fits_and_reports_rest(self):
        blocks = [CountedBlock(at(-3, 9), at(-4, 9), 1, "done")]
        demand = compute_demand(fresh_state(1, blocks=blocks), MONDAY)
        result = SessionAllocator(week_slots(now=at(6, 8)), first_week=False).allocate([demand], MONDAY)

        assert [p.session_number for p in result.placements] == [2]
        assert result.unmet[0].sessions == 1
        assert result.unmet[0].reason == UnmetReason.NO_OPEN_SLOT

    def test_no_slot_is_reported(self):
        demand = compute_demand(fresh_state(3), MONDAY)
        result = SessionAllocator([], first_week=True).allocate([demand], MONDAY)
        assert result.unmet[0].reason == UnmetReason.NO_OPEN_SLOT

    def test_maintenance_waits_for_due_date(self):
        change = RatingChange(at=at(-4, 12), rating=4, source="rerating", maintenance_interval_days=7)
        demand = compute_demand(fresh_state(4, change=change), MONDAY)
        result = SessionAllocator(week_slots(), first_week=False).allocate([demand], MONDAY)
        assert result.placements[0].span.start == at(3, 9)
        assert result.placements[0].kind == SessionKind.MAINTENANCE

    def test_allocation_is_deterministic(self):
        states = [fresh_state(r, order_index=i) for i, r in enumerate((1, 2, 3, 1))]
        demands = [compute_demand(s, MONDAY) for s in states]
        first = SessionAllocator(week_slots(), first_week=True).allocate(demands, MONDAY)
        second = SessionAllocator(week_slots(), first_week=True).allocate(list(reversed(demands)), MONDAY)
        assert first.placements == second.placements


class TestDailyLoad:
    """Per-day session cap and back-to-back run limit."""

    def monday_only(self):
        return [s for s in week_slots() if s.day == MONDAY]

    def single_sessions(self, count):
        return [compute_demand(fresh_state(3, order_index=i), MONDAY) for i in range(count)]

    def test_day_cap_moves_sessions_to_next_day(self):
        allocator = SessionAllocator(week_slots(), first_week=True, max_sessions_per_day=2)
        result = allocator.allocate(self.single_sessions(3), MONDAY)

        assert [p.span.start for p in result.placements] == [at(0, 9), at(0, 9, 30), at(1, 9)]

    def test_day_cap_overflow_is_reported(self):
        allocator = SessionAllocator(self.monday_only(), first_week=True, max_sessions_per_day=2)
        result = allocator.allocate(self.single_sessions(3), MONDAY)

        assert len(result.placements) == 2
        assert len(result.unmet) == 1
        assert result.unmet[0].reason == UnmetReason.NO_OPEN_SLOT

    def test_already_booked_sessions_count_towards_cap(self):
        booked = [TimeSpan(at(0, 14), at(0, 14, 30))]
        allocator = SessionAllocator(week_slots(), first_week=True, booked=booked, max_sessions_per_day=1)
        result = allocator.allocate(self.single_sessions(1), MONDAY)

        assert result.placements[0].span.start == at(1, 9)

    def test_long_runs_get_a_break(self):
        allocator = SessionAllocator(self.monday_only(), first_week=True, max_consecutive=2)
        result = allocator.allocate(self.single_sessions(4), MONDAY)

        assert sorted(p.span.start for p in result.placements) == [
            at(0, 9), at(0, 9, 30), at(0, 10, 30), at(0, 11),
        ]

    def test_run_counts_booked_sessions_on_both_sides(self):
        booked = [TimeSpan(at(0, 9), at(0, 9, 30)), TimeSpan(at(0, 10), at(0, 10, 30))]
        slots = [s for s in self.monday_only() if not any(s.overlaps(b) for b in booked)]
        allocator = SessionAllocator(slots, first_week=True, booked=booked, max_consecutive=2)
        result = allocator.allocate(self.single_sessions(1), MONDAY)

        # 09:30 would join 09:00 and 10:00 into a run of three
        assert result.placements[0].span.start == at(0, 10, 30)

    def test_no_limits_by_default(self):
        result = SessionAllocator(self.monday_only(), first_week=True).allocate(self.single_sessions(16), MONDAY)
        assert len(result.placements) == 16
