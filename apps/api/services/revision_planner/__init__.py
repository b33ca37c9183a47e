# Revision planning engine
#
# Pure scheduling logic with no database access:
# - constants: cycle lengths, maintenance intervals, lifecycle transitions
# - slots: open-slot arithmetic for a week
# - demand: what each topic still owes since its last rating change
# - priority: overridable ordering of demand
# - allocator: first-fit placement with the week-boundary rules
#
# services.session_planner wires this to the store.

from .constants import (
    BlockStatus,
    SessionKind,
    RatingSource,
    SESSIONS_BY_RATING,
    MAINTENANCE_INTERVALS_DAYS,
    sessions_needed,
    maintenance_interval_days,
)
from .slots import (
    TimeSpan,
    AvailabilityWindows,
    RecurringTemplate,
    build_week_slots,
    expand_recurring,
    has_same_day_capacity,
    monday_of,
    week_bounds,
)
from .demand import CountedBlock, RatingChange, TopicState, TopicDemand, compute_demand, compute_demands
from .priority import PriorityKey, default_priority_key, exam_first_priority_key, order_demands
from .allocator import SessionAllocator, AllocationResult, Placement, UnmetDemand, UnmetReason

__all__ = [
    # Rules
    'BlockStatus',
    'SessionKind',
    'RatingSource',
    'SESSIONS_BY_RATING',
    'MAINTENANCE_INTERVALS_DAYS',
    'sessions_needed',
    'maintenance_interval_days',

    # Availability
    'TimeSpan',
    'AvailabilityWindows',
    'RecurringTemplate',
    'build_week_slots',
    'expand_recurring',
    'has_same_day_capacity',
    'monday_of',
    'week_bounds',

    # Demand and ordering
    'CountedBlock',
    'RatingChange',
    'TopicState',
    'TopicDemand',
    'compute_demand',
    'compute_demands',
    'PriorityKey',
    'default_priority_key',
    'exam_first_priority_key',
    'order_demands',

    # Allocation
    'SessionAllocator',
    'AllocationResult',
    'Placement',
    'UnmetDemand',
    'UnmetReason',
]
