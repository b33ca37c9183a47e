"""
Ordering of demand within a planning pass.

The planner serves topics one at a time, so whoever sorts first gets the
earliest slots. The comparator is a plain key function and can be
swapped per call.
"""

from datetime import date
from typing import Callable, List, Optional, Sequence, Tuple

from .demand import TopicDemand

PriorityKey = Callable[[TopicDemand, date], Tuple]


def _days_to_exam(demand: TopicDemand, week_start: date) -> Tuple[int, int]:
    # Undated topics sort after every dated one
    if demand.exam_date is None:
        return (1, 0)
    return (0, (demand.exam_date - week_start).days)


def default_priority_key(demand: TopicDemand, week_start: date) -> Tuple:
    """Weakest rating first, then nearest exam, then syllabus order."""
    return (
        demand.rating,
        _days_to_exam(demand, week_start),
        demand.order_index,
        str(demand.topic_id),
    )


def exam_first_priority_key(demand: TopicDemand, week_start: date) -> Tuple:
    """Nearest exam first, then weakest rating, then syllabus order."""
    return (
        _days_to_exam(demand, week_start),
        demand.rating,
        demand.order_index,
        str(demand.topic_id),
    )


def order_demands(
    demands: Sequence[TopicDemand],
    week_start: date,
    key: Optional[PriorityKey] = None,
) -> List[TopicDemand]:
    key = key or default_priority_key
    return sorted(demands, key=lambda demand: key(demand, week_start))
