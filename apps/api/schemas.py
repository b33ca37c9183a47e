from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, date, time
from uuid import UUID
from typing import Optional, List, Dict, Any


class TopicResponse(BaseModel):
    id: UUID
    subject: str
    title: str
    level: int
    parent_id: Optional[UUID] = None
    order_index: int
    exam_date: Optional[date] = None

    model_config = ConfigDict(from_attributes=True)


class RatingUpdate(BaseModel):
    """None clears the rating"""
    rating: Optional[int] = None


class RatingResponse(BaseModel):
    topic_id: UUID
    subject: Optional[str] = None
    title: Optional[str] = None
    rating: Optional[int]
    last_updated: Optional[datetime] = None


class RatingsBulkUpdate(BaseModel):
    """topic id -> rating; None clears"""
    ratings: Dict[UUID, Optional[int]]


class RatingsBulkResponse(BaseModel):
    saved_count: int
    ratings: List[RatingResponse]


class AvailabilityProfileIn(BaseModel):
    weekday_earliest: time
    weekday_latest: time
    weekend_earliest: Optional[time] = None
    weekend_latest: Optional[time] = None
    use_same_weekend_times: bool = True


class AvailabilityProfileResponse(AvailabilityProfileIn):
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UnavailableIntervalIn(BaseModel):
    start: datetime
    end: datetime
    reason: Optional[str] = None


class UnavailableIntervalResponse(BaseModel):
    id: UUID
    start_at: datetime
    end_at: datetime
    reason: Optional[str] = None
    source: str

    model_config = ConfigDict(from_attributes=True)


class AvailabilitySave(BaseModel):
    profile: AvailabilityProfileIn
    intervals: List[UnavailableIntervalIn] = Field(default_factory=list)
    week_start: Optional[date] = None  # replace this week's intervals (even with an empty list)


class AvailabilitySaveResponse(BaseModel):
    profile: AvailabilityProfileResponse
    intervals: List[UnavailableIntervalResponse]
    conflicting_block_ids: List[UUID] = Field(default_factory=list)


class SlotResponse(BaseModel):
    start: datetime
    end: datetime


class WeekSlotsResponse(BaseModel):
    week_start: date
    slots: List[SlotResponse]


class SameDayResponse(BaseModel):
    day: date
    same_day_available: bool


class RecurringEventCreate(BaseModel):
    label: str
    start_time: time
    end_time: time
    days_of_week: List[int]  # 0=Monday .. 6=Sunday
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class RecurringEventUpdate(BaseModel):
    label: Optional[str] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    days_of_week: Optional[List[int]] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class RecurringEventResponse(RecurringEventCreate):
    id: UUID

    model_config = ConfigDict(from_attributes=True)


class WeekConfirmationResponse(BaseModel):
    week_start: date
    confirmed: bool
    confirmed_at: Optional[datetime] = None


class PlanGenerateRequest(BaseModel):
    week_start: date
    subjects: List[str]
    block_duration_minutes: Optional[int] = None
    availability_override: Optional[AvailabilityProfileIn] = None


class BlockResponse(BaseModel):
    id: UUID
    topic_id: UUID
    scheduled_at: datetime
    duration_minutes: int
    status: str
    completed_at: Optional[datetime] = None
    session_number: int
    session_total: int
    session_kind: str
    cycle_rating: Optional[int] = None
    rerating_score: Optional[int] = None
    rationale: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UnmetDemandResponse(BaseModel):
    topic_id: UUID
    sessions: int
    reason: str


class PlanGenerateResponse(BaseModel):
    week_start: date
    first_week: bool
    week_confirmed: bool
    blocks: List[BlockResponse]
    unmet_demand: List[UnmetDemandResponse]


class BlockTransitionResponse(BaseModel):
    block: BlockResponse
    rerating_due: bool = False


class ReratingRequest(BaseModel):
    rating: int


class ReratingResponse(BaseModel):
    block: BlockResponse
    next_action: Dict[str, Any]


class ProgressStatsResponse(BaseModel):
    blocks_done: int
    blocks_missed: int
    blocks_skipped: int
    blocks_scheduled: int
    completion_rate: Optional[float] = None
    first_attempt_completions: int
    topics_covered: int
    streak_days: int


class PlanEventResponse(BaseModel):
    id: UUID
    kind: str
    created_at: datetime
    payload: Dict[str, Any]
