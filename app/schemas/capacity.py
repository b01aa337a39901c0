"""Capacity, waitlist and overflow schemas."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from app.schemas.base import BaseSchema


class CapacityValidationRequest(BaseSchema):
    """Request to check a capacity against the policy for an offering type."""

    offering_type: str = Field(..., min_length=1, max_length=50)
    requested_capacity: int


class CapacityValidation(BaseSchema):
    """Result of a capacity policy check. Never an error, only a verdict."""

    outcome: Literal["capacity_validation"] = "capacity_validation"
    valid: bool
    message: Optional[str] = None
    recommended_capacity: Optional[int] = None


class CapacitySnapshot(BaseSchema):
    """Point-in-time capacity facts for one class, derived from the ledger."""

    outcome: Literal["snapshot"] = "snapshot"
    class_id: str
    offering_type: str
    current_enrolled: int
    max_capacity: int
    waiting_list_count: int
    available_spots: int
    is_full: bool
    can_accept_waitlist: bool
    capacity_utilization: int  # percentage


class CapacityChangeRequest(BaseSchema):
    """Request to change the seat count of a class."""

    # None resets the class to the optimal size for its offering type
    max_students: Optional[int] = Field(None, ge=1)


class CapacityChanged(BaseSchema):
    """Capacity was stored; any freed seats were filled from the waitlist."""

    outcome: Literal["capacity_changed"] = "capacity_changed"
    class_id: str
    max_capacity: int
    promoted_student_ids: list[str] = Field(default_factory=list)


class WaitingListEntry(BaseSchema):
    """One position on a class's waitlist."""

    id: str
    class_id: str
    student_id: str
    position: int
    waitlisted_at: Optional[datetime] = None


class WaitingListResponse(BaseSchema):
    class_id: str
    total_waitlisted: int
    entries: list[WaitingListEntry]


class ClassSplitRecommendation(BaseSchema):
    """A class whose utilization calls for more capacity."""

    class_id: str
    current_enrollment: int
    max_capacity: int
    waiting_list_count: int
    capacity_utilization: int
    recommended_action: Literal["split", "create_new", "increase_capacity"]
    reason: str
    priority: Literal["high", "medium", "low"]


class ClassSplitRecommendationList(BaseSchema):
    items: list[ClassSplitRecommendation]
    total: int


class OverflowRequest(BaseSchema):
    """Request to spawn an overflow class."""

    reason: Optional[str] = Field(None, min_length=1, max_length=50)


class OverflowCreated(BaseSchema):
    """An overflow class exists for the source class (new or reused)."""

    outcome: Literal["overflow_created"] = "overflow_created"
    new_class_id: str
    source_class_id: str
    overflow_from: str
    reason: str
    reused: bool = False


class EnrollmentStats(BaseSchema):
    """Lifetime enrollment counts for a class. Reporting only."""

    class_id: str
    total_enrolled: int = 0
    total_waitlisted: int = 0
    total_dropped: int = 0
    total_completed: int = 0
    capacity_utilization: int = 0
    waitlist_conversion_rate: int = 0
