"""Class capacity API endpoints: snapshots, waitlists, statistics and overflow."""

from typing import Optional, Union

from fastapi import APIRouter, Body, Depends

from api.deps import (
    get_admission_service,
    get_overflow_planner,
    get_snapshot_reader,
    get_stats_service,
    get_waitlist_service,
    unwrap,
)
from app.schemas.capacity import (
    CapacityChanged,
    CapacityChangeRequest,
    CapacitySnapshot,
    CapacityValidation,
    CapacityValidationRequest,
    ClassSplitRecommendationList,
    EnrollmentStats,
    OverflowCreated,
    OverflowRequest,
    WaitingListResponse,
)
from app.schemas.enrollment import NoSeatAvailable, Promoted, WaitlistEmpty
from app.services.admission_service import AdmissionService
from app.services.capacity_policy import validate_capacity
from app.services.capacity_snapshot import SnapshotReader
from app.services.enrollment_stats_service import EnrollmentStatsService
from app.services.overflow_service import OverflowPlanner
from app.services.waitlist_service import WaitlistService
from core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/classes", tags=["Classes"])


@router.get("/attention", response_model=ClassSplitRecommendationList)
async def list_classes_needing_attention(
    planner: OverflowPlanner = Depends(get_overflow_planner),
) -> ClassSplitRecommendationList:
    """
    List active classes above the utilization threshold.

    Each entry recommends splitting, creating a new class or increasing
    capacity.
    """
    items = await planner.classes_needing_attention()
    return ClassSplitRecommendationList(items=items, total=len(items))


@router.post("/capacity/validate", response_model=CapacityValidation)
async def validate_class_capacity(data: CapacityValidationRequest) -> CapacityValidation:
    """Check a capacity against the policy for an offering type."""
    return validate_capacity(data.offering_type, data.requested_capacity)


@router.get("/{class_id}/capacity", response_model=CapacitySnapshot)
async def get_class_capacity(
    class_id: str,
    reader: SnapshotReader = Depends(get_snapshot_reader),
) -> CapacitySnapshot:
    """Get current seat and waitlist counts for a class."""
    return unwrap(await reader.snapshot(class_id))


@router.patch("/{class_id}/capacity", response_model=CapacityChanged)
async def change_class_capacity(
    class_id: str,
    data: CapacityChangeRequest,
    service: AdmissionService = Depends(get_admission_service),
) -> CapacityChanged:
    """
    Change the seat count of a class.

    New seats are filled from the waitlist right away; the promoted
    students are listed in the response.
    """
    logger.info(f"Change capacity of class {class_id} to {data.max_students}")
    return unwrap(await service.change_capacity(class_id, data.max_students))


@router.get("/{class_id}/stats", response_model=EnrollmentStats)
async def get_class_enrollment_stats(
    class_id: str,
    service: EnrollmentStatsService = Depends(get_stats_service),
) -> EnrollmentStats:
    """Lifetime enrollment statistics for a class."""
    return await service.stats(class_id)


@router.get("/{class_id}/waitlist", response_model=WaitingListResponse)
async def get_class_waitlist(
    class_id: str,
    service: WaitlistService = Depends(get_waitlist_service),
) -> WaitingListResponse:
    """Get the waitlist for a class, ordered by position."""
    entries = await service.get_waiting_list(class_id)
    return WaitingListResponse(
        class_id=class_id,
        total_waitlisted=len(entries),
        entries=entries,
    )


@router.post(
    "/{class_id}/waitlist/promote",
    response_model=Union[Promoted, NoSeatAvailable, WaitlistEmpty],
)
async def promote_from_waitlist(
    class_id: str,
    service: WaitlistService = Depends(get_waitlist_service),
) -> Union[Promoted, NoSeatAvailable, WaitlistEmpty]:
    """
    Promote the next waitlisted student if a seat is free.

    The ``outcome`` field reports whether a promotion happened.
    """
    logger.info(f"Manual waitlist promotion for class {class_id}")
    return unwrap(await service.promote_next(class_id))


@router.post("/{class_id}/overflow", response_model=OverflowCreated)
async def create_overflow_class(
    class_id: str,
    data: Optional[OverflowRequest] = Body(None),
    planner: OverflowPlanner = Depends(get_overflow_planner),
) -> OverflowCreated:
    """Create (or reuse) an overflow class cloned from this class."""
    logger.info(f"Create overflow class for class {class_id}")
    reason = data.reason if data else None
    return unwrap(await planner.create_overflow_class(class_id, reason))
