"""Enrollment API endpoints: admission, drops and completion."""

from fastapi import APIRouter, Depends

from api.deps import get_admission_service, get_waitlist_service, unwrap
from app.schemas.enrollment import (
    AdmissionRequest,
    Admitted,
    Completed,
    CompleteRequest,
    Dropped,
    DropRequest,
)
from app.services.admission_service import AdmissionService
from app.services.waitlist_service import WaitlistService
from core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/enrollments", tags=["Enrollments"])


@router.post("", response_model=Admitted)
async def admit_student(
    data: AdmissionRequest,
    service: AdmissionService = Depends(get_admission_service),
) -> Admitted:
    """
    Admit a student into a class.

    Returns the seat number, or the waitlist position when the class is
    full. Duplicate admissions and a full waitlist are rejected with 409.
    """
    logger.info(f"Admit student {data.student_id} into class {data.class_id}")
    return unwrap(await service.admit(data.class_id, data.student_id))


@router.post("/drop", response_model=Dropped)
async def drop_student(
    data: DropRequest,
    service: WaitlistService = Depends(get_waitlist_service),
) -> Dropped:
    """
    Drop a student from a class or its waitlist.

    ``promoted`` tells the caller whether a waitlisted student took the
    freed seat and should be notified.
    """
    logger.info(f"Drop student {data.student_id} from class {data.class_id}")
    return unwrap(await service.drop(data.class_id, data.student_id))


@router.post("/complete", response_model=Completed)
async def complete_enrollment(
    data: CompleteRequest,
    service: AdmissionService = Depends(get_admission_service),
) -> Completed:
    """Mark a student's enrollment in a class as completed."""
    return unwrap(await service.complete(data.class_id, data.student_id))
