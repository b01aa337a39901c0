from typing import Any

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.schemas.capacity import CapacityValidation
from app.schemas.enrollment import ClassNotFound, Rejected, RejectionReason
from app.services.admission_service import AdmissionService
from app.services.capacity_snapshot import SnapshotReader
from app.services.enrollment_stats_service import EnrollmentStatsService
from app.services.overflow_service import OverflowPlanner
from app.services.waitlist_service import WaitlistService
from core.exceptions.base import (
    ConflictException,
    NotFoundException,
    ValidationException,
)
from core.locks import ClassLockRegistry


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """Session factory for the ledger store, owned by the application."""
    return request.app.state.session_factory


def get_class_locks(request: Request) -> ClassLockRegistry:
    """Per-class lock registry shared by every request in this process."""
    return request.app.state.class_locks


def get_admission_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    locks: ClassLockRegistry = Depends(get_class_locks),
) -> AdmissionService:
    return AdmissionService(session_factory, locks)


def get_waitlist_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    locks: ClassLockRegistry = Depends(get_class_locks),
) -> WaitlistService:
    return WaitlistService(session_factory, locks)


def get_overflow_planner(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    locks: ClassLockRegistry = Depends(get_class_locks),
) -> OverflowPlanner:
    return OverflowPlanner(session_factory, locks)


def get_snapshot_reader(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> SnapshotReader:
    return SnapshotReader(session_factory)


def get_stats_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> EnrollmentStatsService:
    return EnrollmentStatsService(session_factory)


def unwrap(result: Any) -> Any:
    """
    Translate negative service results into HTTP errors.

    Unknown classes become 404, rejections 409 with the reason as error
    code, failed capacity validation 422. Anything else is returned as is.
    """
    if isinstance(result, ClassNotFound):
        raise NotFoundException(message=result.message, data={"class_id": result.class_id})

    if isinstance(result, Rejected):
        if result.reason == RejectionReason.SOURCE_NOT_FOUND:
            raise NotFoundException(
                message=result.message,
                error_code=result.reason.value.upper(),
                data={"reason": result.reason.value},
            )
        raise ConflictException(
            message=result.message,
            error_code=result.reason.value.upper(),
            data={"reason": result.reason.value},
        )

    if isinstance(result, CapacityValidation) and not result.valid:
        raise ValidationException(
            message=result.message,
            data={"recommended_capacity": result.recommended_capacity},
        )

    return result
