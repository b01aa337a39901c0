"""Capacity snapshots computed from the enrollment ledger."""

from typing import Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.class_ import ClassOffering
from app.models.enrollment import OPEN_STATUSES, Enrollment, EnrollmentStatus
from app.schemas.capacity import CapacitySnapshot
from app.schemas.enrollment import ClassNotFound
from app.services.capacity_policy import effective_capacity
from app.utils import percentage
from core.config import config


def build_snapshot(
    class_obj: ClassOffering,
    enrolled: int,
    waitlisted: int,
    waitlist_limit: int,
) -> CapacitySnapshot:
    """Derive the snapshot fields from raw counts."""
    max_capacity = effective_capacity(class_obj.max_students, class_obj.offering_type)

    return CapacitySnapshot(
        class_id=class_obj.id,
        offering_type=class_obj.offering_type,
        current_enrolled=enrolled,
        max_capacity=max_capacity,
        waiting_list_count=waitlisted,
        available_spots=max(0, max_capacity - enrolled),
        is_full=enrolled >= max_capacity,
        can_accept_waitlist=waitlisted < waitlist_limit,
        capacity_utilization=percentage(enrolled, max_capacity),
    )


async def read_snapshot(
    db_session: AsyncSession,
    class_id: str,
    waitlist_limit: int,
    class_obj: Optional[ClassOffering] = None,
) -> Optional[CapacitySnapshot]:
    """
    Compute the snapshot for ``class_id`` within ``db_session``.

    Pass ``class_obj`` when the caller already loaded (and possibly locked)
    the class row. Returns None when the class does not exist.
    """
    if class_obj is None:
        class_obj = await ClassOffering.get_by_id(db_session, class_id)
    if class_obj is None:
        return None

    counts = await Enrollment.count_by_status(db_session, class_id, OPEN_STATUSES)
    return build_snapshot(
        class_obj,
        enrolled=counts[EnrollmentStatus.ENROLLED],
        waitlisted=counts[EnrollmentStatus.WAITLISTED],
        waitlist_limit=waitlist_limit,
    )


class SnapshotReader:
    """Lock-free reader for capacity snapshots, safe beside any number of writers."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        waitlist_limit: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.waitlist_limit = (
            config.WAITING_LIST_MAX if waitlist_limit is None else waitlist_limit
        )

    async def snapshot(self, class_id: str) -> Union[CapacitySnapshot, ClassNotFound]:
        async with self.session_factory() as db_session:
            snapshot = await read_snapshot(db_session, class_id, self.waitlist_limit)

        if snapshot is None:
            return ClassNotFound(class_id=class_id)
        return snapshot
