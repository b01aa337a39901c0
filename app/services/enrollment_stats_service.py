"""Enrollment statistics for reporting."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.class_ import ClassOffering
from app.models.enrollment import Enrollment, EnrollmentStatus
from app.schemas.capacity import EnrollmentStats
from app.services.capacity_policy import effective_capacity
from app.utils import percentage


class EnrollmentStatsService:
    """Aggregates a class's whole enrollment history. Read-only."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def stats(self, class_id: str) -> EnrollmentStats:
        """
        Lifetime counts per status plus utilization and waitlist conversion.

        Conversion is enrolled / (enrolled + waitlisted) as a percentage.
        An unknown class yields zeroed stats rather than an error.
        """
        async with self.session_factory() as db_session:
            class_obj = await ClassOffering.get_by_id(db_session, class_id)
            if class_obj is None:
                return EnrollmentStats(class_id=class_id)
            counts = await Enrollment.count_by_status(db_session, class_id)

        enrolled = counts[EnrollmentStatus.ENROLLED]
        waitlisted = counts[EnrollmentStatus.WAITLISTED]
        max_capacity = effective_capacity(class_obj.max_students, class_obj.offering_type)

        return EnrollmentStats(
            class_id=class_id,
            total_enrolled=enrolled,
            total_waitlisted=waitlisted,
            total_dropped=counts[EnrollmentStatus.DROPPED],
            total_completed=counts[EnrollmentStatus.COMPLETED],
            capacity_utilization=percentage(enrolled, max_capacity),
            waitlist_conversion_rate=percentage(enrolled, enrolled + waitlisted),
        )
