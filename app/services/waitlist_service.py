"""Waitlist promotion, drops and waitlist ordering."""

from typing import List, Union

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.class_ import ClassOffering
from app.models.enrollment import Enrollment, utcnow
from app.schemas.capacity import WaitingListEntry
from app.schemas.enrollment import (
    ClassNotFound,
    Dropped,
    NoSeatAvailable,
    Promoted,
    Rejected,
    RejectionReason,
    WaitlistEmpty,
)
from app.services.capacity_snapshot import read_snapshot
from app.services.ledger_service import LedgerService
from core.logging import get_logger

logger = get_logger(__name__)

PromotionResult = Union[Promoted, NoSeatAvailable, WaitlistEmpty]


async def renumber_waitlist(db_session: AsyncSession, class_id: str) -> int:
    """
    Rewrite waitlist positions as 1..n in the order students joined.

    Only ``waitlisted_at`` decides the order; existing positions only break
    ties. Admission never stamps a join time earlier than the current tail,
    so this order matches the positions handed out under the class lock
    even when hosts sharing the ledger disagree on the time. Returns the
    number of waitlisted records.
    """
    waitlisted = await Enrollment.get_waitlisted_in_arrival_order(db_session, class_id)
    for position, enrollment in enumerate(waitlisted, start=1):
        if enrollment.waitlist_position != position:
            enrollment.waitlist_position = position
    await db_session.flush()
    return len(waitlisted)


async def promote_next_in_session(
    db_session: AsyncSession,
    class_obj: ClassOffering,
    waitlist_limit: int,
) -> PromotionResult:
    """Promote the head of the waitlist if a seat is free. Caller holds the class lock."""
    snapshot = await read_snapshot(db_session, class_obj.id, waitlist_limit, class_obj)
    if snapshot.available_spots == 0:
        return NoSeatAvailable(class_id=class_obj.id)

    next_enrollment = await Enrollment.get_next_in_waitlist(db_session, class_obj.id)
    if next_enrollment is None:
        return WaitlistEmpty(class_id=class_obj.id)

    next_enrollment.promote(utcnow())
    await db_session.flush()
    await renumber_waitlist(db_session, class_obj.id)

    logger.info(
        f"Promoted student {next_enrollment.student_id} from waitlist "
        f"in class {class_obj.id}"
    )
    return Promoted(
        enrollment_id=next_enrollment.id,
        class_id=class_obj.id,
        student_id=next_enrollment.student_id,
    )


async def fill_seats_in_session(
    db_session: AsyncSession,
    class_obj: ClassOffering,
    waitlist_limit: int,
) -> List[Promoted]:
    """Promote from the waitlist until no seat or no waitlisted student remains."""
    promoted = []
    while True:
        result = await promote_next_in_session(db_session, class_obj, waitlist_limit)
        if not isinstance(result, Promoted):
            return promoted
        promoted.append(result)


class WaitlistService(LedgerService):
    """Moves waitlisted students into seats as seats free up."""

    async def promote_next(
        self, class_id: str
    ) -> Union[Promoted, NoSeatAvailable, WaitlistEmpty, ClassNotFound]:
        """Promote the earliest waitlisted student into a free seat."""
        async with self.class_critical_section(class_id) as (db_session, class_obj):
            if class_obj is None:
                return ClassNotFound(class_id=class_id)
            return await promote_next_in_session(db_session, class_obj, self.waitlist_limit)

    async def drop(
        self, class_id: str, student_id: str
    ) -> Union[Dropped, Rejected, ClassNotFound]:
        """
        Drop a student's seat or waitlist slot, then hand a freed seat to the waitlist.

        The drop and the promotion share one critical section, so no
        concurrent admission can take the freed seat ahead of the waitlist.
        """
        async with self.class_critical_section(class_id) as (db_session, class_obj):
            if class_obj is None:
                return ClassNotFound(class_id=class_id)

            enrollment = await Enrollment.get_open_for_student(
                db_session, class_id, student_id
            )
            if enrollment is None:
                logger.info(
                    f"Drop rejected: student {student_id} not enrolled in class {class_id}"
                )
                return Rejected.because(RejectionReason.NOT_ENROLLED)

            previous_status = enrollment.status
            enrollment.drop(utcnow())
            await db_session.flush()

            # A dropped waitlisted student leaves a gap in the positions
            await renumber_waitlist(db_session, class_id)

            result = await promote_next_in_session(
                db_session, class_obj, self.waitlist_limit
            )

        promoted = isinstance(result, Promoted)
        logger.info(
            f"Dropped student {student_id} ({previous_status.value}) from class "
            f"{class_id}, promoted_from_waitlist={promoted}"
        )
        return Dropped(
            enrollment_id=enrollment.id,
            class_id=class_id,
            student_id=student_id,
            promoted=promoted,
            promoted_student_id=result.student_id if promoted else None,
        )

    async def fill_open_seats(self, class_id: str) -> Union[List[Promoted], ClassNotFound]:
        """Promote repeatedly, e.g. after an operator raised the capacity."""
        async with self.class_critical_section(class_id) as (db_session, class_obj):
            if class_obj is None:
                return ClassNotFound(class_id=class_id)
            promoted = await fill_seats_in_session(
                db_session, class_obj, self.waitlist_limit
            )

        if promoted:
            logger.info(f"Filled {len(promoted)} open seats in class {class_id}")
        return promoted

    async def get_waiting_list(self, class_id: str) -> List[WaitingListEntry]:
        """Current waitlist for a class, by position. Reporting read, no lock."""
        async with self.session_factory() as db_session:
            waitlisted = await Enrollment.get_waitlisted_by_class(db_session, class_id)

        return [
            WaitingListEntry(
                id=enrollment.id,
                class_id=enrollment.class_id,
                student_id=enrollment.student_id,
                position=enrollment.waitlist_position or 0,
                waitlisted_at=enrollment.waitlisted_at,
            )
            for enrollment in waitlisted
        ]
