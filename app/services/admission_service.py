"""Admission control: the seat-or-waitlist decision for a student."""

from typing import Optional, Union

from sqlalchemy.exc import IntegrityError

from app.models.enrollment import Enrollment, EnrollmentStatus, utcnow
from app.schemas.capacity import CapacityChanged, CapacityValidation
from app.schemas.enrollment import (
    Admitted,
    ClassNotFound,
    Completed,
    Rejected,
    RejectionReason,
)
from app.services.capacity_policy import optimal_capacity, validate_capacity
from app.services.capacity_snapshot import read_snapshot
from app.services.ledger_service import LedgerService
from app.services.waitlist_service import fill_seats_in_session
from core.logging import get_logger

logger = get_logger(__name__)

AdmissionResult = Union[Admitted, Rejected, ClassNotFound]


def _duplicate_rejection(existing: Enrollment) -> Rejected:
    if existing.status == EnrollmentStatus.ENROLLED:
        return Rejected.because(RejectionReason.ALREADY_ENROLLED)
    return Rejected.because(RejectionReason.ALREADY_WAITLISTED)


class AdmissionService(LedgerService):
    """
    Admits students into classes.

    Checking for space and claiming it happen in one critical section per
    class: two concurrent callers can never both take the last seat, while
    admissions into different classes proceed in parallel.
    """

    async def admit(self, class_id: str, student_id: str) -> AdmissionResult:
        """
        Give a student a seat, or a waitlist position when the class is full.

        1. Reject when the student already holds a seat or waitlist slot.
        2. Free seat: create an ``enrolled`` record.
        3. Full, waitlist below its limit: create a ``waitlisted`` record
           at the end of the waitlist.
        4. Otherwise reject with ``class_full_and_waitlist_full``.
        """
        try:
            return await self._admit(class_id, student_id)
        except IntegrityError:
            # Another process inserted an open record for the same student first
            async with self.session_factory() as db_session:
                existing = await Enrollment.get_open_for_student(
                    db_session, class_id, student_id
                )
            if existing is None:
                raise
            logger.warning(
                f"Concurrent duplicate admission for student {student_id} "
                f"in class {class_id} rejected by the store"
            )
            return _duplicate_rejection(existing)

    async def _admit(self, class_id: str, student_id: str) -> AdmissionResult:
        async with self.class_critical_section(class_id) as (db_session, class_obj):
            if class_obj is None:
                return ClassNotFound(class_id=class_id)

            existing = await Enrollment.get_open_for_student(
                db_session, class_id, student_id
            )
            if existing is not None:
                logger.info(
                    f"Admission rejected: student {student_id} already "
                    f"{existing.status.value} in class {class_id}"
                )
                return _duplicate_rejection(existing)

            snapshot = await read_snapshot(
                db_session, class_id, self.waitlist_limit, class_obj
            )

            if snapshot.available_spots > 0:
                enrollment = await Enrollment.create_enrollment(
                    db_session,
                    class_id=class_id,
                    student_id=student_id,
                    status=EnrollmentStatus.ENROLLED,
                    enrolled_at=utcnow(),
                )
                logger.info(
                    f"Enrolled student {student_id} in class {class_id} "
                    f"(seat {snapshot.current_enrolled + 1}/{snapshot.max_capacity})"
                )
                return Admitted(
                    enrollment_id=enrollment.id,
                    class_id=class_id,
                    student_id=student_id,
                    status=EnrollmentStatus.ENROLLED,
                    seat_number=snapshot.current_enrolled + 1,
                )

            if snapshot.can_accept_waitlist:
                position = snapshot.waiting_list_count + 1
                # Never sort ahead of the current tail, even if this host's
                # clock lags the one that wrote it
                waitlisted_at = utcnow()
                latest = await Enrollment.get_latest_waitlisted_at(db_session, class_id)
                if latest is not None and latest > waitlisted_at:
                    waitlisted_at = latest
                enrollment = await Enrollment.create_enrollment(
                    db_session,
                    class_id=class_id,
                    student_id=student_id,
                    status=EnrollmentStatus.WAITLISTED,
                    waitlisted_at=waitlisted_at,
                    waitlist_position=position,
                )
                logger.info(
                    f"Waitlisted student {student_id} in class {class_id} "
                    f"at position {position}"
                )
                return Admitted(
                    enrollment_id=enrollment.id,
                    class_id=class_id,
                    student_id=student_id,
                    status=EnrollmentStatus.WAITLISTED,
                    waitlist_position=position,
                )

        logger.info(
            f"Admission rejected: class {class_id} and its waitlist are full "
            f"(student {student_id})"
        )
        return Rejected.because(RejectionReason.CLASS_FULL_AND_WAITLIST_FULL)

    async def change_capacity(
        self, class_id: str, max_students: Optional[int] = None
    ) -> Union[CapacityChanged, CapacityValidation, Rejected, ClassNotFound]:
        """
        Set a class's seat count and fill any new seats from the waitlist.

        ``max_students=None`` resets the class to the optimal size for its
        offering type. The new count must pass the capacity policy and may
        not drop below the number of students already enrolled.
        """
        async with self.class_critical_section(class_id) as (db_session, class_obj):
            if class_obj is None:
                return ClassNotFound(class_id=class_id)

            if max_students is None:
                max_students = optimal_capacity(class_obj.offering_type)

            validation = validate_capacity(class_obj.offering_type, max_students)
            if not validation.valid:
                return validation

            snapshot = await read_snapshot(
                db_session, class_id, self.waitlist_limit, class_obj
            )
            if max_students < snapshot.current_enrolled:
                return Rejected.because(RejectionReason.CAPACITY_BELOW_ENROLLMENT)

            class_obj.max_students = max_students
            await db_session.flush()

            promoted = await fill_seats_in_session(
                db_session, class_obj, self.waitlist_limit
            )

        logger.info(
            f"Capacity of class {class_id} set to {max_students}, "
            f"promoted {len(promoted)} from waitlist"
        )
        return CapacityChanged(
            class_id=class_id,
            max_capacity=max_students,
            promoted_student_ids=[p.student_id for p in promoted],
        )

    async def complete(
        self, class_id: str, student_id: str
    ) -> Union[Completed, Rejected, ClassNotFound]:
        """Mark an enrolled student's record as completed."""
        async with self.class_critical_section(class_id) as (db_session, class_obj):
            if class_obj is None:
                return ClassNotFound(class_id=class_id)

            enrollment = await Enrollment.get_enrolled_for_student(
                db_session, class_id, student_id
            )
            if enrollment is None:
                return Rejected.because(RejectionReason.NOT_ENROLLED)

            enrollment.complete(utcnow())

        logger.info(f"Completed enrollment of student {student_id} in class {class_id}")
        return Completed(
            enrollment_id=enrollment.id,
            class_id=class_id,
            student_id=student_id,
        )
