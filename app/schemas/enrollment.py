"""Admission, drop and promotion schemas.

Every service operation returns one of several result models; the
``outcome`` field tells them apart so callers branch on data, not
exceptions.
"""

import enum
from typing import Literal, Optional

from pydantic import Field

from app.models.enrollment import EnrollmentStatus
from app.schemas.base import BaseSchema


class RejectionReason(str, enum.Enum):
    """Why a state-changing request was refused."""

    ALREADY_ENROLLED = "already_enrolled"
    ALREADY_WAITLISTED = "already_waitlisted"
    CLASS_FULL_AND_WAITLIST_FULL = "class_full_and_waitlist_full"
    NOT_ENROLLED = "not_enrolled"
    CAPACITY_BELOW_ENROLLMENT = "capacity_below_enrollment"
    SOURCE_NOT_FOUND = "source_not_found"


REJECTION_MESSAGES = {
    RejectionReason.ALREADY_ENROLLED: "Student already enrolled",
    RejectionReason.ALREADY_WAITLISTED: "Student already waitlisted",
    RejectionReason.CLASS_FULL_AND_WAITLIST_FULL: "Class is full and waiting list is at capacity",
    RejectionReason.NOT_ENROLLED: "Student is not enrolled or waitlisted in this class",
    RejectionReason.CAPACITY_BELOW_ENROLLMENT: "Capacity cannot be lower than current enrollment",
    RejectionReason.SOURCE_NOT_FOUND: "Original class not found",
}


class AdmissionRequest(BaseSchema):
    """Request to admit a student into a class."""

    class_id: str = Field(..., min_length=1, max_length=36)
    student_id: str = Field(..., min_length=1, max_length=36)


class Admitted(BaseSchema):
    """The student holds a seat (``seat_number``) or a waitlist slot (``waitlist_position``)."""

    outcome: Literal["admitted"] = "admitted"
    enrollment_id: str
    class_id: str
    student_id: str
    status: EnrollmentStatus
    seat_number: Optional[int] = None
    waitlist_position: Optional[int] = None

    @property
    def waitlisted(self) -> bool:
        return self.status == EnrollmentStatus.WAITLISTED


class Rejected(BaseSchema):
    outcome: Literal["rejected"] = "rejected"
    reason: RejectionReason
    message: str

    @classmethod
    def because(cls, reason: RejectionReason) -> "Rejected":
        return cls(reason=reason, message=REJECTION_MESSAGES[reason])


class ClassNotFound(BaseSchema):
    """The class id does not exist. Distinct from a class with zero seats."""

    outcome: Literal["class_not_found"] = "class_not_found"
    class_id: str
    message: str = "Class not found"


class Dropped(BaseSchema):
    """The student's record was dropped; ``promoted`` tells whether a waitlisted student took the seat."""

    outcome: Literal["dropped"] = "dropped"
    enrollment_id: str
    class_id: str
    student_id: str
    promoted: bool = False
    promoted_student_id: Optional[str] = None


class Completed(BaseSchema):
    outcome: Literal["completed"] = "completed"
    enrollment_id: str
    class_id: str
    student_id: str


class Promoted(BaseSchema):
    outcome: Literal["promoted"] = "promoted"
    enrollment_id: str
    class_id: str
    student_id: str


class NoSeatAvailable(BaseSchema):
    outcome: Literal["no_seat_available"] = "no_seat_available"
    class_id: str


class WaitlistEmpty(BaseSchema):
    outcome: Literal["waitlist_empty"] = "waitlist_empty"
    class_id: str


class DropRequest(BaseSchema):
    class_id: str = Field(..., min_length=1, max_length=36)
    student_id: str = Field(..., min_length=1, max_length=36)


class CompleteRequest(BaseSchema):
    class_id: str = Field(..., min_length=1, max_length=36)
    student_id: str = Field(..., min_length=1, max_length=36)
