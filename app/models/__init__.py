from app.models.class_ import ClassOffering
from app.models.enrollment import OPEN_STATUSES, Enrollment, EnrollmentStatus

__all__ = [
    "ClassOffering",
    "Enrollment",
    "EnrollmentStatus",
    "OPEN_STATUSES",
]
