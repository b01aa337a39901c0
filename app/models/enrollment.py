"""Enrollment ledger: one record per admission attempt that got a seat or a waitlist slot."""

import enum
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional, Sequence
from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
    select,
    text,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base, TimestampMixin


class EnrollmentStatus(str, enum.Enum):
    """Status of an enrollment record."""

    ENROLLED = "enrolled"  # Occupies a seat
    WAITLISTED = "waitlisted"  # Holds a waitlist position
    DROPPED = "dropped"  # Left the class or the waitlist
    COMPLETED = "completed"  # Finished the class


OPEN_STATUSES = (EnrollmentStatus.ENROLLED, EnrollmentStatus.WAITLISTED)

_OPEN_STATUS_CLAUSE = text("status IN ('enrolled', 'waitlisted')")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Enrollment(Base, TimestampMixin):
    """Enrollment record linking a student to a class."""

    __tablename__ = "class_enrollments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    class_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("classes.id"), nullable=False, index=True
    )
    student_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    status: Mapped[EnrollmentStatus] = mapped_column(
        Enum(
            EnrollmentStatus,
            name="enrollmentstatus",
            native_enum=False,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )

    enrolled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    waitlisted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    waitlist_position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    dropped_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        # At most one open (enrolled or waitlisted) record per student and class
        Index(
            "uq_class_enrollments_open_student",
            "class_id",
            "student_id",
            unique=True,
            postgresql_where=_OPEN_STATUS_CLAUSE,
            sqlite_where=_OPEN_STATUS_CLAUSE,
        ),
        Index("ix_class_enrollments_class_status", "class_id", "status"),
        CheckConstraint(
            "waitlist_position IS NULL OR waitlist_position > 0",
            name="ck_class_enrollments_waitlist_position_positive",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Enrollment(id={self.id}, class_id={self.class_id}, "
            f"student_id={self.student_id}, status={self.status.value}, "
            f"waitlist_position={self.waitlist_position})>"
        )

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @classmethod
    async def get_open_for_student(
        cls, db_session: AsyncSession, class_id: str, student_id: str
    ) -> Optional["Enrollment"]:
        """Get the student's enrolled or waitlisted record for a class."""
        result = await db_session.execute(
            select(cls).where(
                cls.class_id == class_id,
                cls.student_id == student_id,
                cls.status.in_(OPEN_STATUSES),
            )
        )
        return result.scalars().first()

    @classmethod
    async def get_enrolled_for_student(
        cls, db_session: AsyncSession, class_id: str, student_id: str
    ) -> Optional["Enrollment"]:
        result = await db_session.execute(
            select(cls).where(
                cls.class_id == class_id,
                cls.student_id == student_id,
                cls.status == EnrollmentStatus.ENROLLED,
            )
        )
        return result.scalars().first()

    @classmethod
    async def get_waitlisted_by_class(
        cls, db_session: AsyncSession, class_id: str
    ) -> Sequence["Enrollment"]:
        """Get the waitlist for a class, ordered by position."""
        result = await db_session.execute(
            select(cls)
            .where(
                cls.class_id == class_id,
                cls.status == EnrollmentStatus.WAITLISTED,
            )
            .order_by(cls.waitlist_position, cls.waitlisted_at, cls.id)
        )
        return result.scalars().all()

    @classmethod
    async def get_waitlisted_in_arrival_order(
        cls, db_session: AsyncSession, class_id: str
    ) -> Sequence["Enrollment"]:
        """Get the waitlist for a class in the order students joined it (FIFO)."""
        result = await db_session.execute(
            select(cls)
            .where(
                cls.class_id == class_id,
                cls.status == EnrollmentStatus.WAITLISTED,
            )
            .order_by(cls.waitlisted_at, cls.waitlist_position, cls.id)
        )
        return result.scalars().all()

    @classmethod
    async def get_next_in_waitlist(
        cls, db_session: AsyncSession, class_id: str
    ) -> Optional["Enrollment"]:
        """Get the waitlisted record with the smallest position."""
        result = await db_session.execute(
            select(cls)
            .where(
                cls.class_id == class_id,
                cls.status == EnrollmentStatus.WAITLISTED,
            )
            .order_by(cls.waitlist_position, cls.waitlisted_at, cls.id)
            .limit(1)
        )
        return result.scalars().first()

    @classmethod
    async def get_latest_waitlisted_at(
        cls, db_session: AsyncSession, class_id: str
    ) -> Optional[datetime]:
        """Join time of the most recent waitlisted record for a class."""
        result = await db_session.execute(
            select(func.max(cls.waitlisted_at)).where(
                cls.class_id == class_id,
                cls.status == EnrollmentStatus.WAITLISTED,
            )
        )
        latest = result.scalar()
        if latest is not None and latest.tzinfo is None:
            # SQLite drops the offset; stored values are UTC
            latest = latest.replace(tzinfo=timezone.utc)
        return latest

    @classmethod
    async def count_by_status(
        cls,
        db_session: AsyncSession,
        class_id: str,
        statuses: Optional[Iterable[EnrollmentStatus]] = None,
    ) -> Dict[EnrollmentStatus, int]:
        """Count a class's records per status; statuses with no records map to 0."""
        conditions = [cls.class_id == class_id]
        if statuses is not None:
            statuses = tuple(statuses)
            conditions.append(cls.status.in_(statuses))

        result = await db_session.execute(
            select(cls.status, func.count(cls.id))
            .where(*conditions)
            .group_by(cls.status)
        )
        counts = {status: 0 for status in (statuses or EnrollmentStatus)}
        for status, count in result.all():
            counts[EnrollmentStatus(status)] = count
        return counts

    @classmethod
    async def count_open_by_classes(
        cls, db_session: AsyncSession, class_ids: Sequence[str]
    ) -> Dict[str, Dict[EnrollmentStatus, int]]:
        """Count enrolled and waitlisted records for many classes in one query."""
        counts = {
            class_id: {status: 0 for status in OPEN_STATUSES} for class_id in class_ids
        }
        if not class_ids:
            return counts

        result = await db_session.execute(
            select(cls.class_id, cls.status, func.count(cls.id))
            .where(cls.class_id.in_(class_ids), cls.status.in_(OPEN_STATUSES))
            .group_by(cls.class_id, cls.status)
        )
        for class_id, status, count in result.all():
            counts[class_id][EnrollmentStatus(status)] = count
        return counts

    # ------------------------------------------------------------------
    # Transitions (flush only; the caller owns the transaction)
    # ------------------------------------------------------------------

    @classmethod
    async def create_enrollment(
        cls, db_session: AsyncSession, **kwargs
    ) -> "Enrollment":
        """Insert a new record; a duplicate open record raises IntegrityError."""
        enrollment = cls(**kwargs)
        db_session.add(enrollment)
        await db_session.flush()
        return enrollment

    def promote(self, now: Optional[datetime] = None) -> None:
        """Move a waitlisted record into a seat."""
        if self.status != EnrollmentStatus.WAITLISTED:
            raise ValueError("Can only promote waitlisted enrollments")

        self.status = EnrollmentStatus.ENROLLED
        self.enrolled_at = now or utcnow()
        self.waitlist_position = None

    def drop(self, now: Optional[datetime] = None) -> None:
        """Release the record's seat or waitlist position."""
        if not self.is_open:
            raise ValueError("Can only drop enrolled or waitlisted enrollments")

        self.status = EnrollmentStatus.DROPPED
        self.dropped_at = now or utcnow()
        self.waitlist_position = None

    def complete(self, now: Optional[datetime] = None) -> None:
        if self.status != EnrollmentStatus.ENROLLED:
            raise ValueError("Can only complete enrolled enrollments")

        self.status = EnrollmentStatus.COMPLETED
        self.completed_at = now or utcnow()
