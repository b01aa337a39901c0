"""Class offering model: the schedulable unit students are admitted into."""

from decimal import Decimal
from typing import Optional, Sequence
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    select,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base, TimestampMixin


class ClassOffering(Base, TimestampMixin):
    """A class offering with a fixed number of seats."""

    __tablename__ = "classes"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    offering_type: Mapped[str] = mapped_column(
        String(50), nullable=False, index=True
    )  # "Basic", "1-on-1", "individual", ...
    level: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Capacity (null falls back to the policy default for the offering type)
    max_students: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Pricing is copied onto overflow classes, never interpreted here
    price_per_student: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2), nullable=True
    )
    currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)

    teacher_id: Mapped[Optional[str]] = mapped_column(
        String(36), nullable=True, index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Overflow link (set only on classes spawned by the overflow planner)
    overflow_from: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("classes.id"), nullable=True, index=True
    )
    overflow_reason: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    @property
    def is_overflow(self) -> bool:
        return self.overflow_from is not None

    @property
    def overflow_root_id(self) -> str:
        """Id of the original class at the head of this overflow chain."""
        return self.overflow_from or self.id

    @classmethod
    async def get_by_id(
        cls, db_session: AsyncSession, id: str
    ) -> Optional["ClassOffering"]:
        """Get class by ID."""
        result = await db_session.execute(select(cls).where(cls.id == id))
        return result.scalars().first()

    @classmethod
    async def get_for_update(
        cls, db_session: AsyncSession, id: str
    ) -> Optional["ClassOffering"]:
        """Get class by ID, locking its row for the current transaction."""
        result = await db_session.execute(
            select(cls).where(cls.id == id).with_for_update()
        )
        return result.scalars().first()

    @classmethod
    async def get_active(cls, db_session: AsyncSession) -> Sequence["ClassOffering"]:
        """Get all active classes."""
        result = await db_session.execute(
            select(cls).where(cls.is_active == True).order_by(cls.created_at, cls.id)
        )
        return result.scalars().all()

    @classmethod
    async def get_active_overflows(
        cls, db_session: AsyncSession, root_class_id: str, reason: str
    ) -> Sequence["ClassOffering"]:
        """Get active overflow classes spawned from ``root_class_id`` for ``reason``."""
        result = await db_session.execute(
            select(cls)
            .where(
                cls.overflow_from == root_class_id,
                cls.overflow_reason == reason,
                cls.is_active == True,
            )
            .order_by(cls.created_at, cls.id)
        )
        return result.scalars().all()

    @classmethod
    async def create_class(cls, db_session: AsyncSession, **kwargs) -> "ClassOffering":
        """Create a new class and flush it so its id is assigned."""
        class_obj = cls(**kwargs)
        db_session.add(class_obj)
        await db_session.flush()
        return class_obj

    def clone_as_overflow(self, reason: str) -> "ClassOffering":
        """Build an unsaved sibling class that absorbs this class's overflow."""
        name = self.name if self.is_overflow else f"{self.name} (Overflow)"
        return type(self)(
            name=name,
            description=self.description,
            offering_type=self.offering_type,
            level=self.level,
            duration_minutes=self.duration_minutes,
            max_students=self.max_students,
            price_per_student=self.price_per_student,
            currency=self.currency,
            teacher_id=self.teacher_id,
            is_active=True,
            overflow_from=self.overflow_root_id,
            overflow_reason=reason,
        )
