"""Overflow planning: spot classes running out of seats and spawn sibling classes."""

from typing import List, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.class_ import ClassOffering
from app.models.enrollment import Enrollment, EnrollmentStatus
from app.schemas.capacity import ClassSplitRecommendation, OverflowCreated
from app.schemas.enrollment import Rejected, RejectionReason
from app.services.capacity_policy import effective_capacity
from app.services.capacity_snapshot import read_snapshot
from app.utils import percentage, ratio_percent
from core.config import config
from core.locks import ClassLockRegistry, overflow_key
from core.logging import get_logger

logger = get_logger(__name__)


def recommend(
    class_id: str,
    enrolled: int,
    waitlisted: int,
    max_capacity: int,
    attention_threshold: float,
    create_new_threshold: float,
) -> Optional[ClassSplitRecommendation]:
    """
    Recommendation for one class, or None when utilization is acceptable.

    Above ``attention_threshold`` a class needs more capacity: a full class
    should be split, one above ``create_new_threshold`` should get a new
    sibling, anything else can grow in place.
    """
    utilization = ratio_percent(enrolled, max_capacity)
    if utilization <= attention_threshold:
        return None

    if enrolled >= max_capacity:
        action, reason, priority = "split", "Class at maximum capacity", "high"
    elif utilization > create_new_threshold:
        action, reason, priority = "create_new", "Near maximum capacity", "high"
    else:
        action, reason, priority = "increase_capacity", "High capacity utilization", "medium"

    return ClassSplitRecommendation(
        class_id=class_id,
        current_enrollment=enrolled,
        max_capacity=max_capacity,
        waiting_list_count=waitlisted,
        capacity_utilization=percentage(enrolled, max_capacity),
        recommended_action=action,
        reason=reason,
        priority=priority,
    )


class OverflowPlanner:
    """Finds over-subscribed classes and creates overflow classes for them."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks: ClassLockRegistry,
        waitlist_limit: Optional[int] = None,
        attention_threshold: Optional[float] = None,
        create_new_threshold: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.locks = locks
        self.waitlist_limit = (
            config.WAITING_LIST_MAX if waitlist_limit is None else waitlist_limit
        )
        self.attention_threshold = (
            config.ATTENTION_UTILIZATION_THRESHOLD
            if attention_threshold is None
            else attention_threshold
        )
        self.create_new_threshold = (
            config.CREATE_NEW_UTILIZATION_THRESHOLD
            if create_new_threshold is None
            else create_new_threshold
        )

    async def classes_needing_attention(self) -> List[ClassSplitRecommendation]:
        """Scan active classes. Reporting read: no locks, may be slightly stale."""
        async with self.session_factory() as db_session:
            classes = await ClassOffering.get_active(db_session)
            counts = await Enrollment.count_open_by_classes(
                db_session, [class_obj.id for class_obj in classes]
            )

        recommendations = []
        for class_obj in classes:
            class_counts = counts[class_obj.id]
            recommendation = recommend(
                class_id=class_obj.id,
                enrolled=class_counts[EnrollmentStatus.ENROLLED],
                waitlisted=class_counts[EnrollmentStatus.WAITLISTED],
                max_capacity=effective_capacity(
                    class_obj.max_students, class_obj.offering_type
                ),
                attention_threshold=self.attention_threshold,
                create_new_threshold=self.create_new_threshold,
            )
            if recommendation is not None:
                recommendations.append(recommendation)

        logger.info(
            f"Capacity scan: {len(recommendations)} of {len(classes)} active classes need attention"
        )
        return recommendations

    async def create_overflow_class(
        self, source_class_id: str, reason: Optional[str] = None
    ) -> Union[OverflowCreated, Rejected]:
        """
        Create a sibling class cloned from ``source_class_id``.

        The overflow link always names the original class of a chain, so an
        overflow of an overflow is a sibling, never a grandchild. While an
        active overflow for the same original class and reason still has
        free seats, it is returned instead of creating another one; the
        source itself is never returned as its own overflow.
        """
        reason = reason or config.OVERFLOW_REASON

        async with self.session_factory() as db_session:
            source = await ClassOffering.get_by_id(db_session, source_class_id)
        if source is None:
            logger.info(f"Overflow rejected: class {source_class_id} not found")
            return Rejected.because(RejectionReason.SOURCE_NOT_FOUND)

        root_id = source.overflow_root_id

        async with self.locks.hold(overflow_key(root_id)):
            async with self.session_factory() as db_session:
                async with db_session.begin():
                    for existing in await ClassOffering.get_active_overflows(
                        db_session, root_id, reason
                    ):
                        if existing.id == source_class_id:
                            continue
                        snapshot = await read_snapshot(
                            db_session, existing.id, self.waitlist_limit, existing
                        )
                        if snapshot.available_spots > 0:
                            logger.info(
                                f"Reusing overflow class {existing.id} for class {root_id}"
                            )
                            return OverflowCreated(
                                new_class_id=existing.id,
                                source_class_id=source_class_id,
                                overflow_from=root_id,
                                reason=reason,
                                reused=True,
                            )

                    overflow = source.clone_as_overflow(reason)
                    db_session.add(overflow)
                    await db_session.flush()

        logger.info(
            f"Created overflow class {overflow.id} from class {source_class_id} ({reason})"
        )
        return OverflowCreated(
            new_class_id=overflow.id,
            source_class_id=source_class_id,
            overflow_from=root_id,
            reason=reason,
        )
