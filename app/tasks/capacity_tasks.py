"""Background tasks for capacity operator workflows."""

import asyncio
from typing import Any, Dict, List

from celery import shared_task
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.schemas.enrollment import ClassNotFound
from app.services.overflow_service import OverflowPlanner
from app.services.waitlist_service import WaitlistService
from core.db import async_session_factory
from core.locks import ClassLockRegistry
from core.logging import get_logger

logger = get_logger(__name__)


@shared_task(name="scan_classes_needing_attention")
def scan_classes_needing_attention() -> List[Dict[str, Any]]:
    """
    Find classes that are out of (or running out of) seats.

    Runs periodically. Recommendations are logged and returned; acting on
    them (raising capacity, spawning overflow classes) is an operator
    decision.
    """
    return asyncio.run(_scan_classes_needing_attention_async(async_session_factory))


async def _scan_classes_needing_attention_async(
    session_factory: async_sessionmaker[AsyncSession],
) -> List[Dict[str, Any]]:
    planner = OverflowPlanner(session_factory, ClassLockRegistry())
    recommendations = await planner.classes_needing_attention()

    for recommendation in recommendations:
        logger.info(
            f"Class {recommendation.class_id} needs attention: "
            f"{recommendation.recommended_action} ({recommendation.priority}) - "
            f"{recommendation.reason}, {recommendation.current_enrollment}/"
            f"{recommendation.max_capacity} enrolled"
        )

    return [recommendation.model_dump() for recommendation in recommendations]


@shared_task(name="fill_open_seats")
def fill_open_seats(class_id: str) -> List[str]:
    """Promote waitlisted students into every free seat of a class, e.g. after a capacity increase."""
    return asyncio.run(_fill_open_seats_async(async_session_factory, class_id))


async def _fill_open_seats_async(
    session_factory: async_sessionmaker[AsyncSession],
    class_id: str,
) -> List[str]:
    # The in-process registry only covers this run; the class row lock
    # serializes against the API processes.
    service = WaitlistService(session_factory, ClassLockRegistry())
    result = await service.fill_open_seats(class_id)

    if isinstance(result, ClassNotFound):
        logger.warning(f"fill_open_seats: class {class_id} not found")
        return []

    return [promoted.student_id for promoted in result]
