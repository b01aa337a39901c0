"""Shared plumbing for services that mutate the enrollment ledger."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.class_ import ClassOffering
from core.config import config
from core.locks import ClassLockRegistry, class_key


class LedgerService:
    """
    Base for services that make capacity decisions.

    Holds only its dependencies: the session factory for the ledger store
    and the lock registry that serializes work per class.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks: ClassLockRegistry,
        waitlist_limit: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.locks = locks
        self.waitlist_limit = (
            config.WAITING_LIST_MAX if waitlist_limit is None else waitlist_limit
        )

    @asynccontextmanager
    async def class_critical_section(
        self, class_id: str
    ) -> AsyncIterator[Tuple[AsyncSession, Optional[ClassOffering]]]:
        """
        Run a block as the only writer for ``class_id``.

        Holds the in-process lock for the class, opens one transaction and
        locks the class row in it, so other processes sharing the store wait
        as well. Commits when the block exits normally, rolls back on error.
        Yields the session and the class (None when it does not exist).
        """
        async with self.locks.hold(class_key(class_id)):
            async with self.session_factory() as db_session:
                async with db_session.begin():
                    class_obj = await ClassOffering.get_for_update(db_session, class_id)
                    yield db_session, class_obj
