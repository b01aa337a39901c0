import os
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# Ensure critical settings exist before the app/config modules import.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./dev.db")

from api.deps import get_class_locks, get_session_factory
from app.models.class_ import ClassOffering
from app.services.admission_service import AdmissionService
from app.services.waitlist_service import WaitlistService
from core.db import build_engine, build_session_factory
from core.db.base import Base
from core.locks import ClassLockRegistry
from main import app

# Use SQLite for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

engine = build_engine(TEST_DATABASE_URL)
TestSessionLocal = build_session_factory(engine)


@pytest.fixture(autouse=True)
async def setup_db():
    """Create and drop all tables for each test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for testing."""
    async with TestSessionLocal() as session:
        yield session


@pytest.fixture
def session_factory() -> async_sessionmaker[AsyncSession]:
    return TestSessionLocal


@pytest.fixture
def class_locks() -> ClassLockRegistry:
    """Fresh lock registry; asyncio locks must not outlive the test's event loop."""
    return ClassLockRegistry()


@pytest.fixture
async def client(class_locks: ClassLockRegistry) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client for testing."""
    app.dependency_overrides[get_session_factory] = lambda: TestSessionLocal
    app.dependency_overrides[get_class_locks] = lambda: class_locks

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def create_class(db_session: AsyncSession):
    """Factory fixture to create classes; returns the new class id."""

    async def _create_class(
        offering_type: str = "Basic",
        max_students=None,
        name: str = "Basic English A1",
        is_active: bool = True,
        **kwargs,
    ) -> str:
        class_obj = await ClassOffering.create_class(
            db_session,
            name=name,
            offering_type=offering_type,
            max_students=max_students,
            is_active=is_active,
            **kwargs,
        )
        await db_session.commit()
        return class_obj.id

    return _create_class


@pytest.fixture
def admission_service(
    session_factory: async_sessionmaker[AsyncSession], class_locks: ClassLockRegistry
) -> AdmissionService:
    return AdmissionService(session_factory, class_locks)


@pytest.fixture
def waitlist_service(
    session_factory: async_sessionmaker[AsyncSession], class_locks: ClassLockRegistry
) -> WaitlistService:
    return WaitlistService(session_factory, class_locks)
