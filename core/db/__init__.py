from core.db.base import Base
from core.db.mixins import TimestampMixin
from core.db.session import (
    async_session_factory,
    build_engine,
    build_session_factory,
    engine,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "async_session_factory",
    "engine",
    "build_engine",
    "build_session_factory",
]
