from typing import Any, Dict

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from core.config import config


def get_engine_config(database_url: str) -> Dict[str, Any]:
    """Get database engine configuration based on database type.

    Args:
        database_url: Database connection URL

    Returns:
        Dict of engine configuration parameters
    """
    config_dict = {
        "echo": False,
        "future": True,
    }

    if "postgresql" in database_url:
        config_dict.update({
            "pool_size": config.DATABASE_POOL_SIZE,
            "max_overflow": config.DATABASE_MAX_OVERFLOW,
            "pool_recycle": 3600,
            "pool_pre_ping": True,
        })
    elif "sqlite" in database_url:
        config_dict.update({
            "connect_args": {"check_same_thread": False, "timeout": 30},
            "poolclass": NullPool,
        })

    return config_dict


def build_engine(database_url: str) -> AsyncEngine:
    """Create an async engine for the ledger store."""
    new_engine = create_async_engine(database_url, **get_engine_config(database_url))

    if "sqlite" in database_url:
        @event.listens_for(new_engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            """Enable foreign key constraints for SQLite databases."""
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to ``bind``."""
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine(config.DATABASE_URL)
async_session_factory = build_session_factory(engine)

