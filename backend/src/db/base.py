"""SQLAlchemy database setup"""

from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import DateTime, event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from src.config import settings, resolve_path


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime stored as naive UTC (SQLite drops offsets)."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


def sqlite_url(path: str | Path, driver: str = "aiosqlite") -> str:
    """Build a SQLAlchemy URL for a SQLite database file."""
    suffix = f"+{driver}" if driver else ""
    return f"sqlite{suffix}:///{Path(path)}"


def set_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(database_path: str | Path, echo: bool = False) -> AsyncEngine:
    """Create an async SQLite engine with WAL journaling and FK enforcement."""
    path = Path(database_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    async_engine = create_async_engine(sqlite_url(path), echo=echo)
    event.listen(async_engine.sync_engine, "connect", set_sqlite_pragmas)
    return async_engine


def create_session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


DATABASE_PATH = resolve_path(settings.DATABASE_PATH)

engine = create_engine(DATABASE_PATH, echo=settings.get("SQL_ECHO", False))

async_session = create_session_factory(engine)
