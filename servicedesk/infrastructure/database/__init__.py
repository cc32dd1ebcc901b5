"""
Database Infrastructure
=======================

Async SQLAlchemy engine, session factory and the unit-of-work helper.

PostgreSQL (asyncpg) in deployment, SQLite (aiosqlite) in tests. Every
write path in the service desk goes through ``transaction()`` so that a
conditional update and its side rows commit or roll back together.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from servicedesk.config import settings
from servicedesk.core import ConfigurationException, RepositoryException


class Base(DeclarativeBase):
    """Declarative base shared by the directory, ticket, SLA and assignment tables."""


_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def build_engine(database_url: str) -> AsyncEngine:
    """Create an engine; pool sizing only applies to server databases."""
    # asyncpg spells the libpq sslmode parameter "ssl"
    url = database_url.replace("sslmode=", "ssl=")

    engine_kwargs = {"echo": settings.debug, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        engine_kwargs["pool_size"] = settings.db_pool_size
        engine_kwargs["max_overflow"] = settings.db_max_overflow
    return create_async_engine(url, **engine_kwargs)


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def init_database(database_url: str | None = None) -> AsyncEngine:
    """Create the process-wide engine and session factory at startup."""
    global _engine, _session_maker

    _engine = build_engine(database_url or settings.database_url)
    _session_maker = build_session_maker(_engine)
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    if _session_maker is None:
        raise ConfigurationException("Database not initialized; call init_database() first")
    return _session_maker


async def close_database() -> None:
    """Dispose of pooled connections at shutdown."""
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None


@asynccontextmanager
async def transaction(
    session_factory: async_sessionmaker[AsyncSession]
) -> AsyncGenerator[AsyncSession, None]:
    """
    Run a block as one atomic unit of work.

    Commits when the block exits cleanly and rolls back on any exception.
    Driver and constraint errors surface as RepositoryException; service
    desk errors raised inside the block pass through unchanged.

    Usage:
        async with transaction(session_factory) as session:
            repo = SQLAlchemyTicketRepository(session)
            await repo.compare_and_set_status(...)
    """
    async with session_factory() as session:
        try:
            async with session.begin():
                yield session
        except SQLAlchemyError as e:
            raise RepositoryException(
                "Database transaction failed",
                {"error_type": type(e).__name__, "error": str(e)}
            ) from e


def import_models() -> None:
    """Register every ORM model on Base.metadata."""
    from servicedesk.directory import models as directory_models  # noqa: F401
    from servicedesk.sla.infrastructure import models as sla_models  # noqa: F401
    from servicedesk.tickets.infrastructure import models as ticket_models  # noqa: F401
    from servicedesk.assignment.infrastructure import models as assignment_models  # noqa: F401


async def create_tables(engine: AsyncEngine | None = None) -> None:
    """
    Create all tables on the given engine, or the process-wide one.

    Intended for development and tests; deployments manage the schema with
    migrations.
    """
    import_models()
    engine = engine or _engine
    if engine is None:
        raise ConfigurationException("Database not initialized; call init_database() first")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def to_uuid(value) -> UUID | None:
    """Parse an id coming from the API or another context; None if malformed."""
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None
