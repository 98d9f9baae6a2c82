"""Database Session Manager — async connection pool, versioned sessions, automatic rollback.

Invariants:
    - Every session auto-rolls-back on exception (no partial commits leak)
    - Every session carries the versioning hook and soft-delete filter of the registry
    - Connection pool uses pool_pre_ping for stale connection detection (non-SQLite URLs)
    - All SQLAlchemy exceptions mapped to DatabaseError (core/errors.py)

Design Decisions:
    - Singleton db_manager initialized once via init_db (bootstrap.py), no import side effects
    - expire_on_commit=False: prevents lazy-load issues in async context
    - Pool sizing skipped for SQLite: aiosqlite in-memory databases use a static pool
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.exc import (
    IntegrityError, OperationalError, DBAPIError, SQLAlchemyError,
)
from sqlalchemy import text

from softtrack.core.errors import DatabaseError
from softtrack.db.base import Base
from softtrack.db.session import session_factory_for
from softtrack.services.registry import VersionedRegistry
from softtrack.services.repository import SoftTrackRepository
from softtrack.services.versioning_hook import set_actor

logger = logging.getLogger(__name__)


class DatabaseSessionManager:
    """Manages versioned async database sessions with pooling, rollback, and health checks."""

    def __init__(
        self,
        database_url: str,
        registry: VersionedRegistry,
        actor: str | None = None,
        pool_size: int = 20,
        max_overflow: int = 10,
        lock_rows_on_write: bool = True,
    ):
        engine_options: dict = {}
        if not database_url.startswith("sqlite"):
            engine_options = dict(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_pre_ping=True,
                pool_recycle=3600,
            )
        self.engine = create_async_engine(database_url, **engine_options)
        self.registry = registry
        self.lock_rows_on_write = lock_rows_on_write
        self._session_factory = session_factory_for(self.engine, registry, actor)

    @asynccontextmanager
    async def session(
        self, actor: str | None = None,
    ) -> AsyncGenerator[AsyncSession, None]:
        """Provide a versioned session with auto-rollback on exception."""
        session = self._session_factory()
        if actor is not None:
            set_actor(session, actor)
        try:
            yield session
        except IntegrityError as e:
            await session.rollback()
            logger.error(f"DB integrity error: {e}")
            raise DatabaseError("Integrity constraint violated", "commit")
        except OperationalError as e:
            await session.rollback()
            logger.error(f"DB operational error: {e}")
            raise DatabaseError("Connection or operational error", "execute")
        except DBAPIError as e:
            await session.rollback()
            logger.error(f"DB driver error: {e}")
            raise DatabaseError("Database driver error", "query")
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"SQLAlchemy error: {e}")
            raise DatabaseError("Database operation failed", "unknown")
        finally:
            await session.close()

    def repository(self, db: AsyncSession, model: type) -> SoftTrackRepository:
        """Repository for a registered type, sharing the registry's ledger."""
        return SoftTrackRepository(
            db, model,
            registration=self.registry[model],
            lock_for_update=self.lock_rows_on_write,
        )

    async def create_tables(self, metadata=Base.metadata) -> None:
        """Create every table in `metadata` (development and tests; no migrations)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def health_check(self) -> bool:
        """Check database connectivity (for readiness checks)."""
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"DB health check failed: {e}")
            return False

    async def dispose(self) -> None:
        await self.engine.dispose()


# Singleton (initialized by bootstrap)
db_manager: DatabaseSessionManager | None = None


def init_db(database_url: str, registry: VersionedRegistry, **kwargs) -> DatabaseSessionManager:
    global db_manager
    db_manager = DatabaseSessionManager(database_url, registry, **kwargs)
    return db_manager


async def get_db(actor: str | None = None) -> AsyncGenerator[AsyncSession, None]:
    """Yield a versioned session from the initialized manager."""
    if not db_manager:
        raise RuntimeError("Database not initialized")
    async with db_manager.session(actor) as session:
        yield session
