"""Async Session Factory — async sessions whose flushes go through the versioning hook.

Invariants:
    - expire_on_commit=False on every factory (objects stay readable after commit)
    - When a registry is given, every session from the factory carries the versioning
      hook and the soft-delete filter; sessions without one are plain sessions

Design Decisions:
    - Listeners live on a per-registry Session subclass (sync_session_class), not on
      each session instance or on the global Session class
    - Separate from infrastructure/database.py: scripts and test fixtures need a
      factory without pooling options or error mapping
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker,
)
from sqlalchemy.orm import Session

from softtrack.services.clock import Clock, utc_now
from softtrack.services.registry import VersionedRegistry
from softtrack.services.versioning_hook import VersioningHook


def versioned_session_class(
    registry: VersionedRegistry,
    actor: str | None = None,
    clock: Clock = utc_now,
) -> type[Session]:
    """Session subclass with the versioning hook and soft-delete filter attached."""
    session_class = type("VersionedSession", (Session,), {})
    VersioningHook(registry, actor=actor, clock=clock).install(session_class)
    registry.soft_delete_filter().install(session_class)
    return session_class


def session_factory_for(
    engine: AsyncEngine,
    registry: VersionedRegistry | None = None,
    actor: str | None = None,
    clock: Clock = utc_now,
) -> async_sessionmaker[AsyncSession]:
    """Async session factory bound to `engine`, versioned when a registry is given."""
    options = {}
    if registry is not None:
        options["sync_session_class"] = versioned_session_class(registry, actor, clock)
    return async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, **options,
    )


def create_session_factory(
    database_url: str,
    registry: VersionedRegistry | None = None,
    actor: str | None = None,
) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory for the given database URL."""
    engine = create_async_engine(database_url, echo=False)
    return session_factory_for(engine, registry, actor)
