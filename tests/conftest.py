"""Root conftest — async DB, versioned sessions and sample repositories.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - Sessions from test_session_factory carry the versioning hook and the
      soft-delete filter for Document and Note
    - One TickingClock per test, shared by hook and repositories, so timestamps
      are deterministic and strictly increasing

Design Decisions:
    - SQLite in-memory: fast, no external dependency; FOR UPDATE compiles to
      nothing on SQLite, so row-lock behavior itself is not exercised here
    - Environment pinned before softtrack.config is imported anywhere
"""

import os
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from softtrack.db.base import Base
from softtrack.db.session import session_factory_for
from softtrack.services.registry import VersionedRegistry
from softtrack.services.repository import SoftTrackRepository
from sample_models import Document, DocumentHistory, Note

# Ensure tests never reach a real database
os.environ.setdefault("SOFTTRACK_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

START = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class TickingClock:
    """Deterministic clock: each call is one second after the previous one."""

    def __init__(self, start: datetime = START):
        self.current = start - timedelta(seconds=1)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def registry():
    registry = VersionedRegistry()
    registry.register(Document, DocumentHistory)
    registry.register(Note)
    return registry


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine, registry, clock):
    return session_factory_for(test_engine, registry, actor="system", clock=clock)


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def documents(test_db, registry, clock):
    """Repository for Document (ledger configured)."""
    return SoftTrackRepository(
        test_db, Document, registration=registry[Document], clock=clock,
    )


@pytest.fixture
def notes(test_db, registry, clock):
    """Repository for Note (no ledger)."""
    return SoftTrackRepository(
        test_db, Note, registration=registry[Note], clock=clock,
    )


@pytest.fixture
async def seed_document(documents):
    """A committed Document at version 1."""
    result = await documents.create(Document(name="Draft", description="first"), "alice")
    return result.record
