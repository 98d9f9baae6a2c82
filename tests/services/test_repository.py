"""SoftTrack Repository — explicit versioned mutations against a real (SQLite) session.

Invariants:
    - create -> version 1 plus one `create` ledger entry at version 1
    - Every applied mutation bumps version by 1 and appends exactly one entry
    - NOT_FOUND / INVALID_STATE / NOOP come back as outcomes, nothing is written
    - Soft-deleted records are hidden from get/get_all unless include_deleted=True
    - restore_to_version re-applies a snapshot payload as a new, higher version

Design Decisions:
    - Sessions carry the versioning hook: these tests also prove the repository
      and the hook never version the same change twice
"""

from datetime import date
from uuid import UUID, uuid4

import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import create_async_engine

from softtrack.core.domain_types import Outcome, Version
from softtrack.core.errors import (
    DatabaseError, InvalidStateError, LedgerNotConfiguredError,
)
from softtrack.db.base import Base
from softtrack.db.session import session_factory_for
from softtrack.services.repository import SoftTrackRepository
from sample_models import Document, DocumentHistory, Note


async def _operations(repo, record_id):
    return [e.operation_type for e in await repo.get_history(record_id)]


# -- create -------------------------------------------------------------------

async def test_create_starts_at_version_one(documents):
    result = await documents.create(Document(name="A"), "alice")
    doc = result.record

    assert result.outcome is Outcome.APPLIED
    assert doc.version == 1
    assert doc.is_deleted is False
    assert doc.created_by == "alice"
    assert doc.updated_at is None
    assert doc.deleted_at is None
    assert result.entry.version == 1
    assert result.entry.operation_type == "create"


async def test_create_writes_one_ledger_entry(documents):
    doc = (await documents.create(Document(name="A"), "alice")).record
    history = await documents.get_history(doc.id)
    assert len(history) == 1
    assert history[0].entity_id == doc.id
    assert history[0].performed_by == "alice"


async def test_create_snapshot_includes_column_defaults(documents):
    result = await documents.create(Document(name="A"), "alice")
    assert '"priority":0' in result.entry.snapshot


async def test_create_keeps_caller_id(documents):
    rid = uuid4()
    doc = (await documents.create(Document(id=rid, name="A"))).record
    assert doc.id == rid


async def test_create_replaces_all_zero_id(documents):
    doc = (await documents.create(Document(id=UUID(int=0), name="A"))).record
    assert doc.id.int != 0
    assert (await documents.get_history(doc.id))[0].entity_id == doc.id


# -- update -------------------------------------------------------------------

async def test_update_bumps_version_and_keeps_creation_stamp(documents, seed_document):
    created_at = seed_document.created_at
    seed_document.name = "Final"

    result = await documents.update(seed_document, "bob")

    assert result.outcome is Outcome.APPLIED
    assert result.record.name == "Final"
    assert result.record.version == 2
    # SQLite hands DateTime(timezone=True) back naive when the row is re-read
    assert result.record.created_at.replace(tzinfo=None) == created_at.replace(tzinfo=None)
    assert result.record.created_by == "alice"
    assert result.record.updated_by == "bob"
    assert result.record.updated_at > created_at


async def test_update_from_detached_copy(documents, seed_document):
    """A fresh instance carrying the id updates the live row."""
    result = await documents.update(
        Document(id=seed_document.id, name="Copy", description="second"), "bob",
    )
    assert result.record is seed_document
    assert seed_document.name == "Copy"
    assert seed_document.version == 2


async def test_update_ignores_system_fields_from_caller(documents, seed_document):
    seed_document.name = "B"
    seed_document.version = 42
    seed_document.created_by = "mallory"

    result = await documents.update(seed_document, "bob")

    assert result.record.version == 2
    assert result.record.created_by == "alice"


async def test_update_unknown_id_is_not_found(documents):
    result = await documents.update(Document(id=uuid4(), name="X"), "bob")
    assert result.outcome is Outcome.NOT_FOUND
    assert result.record is None
    assert result.entry is None


async def test_update_deleted_record_is_invalid_state(documents, seed_document):
    await documents.soft_delete(seed_document.id, "bob")
    seed_document.name = "Sneaky"

    result = await documents.update(seed_document, "bob")

    assert result.outcome is Outcome.INVALID_STATE
    assert result.record is None
    reloaded = await documents.get(seed_document.id, include_deleted=True)
    assert reloaded.version == 2
    assert reloaded.name == "Draft"
    assert await _operations(documents, seed_document.id) == ["create", "soft_delete"]


# -- soft delete / restore ----------------------------------------------------

async def test_soft_delete_hides_record(documents, seed_document):
    result = await documents.soft_delete(seed_document.id, "bob")

    assert result.outcome is Outcome.APPLIED
    assert result.record.is_deleted is True
    assert result.record.deleted_by == "bob"
    assert result.record.deleted_at is not None
    assert result.record.version == 2
    assert await documents.get(seed_document.id) is None
    assert await documents.get(seed_document.id, include_deleted=True) is seed_document


async def test_soft_delete_twice_is_noop(documents, seed_document):
    await documents.soft_delete(seed_document.id, "bob")
    result = await documents.soft_delete(seed_document.id, "bob")

    assert result.outcome is Outcome.NOOP
    assert result.ok
    assert result.entry is None
    assert result.record.version == 2
    assert len(await documents.get_history(seed_document.id)) == 2


async def test_soft_delete_unknown_is_not_found(documents):
    result = await documents.soft_delete(uuid4(), "bob")
    assert result.outcome is Outcome.NOT_FOUND


async def test_restore_clears_deletion(documents, seed_document):
    await documents.soft_delete(seed_document.id, "bob")
    result = await documents.restore(seed_document.id, "carol")

    assert result.outcome is Outcome.APPLIED
    assert result.record.is_deleted is False
    assert result.record.deleted_at is None
    assert result.record.deleted_by is None
    assert result.record.updated_by == "carol"
    assert result.record.version == 3
    assert await documents.get(seed_document.id) is seed_document


async def test_restore_live_record_is_noop(documents, seed_document):
    result = await documents.restore(seed_document.id, "carol")
    assert result.outcome is Outcome.NOOP
    assert result.record.version == 1


async def test_restore_unknown_is_not_found(documents):
    assert (await documents.restore(uuid4())).outcome is Outcome.NOT_FOUND


async def test_full_lifecycle(documents):
    """A -> B -> delete -> restore ends at {name: B, version: 4}."""
    doc = (await documents.create(Document(name="A"), "alice")).record
    doc.name = "B"
    await documents.update(doc, "bob")
    await documents.soft_delete(doc.id, "bob")
    result = await documents.restore(doc.id, "carol")

    assert result.record.name == "B"
    assert result.record.version == 4
    history = await documents.get_history(doc.id)
    assert [e.version for e in history] == [1, 2, 3, 4]
    assert [e.operation_type for e in history] == [
        "create", "update", "soft_delete", "restore",
    ]
    assert await documents.ledger.verify_chain(documents.db, doc.id, 4) == []


# -- reads --------------------------------------------------------------------

async def test_get_all_excludes_deleted(documents):
    a = (await documents.create(Document(name="A"))).record
    b = (await documents.create(Document(name="B"))).record
    await documents.soft_delete(b.id)

    assert [d.name for d in await documents.get_all()] == ["A"]
    assert {d.id for d in await documents.get_all(include_deleted=True)} == {a.id, b.id}


async def test_get_history_includes_deleted_record(documents, seed_document):
    await documents.soft_delete(seed_document.id)
    assert len(await documents.get_history(seed_document.id)) == 2


async def test_find_version(documents, seed_document):
    seed_document.name = "B"
    await documents.update(seed_document)

    entry = await documents.find_version(seed_document.id, Version(2))
    assert entry.operation_type == "update"
    assert await documents.find_version(seed_document.id, Version(9)) is None


# -- restore to version -------------------------------------------------------

async def test_restore_to_version_reapplies_snapshot(documents):
    doc = (await documents.create(
        Document(name="A", due_on=date(2026, 5, 1)), "alice",
    )).record
    doc.name, doc.due_on = "B", None
    await documents.update(doc, "bob")
    doc.name = "C"
    await documents.update(doc, "bob")

    result = await documents.restore_to_version(doc.id, Version(1), "dave")

    assert result.outcome is Outcome.APPLIED
    assert result.record.name == "A"
    assert result.record.due_on == date(2026, 5, 1)
    assert result.record.version == 4
    assert result.record.created_by == "alice"
    assert result.entry.operation_type == "restore"


async def test_restore_to_version_undeletes(documents, seed_document):
    await documents.soft_delete(seed_document.id, "bob")

    result = await documents.restore_to_version(seed_document.id, Version(1))

    assert result.record.is_deleted is False
    assert result.record.deleted_at is None
    assert result.record.version == 3


async def test_restore_to_missing_version_is_not_found(documents, seed_document):
    result = await documents.restore_to_version(seed_document.id, Version(7))
    assert result.outcome is Outcome.NOT_FOUND
    assert result.record is None
    assert seed_document.version == 1


async def test_restore_to_unreadable_snapshot(documents, seed_document, test_db):
    await test_db.execute(
        update(DocumentHistory)
        .where(DocumentHistory.entity_id == seed_document.id)
        .values(snapshot="{broken"),
    )
    await test_db.commit()

    result = await documents.restore_to_version(seed_document.id, Version(1))

    assert result.outcome is Outcome.SNAPSHOT_UNREADABLE
    assert result.record is None
    assert seed_document.version == 1


# -- ledger not configured ----------------------------------------------------

async def test_note_without_ledger_is_versioned_but_not_audited(notes):
    result = await notes.create(Note(body="hello"), "alice")
    note = result.record
    assert result.entry is None
    assert note.version == 1

    note.body = "bye"
    assert (await notes.update(note, "bob")).record.version == 2
    assert (await notes.soft_delete(note.id)).record.version == 3
    assert await notes.get_history(note.id) == []
    assert await notes.find_version(note.id, Version(1)) is None
    assert not notes.ledger_configured


async def test_restore_to_version_without_ledger_is_not_found(notes):
    note = (await notes.create(Note(body="x"))).record
    result = await notes.restore_to_version(note.id, Version(1))
    assert result.outcome is Outcome.NOT_FOUND


async def test_require_ledger(documents, notes):
    assert documents.require_ledger() is documents.ledger
    with pytest.raises(LedgerNotConfiguredError):
        notes.require_ledger()


async def test_repository_builds_its_own_registration(test_db):
    repo = SoftTrackRepository(test_db, Document, DocumentHistory)
    assert repo.ledger_configured
    doc = (await repo.create(Document(name="solo"))).record
    assert len(await repo.get_history(doc.id)) == 1


# -- failures -----------------------------------------------------------------

async def test_commit_failure_rolls_back_and_raises(documents, seed_document):
    rid = seed_document.id

    with pytest.raises(DatabaseError) as exc:
        await documents.create(Document(id=rid, name="Duplicate"))

    assert exc.value.operation == "commit"
    history = await documents.get_history(rid)
    assert [e.operation_type for e in history] == ["create"]


# -- concurrency --------------------------------------------------------------

@pytest.fixture
async def file_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'softtrack.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


async def test_two_writers_from_same_version_both_land(file_engine, registry, clock):
    """Later commit wins; versions stay contiguous (last-committed-wins)."""
    factory = session_factory_for(file_engine, registry, clock=clock)
    async with factory() as setup:
        repo = SoftTrackRepository(setup, Document, registration=registry[Document], clock=clock)
        rid = (await repo.create(Document(name="start"), "alice")).record.id

    async with factory() as s1, factory() as s2:
        repo1 = SoftTrackRepository(s1, Document, registration=registry[Document], clock=clock)
        repo2 = SoftTrackRepository(s2, Document, registration=registry[Document], clock=clock)
        copy1 = await repo1.get(rid)
        copy2 = await repo2.get(rid)
        assert copy1.version == copy2.version == 1

        copy1.name = "first"
        copy2.name = "second"
        r1 = await repo1.update(copy1, "bob")
        r2 = await repo2.update(copy2, "carol")

    assert r1.record.version == 2
    assert r2.record.version == 3

    async with factory() as check:
        repo = SoftTrackRepository(check, Document, registration=registry[Document], clock=clock)
        final = await repo.get(rid)
        history = await repo.get_history(rid)
    assert final.name == "second"
    assert final.version == 3
    assert [e.version for e in history] == [1, 2, 3]


async def test_flush_refusal_rolls_back_repository_write(documents, test_db):
    """A hook refusal for another object undoes the stamped record and its ledger row."""
    x = (await documents.create(Document(name="X"))).record
    x_id = x.id
    await documents.soft_delete(x_id)
    y_id = (await documents.create(Document(name="Y"))).record.id

    x.name = "edited while deleted"
    with pytest.raises(InvalidStateError):
        await documents.update(Document(id=y_id, name="Y2"), "bob")
    assert not test_db.in_transaction()

    result = await documents.update(Document(id=y_id, name="Y3"), "bob")

    assert result.record.version == 2
    assert result.record.name == "Y3"
    assert await _operations(documents, y_id) == ["create", "update"]
    assert (await documents.get(x_id, include_deleted=True)).name == "X"


async def test_unapplied_outcome_leaves_transaction_to_caller(documents, seed_document, test_db):
    """NOOP does not commit or roll back: the caller's session decides."""
    result = await documents.restore(seed_document.id, "carol")

    assert result.outcome is Outcome.NOOP
    assert test_db.in_transaction()
    await test_db.commit()
    assert not test_db.in_transaction()
