"""History Ledger — append-only store of record snapshots, one table per record type.

Invariants:
    - append() only ever adds rows; nothing here updates or deletes a ledger row
    - history() is ordered ascending by version and ignores deletion state
    - Snapshot text is produced by schemas/snapshot.py, never hand-built

Design Decisions:
    - append() is synchronous session.add(): the ledger row joins the caller's unit
      of work and commits with the record write (repository) or inside the flush
      that is already running (versioning hook)
    - Reads are async and go through AsyncSession like every other query
"""

import logging
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from softtrack.core.domain_types import HistoryEntryId, RecordId
from softtrack.core.repository_protocols import HistoryLike
from softtrack.core.versioning import LedgerDraft, missing_versions
from softtrack.schemas.snapshot import encode_snapshot

logger = logging.getLogger(__name__)


class HistoryLedger:
    """Ledger operations for one history model (a HistoryEntryMixin table)."""

    def __init__(self, history_model: type):
        self.history_model = history_model

    def __repr__(self) -> str:
        return f"<HistoryLedger {self.history_model.__name__}>"

    def entry_for(self, draft: LedgerDraft) -> Any:
        """Build (but do not add) the ledger row for a draft."""
        return self.history_model(
            id=HistoryEntryId(uuid.uuid4()),
            entity_id=draft.entity_id,
            version=draft.version,
            snapshot=encode_snapshot(draft.state),
            operation_type=draft.operation.value,
            performed_at=draft.performed_at,
            performed_by=draft.performed_by,
        )

    def append(self, session: Session | AsyncSession, draft: LedgerDraft) -> Any:
        """Add the ledger row for `draft` to the session's unit of work."""
        entry = self.entry_for(draft)
        session.add(entry)
        logger.debug(
            f"Ledger {self.history_model.__name__} += v{draft.version} "
            f"{draft.operation.value}",
            extra={
                "entity_id": str(draft.entity_id),
                "version": draft.version,
                "operation": draft.operation.value,
                "actor": draft.performed_by,
            },
        )
        return entry

    async def history(self, db: AsyncSession, entity_id: RecordId) -> list[HistoryLike]:
        model = self.history_model
        result = await db.execute(
            select(model)
            .where(model.entity_id == entity_id)
            .order_by(model.version.asc())
        )
        return list(result.scalars().all())

    async def find(
        self, db: AsyncSession, entity_id: RecordId, version: int,
    ) -> HistoryLike | None:
        model = self.history_model
        result = await db.execute(
            select(model)
            .where(model.entity_id == entity_id)
            .where(model.version == version)
        )
        return result.scalar_one_or_none()

    async def verify_chain(
        self, db: AsyncSession, entity_id: RecordId, current_version: int,
    ) -> list[int]:
        """Versions in 1..current_version with no ledger row (empty list = complete)."""
        entries = await self.history(db, entity_id)
        return missing_versions([e.version for e in entries], current_version)
