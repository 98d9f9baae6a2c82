"""HistoryEntry ORM — one immutable ledger row per mutation of a versioned record.

Invariants:
    - (entity_id, version) is unique per history table — no duplicate versions
    - snapshot is JSON text of the full record state at that version
    - Rows are inserted once and never updated or deleted by SoftTrack

Design Decisions:
    - entity_id carries no ForeignKey: the ledger only looks records up, it does
      not own them, and it must survive any row-level operation on the record table
    - Mixin with declared __table_args__: each record type gets its own ledger
      table with its own constraint name
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Text, Integer, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, declared_attr
from sqlalchemy.dialects.postgresql import UUID


class HistoryEntryMixin:
    """Columns of a per-record-type history ledger table."""

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    entity_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, index=True,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    snapshot: Mapped[str] = mapped_column(Text, nullable=False)
    operation_type: Mapped[str] = mapped_column(String(20), nullable=False)
    performed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    performed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    @declared_attr.directive
    def __table_args__(cls) -> tuple:
        return (
            UniqueConstraint(
                "entity_id", "version",
                name=f"uq_{cls.__tablename__}_entity_version",
            ),
        )
