"""VersionedRecord ORM — system columns shared by every soft-deletable, versioned record.

Invariants:
    - id is UUID primary key, assigned before insert by the versioning engine
    - version starts at 1 and is only ever written by the versioning engine
    - is_deleted, deleted_at, deleted_by move together (see core/record_state.py)
    - created_at / created_by are write-once

Design Decisions:
    - Declarative mixin: a record type adds its own payload columns and keeps
      these nine system columns unchanged
    - Indexes on is_deleted, version, deleted_at: the default read path filters
      on is_deleted and ledger lookups go by version
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Integer, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID


class VersionedRecordMixin:
    """System columns for a versioned, soft-deletable record."""

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    version: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1, index=True,
    )
    is_deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    updated_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True,
    )
    deleted_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} id={self.id} v{self.version}"
            f"{' deleted' if self.is_deleted else ''}>"
        )
