"""Snapshot Codec — JSON text encoding of a RecordState for the history ledger.

Invariants:
    - encode_snapshot output decodes back to an equal RecordState (system fields exactly,
      payload as JSON values — column-typed coercion lives in services/record_mapping.py)
    - decode_snapshot raises SnapshotDecodeError, never pydantic.ValidationError
    - A snapshot with is_deleted but no deleted_at is rejected

Design Decisions:
    - Pydantic over hand-written json: datetime/UUID/Decimal serialization and
      strict validation on the way back in
    - extra="forbid": a snapshot written by another schema should fail loudly, not half-load
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from softtrack.core.domain_types import RecordId, Version
from softtrack.core.errors import SnapshotDecodeError
from softtrack.core.record_state import RecordState


class RecordSnapshot(BaseModel):
    """Serialized form of one record version."""
    model_config = ConfigDict(extra="forbid")

    id: UUID
    version: int = Field(ge=1)
    is_deleted: bool = False
    created_at: datetime
    created_by: str | None = None
    updated_at: datetime | None = None
    updated_by: str | None = None
    deleted_at: datetime | None = None
    deleted_by: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_deletion_fields(self) -> "RecordSnapshot":
        if self.is_deleted and self.deleted_at is None:
            raise ValueError("deleted snapshot must carry deleted_at")
        if not self.is_deleted and (self.deleted_at or self.deleted_by):
            raise ValueError("active snapshot must not carry deletion fields")
        return self


def encode_snapshot(state: RecordState) -> str:
    """Serialize a record state to JSON text. Pure, no IO."""
    return RecordSnapshot(
        **state.system_values(), payload=state.payload,
    ).model_dump_json()


def decode_snapshot(text: str) -> RecordState:
    """Parse JSON snapshot text back into a RecordState."""
    try:
        snap = RecordSnapshot.model_validate_json(text)
    except ValidationError as e:
        raise SnapshotDecodeError(
            f"{e.error_count()} validation error(s): {e.errors()[0]['msg']}",
        ) from e
    try:
        return _to_state(snap)
    except ValueError as e:
        raise SnapshotDecodeError(str(e)) from e


def _to_state(snap: RecordSnapshot) -> RecordState:
    return RecordState(
        id=RecordId(snap.id),
        version=Version(snap.version),
        is_deleted=snap.is_deleted,
        created_at=snap.created_at,
        created_by=snap.created_by,
        updated_at=snap.updated_at,
        updated_by=snap.updated_by,
        deleted_at=snap.deleted_at,
        deleted_by=snap.deleted_by,
        payload=snap.payload,
    )
