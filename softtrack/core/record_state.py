"""Record State — pure, immutable view of one versioned record.

Invariants:
    - version >= 1 for every state that exists
    - is_deleted is True exactly when deleted_at is set
    - payload never contains a system field name

Design Decisions:
    - Frozen dataclass, no ORM import: the versioning engine reasons over plain
      values and the shell maps them onto ORM rows (services/record_mapping.py)
    - payload is a plain dict of the record type's own columns — the engine
      treats it as opaque
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from softtrack.core.domain_types import RecordId, Version


SYSTEM_FIELDS: tuple[str, ...] = (
    "id", "version", "is_deleted",
    "created_at", "created_by",
    "updated_at", "updated_by",
    "deleted_at", "deleted_by",
)
SYSTEM_FIELDS_SET: frozenset[str] = frozenset(SYSTEM_FIELDS)

# Carried over from the prior state on update, whatever the caller sent
PROTECTED_FIELDS: frozenset[str] = frozenset({
    "id", "version", "created_at", "created_by",
    "is_deleted", "deleted_at", "deleted_by",
})


@dataclass(frozen=True)
class RecordState:
    """State of a versioned record at one version — pure, no IO."""

    id: RecordId
    version: Version
    created_at: datetime
    is_deleted: bool = False
    created_by: str | None = None
    updated_at: datetime | None = None
    updated_by: str | None = None
    deleted_at: datetime | None = None
    deleted_by: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        overlap = SYSTEM_FIELDS_SET.intersection(self.payload)
        if overlap:
            raise ValueError(f"payload contains system fields: {sorted(overlap)}")
        if self.version < 1:
            raise ValueError(f"version must be >= 1, got {self.version}")

    @property
    def deletion_consistent(self) -> bool:
        if self.is_deleted:
            return self.deleted_at is not None
        return self.deleted_at is None and self.deleted_by is None

    def system_values(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in SYSTEM_FIELDS}

    def as_dict(self) -> dict[str, Any]:
        """Flatten system fields and payload into one mapping."""
        return {**self.payload, **self.system_values()}

    def evolve(self, **changes: Any) -> "RecordState":
        return replace(self, **changes)


def split_payload(values: dict[str, Any]) -> dict[str, Any]:
    """Drop system fields from a flat mapping, keeping only payload columns."""
    return {k: v for k, v in values.items() if k not in SYSTEM_FIELDS_SET}
