"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - RecordId and HistoryEntryId wrap UUIDs — never use bare UUID in domain logic
    - Version is a positive integer starting at 1
    - All valid states encoded as Enums — no raw string matching

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: operation_type is stored as text and serialized into snapshots as-is
"""

from enum import Enum
from typing import NewType
from uuid import UUID


# ─── Identity Types ──────────────────────────────────────────────

RecordId = NewType("RecordId", UUID)
HistoryEntryId = NewType("HistoryEntryId", UUID)
ActorId = NewType("ActorId", str)


# ─── Value Types ─────────────────────────────────────────────────

Version = NewType("Version", int)   # >= 1

INITIAL_VERSION = Version(1)


# ─── Enums ───────────────────────────────────────────────────────

class OperationType(str, Enum):
    """Kind of mutation recorded by a ledger entry — maps to `operation_type` column."""
    CREATE = "create"
    UPDATE = "update"
    SOFT_DELETE = "soft_delete"
    RESTORE = "restore"


class Outcome(str, Enum):
    """Result of asking the versioning engine for a transition."""
    APPLIED = "applied"
    NOOP = "noop"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    SNAPSHOT_UNREADABLE = "snapshot_unreadable"

    @property
    def succeeded(self) -> bool:
        return self in (Outcome.APPLIED, Outcome.NOOP)
