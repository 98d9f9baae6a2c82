"""Operation Results — what repository mutations hand back to callers.

Invariants:
    - record is set for APPLIED and NOOP outcomes, None otherwise
    - entry is set only for APPLIED outcomes with a configured ledger
    - unwrap() raises the typed error matching the outcome, never a bare Exception

Design Decisions:
    - Outcome data over exceptions: callers branch on result.outcome; unwrap()
      exists for call sites where a failure should simply propagate
"""

from dataclasses import dataclass
from typing import Generic, TypeVar

from softtrack.core.domain_types import Outcome
from softtrack.core.errors import (
    InvalidStateError, RecordNotFoundError, SnapshotDecodeError,
)

T = TypeVar("T")
H = TypeVar("H")


@dataclass(frozen=True)
class OperationResult(Generic[T, H]):
    """Outcome of one repository mutation."""
    outcome: Outcome
    entity_type: str
    entity_id: str | None = None
    record: T | None = None
    entry: H | None = None

    @property
    def ok(self) -> bool:
        return self.outcome.succeeded

    @property
    def changed(self) -> bool:
        return self.outcome is Outcome.APPLIED

    def unwrap(self) -> T:
        """Return the record or raise the error the outcome stands for."""
        if self.outcome is Outcome.NOT_FOUND:
            raise RecordNotFoundError(self.entity_type, str(self.entity_id))
        if self.outcome is Outcome.INVALID_STATE:
            raise InvalidStateError(
                self.entity_type, str(self.entity_id),
                "cannot update a deleted record; restore it first",
            )
        if self.outcome is Outcome.SNAPSHOT_UNREADABLE:
            raise SnapshotDecodeError(
                f"{self.entity_type} '{self.entity_id}' snapshot is unreadable",
            )
        return self.record
