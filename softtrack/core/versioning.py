"""Versioning Engine — pure state transitions for versioned records.

Invariants:
    - All functions are PURE: no IO, no async, no DB, no clock (caller passes `now`)
    - Every APPLIED transition bumps version by exactly 1 (create starts at 1)
      and carries exactly one LedgerDraft at the new version
    - NOOP carries the unchanged state and no draft; NOT_FOUND / INVALID_STATE
      carry neither
    - id, created_at, created_by never change after create

Design Decisions:
    - Return Transition data (not exceptions): the repository and the
      pre-flush hook branch on Transition.outcome the same way
    - One function per operation, shared by both entry points, so stamping
      and ledger rules cannot diverge
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import uuid4

from softtrack.core.domain_types import (
    INITIAL_VERSION, ActorId, OperationType, Outcome, RecordId, Version,
)
from softtrack.core.record_state import RecordState, split_payload


@dataclass(frozen=True)
class LedgerDraft:
    """A history entry waiting to be appended to the ledger."""
    entity_id: RecordId
    version: Version
    operation: OperationType
    state: RecordState
    performed_at: datetime
    performed_by: ActorId | None = None


@dataclass(frozen=True)
class Transition:
    """Engine verdict — next state plus the ledger draft that must accompany it."""
    outcome: Outcome
    state: RecordState | None = None
    draft: LedgerDraft | None = None

    @property
    def applied(self) -> bool:
        return self.outcome is Outcome.APPLIED


NOT_FOUND = Transition(Outcome.NOT_FOUND)
INVALID_STATE = Transition(Outcome.INVALID_STATE)


def _applied(
    state: RecordState, operation: OperationType, actor: ActorId | None, now: datetime,
) -> Transition:
    draft = LedgerDraft(
        entity_id=state.id,
        version=state.version,
        operation=operation,
        state=state,
        performed_at=now,
        performed_by=actor,
    )
    return Transition(Outcome.APPLIED, state, draft)


def _next_version(state: RecordState) -> Version:
    return Version(state.version + 1)


def plan_create(
    payload: dict[str, Any],
    actor: ActorId | None,
    now: datetime,
    record_id: RecordId | None = None,
) -> Transition:
    """Create: fresh id if none given, version 1, not deleted, update/delete fields clear."""
    state = RecordState(
        id=record_id or RecordId(uuid4()),
        version=INITIAL_VERSION,
        created_at=now,
        created_by=actor,
        payload=split_payload(payload),
    )
    return _applied(state, OperationType.CREATE, actor, now)


def plan_update(
    current: RecordState | None,
    payload: dict[str, Any],
    actor: ActorId | None,
    now: datetime,
) -> Transition:
    """Update: payload fields only; protected fields come from `current`."""
    if current is None:
        return NOT_FOUND
    if current.is_deleted:
        return INVALID_STATE
    state = current.evolve(
        version=_next_version(current),
        updated_at=now,
        updated_by=actor,
        payload={**current.payload, **split_payload(payload)},
    )
    return _applied(state, OperationType.UPDATE, actor, now)


def plan_soft_delete(
    current: RecordState | None, actor: ActorId | None, now: datetime,
) -> Transition:
    """Soft delete: NOOP when already deleted."""
    if current is None:
        return NOT_FOUND
    if current.is_deleted:
        return Transition(Outcome.NOOP, current)
    state = current.evolve(
        version=_next_version(current),
        is_deleted=True,
        deleted_at=now,
        deleted_by=actor,
        updated_at=now,
        updated_by=actor,
    )
    return _applied(state, OperationType.SOFT_DELETE, actor, now)


def plan_restore(
    current: RecordState | None, actor: ActorId | None, now: datetime,
) -> Transition:
    """Restore: NOOP when not deleted."""
    if current is None:
        return NOT_FOUND
    if not current.is_deleted:
        return Transition(Outcome.NOOP, current)
    state = current.evolve(
        version=_next_version(current),
        is_deleted=False,
        deleted_at=None,
        deleted_by=None,
        updated_at=now,
        updated_by=actor,
    )
    return _applied(state, OperationType.RESTORE, actor, now)


def plan_restore_to_version(
    current: RecordState | None,
    target: RecordState | None,
    actor: ActorId | None,
    now: datetime,
) -> Transition:
    """Restore-to-version: snapshot payload at version current+1, deletion cleared.

    The live record keeps its own id, created_at and created_by; only the
    payload columns are taken from the snapshot.
    """
    if current is None or target is None:
        return NOT_FOUND
    state = current.evolve(
        version=_next_version(current),
        is_deleted=False,
        deleted_at=None,
        deleted_by=None,
        updated_at=now,
        updated_by=actor,
        payload=dict(target.payload),
    )
    return _applied(state, OperationType.RESTORE, actor, now)


def classify_pending_change(
    committed: RecordState, pending_is_deleted: bool,
) -> OperationType:
    """Map a dirty row to the operation it expresses, judged by its is_deleted flip."""
    if pending_is_deleted and not committed.is_deleted:
        return OperationType.SOFT_DELETE
    if not pending_is_deleted and committed.is_deleted:
        return OperationType.RESTORE
    return OperationType.UPDATE


def plan_pending_change(
    committed: RecordState,
    pending_is_deleted: bool,
    payload: dict[str, Any],
    actor: ActorId | None,
    now: datetime,
) -> Transition:
    """Plan the transition for an in-place modification seen at flush time."""
    operation = classify_pending_change(committed, pending_is_deleted)
    merged = {**committed.payload, **split_payload(payload)}
    if operation is OperationType.SOFT_DELETE:
        return plan_soft_delete(committed.evolve(payload=merged), actor, now)
    if operation is OperationType.RESTORE:
        return plan_restore(committed.evolve(payload=merged), actor, now)
    return plan_update(committed, payload, actor, now)


def missing_versions(recorded: list[int], current_version: int) -> list[int]:
    """Versions in 1..current_version absent from `recorded`, ascending."""
    present = set(recorded)
    return [v for v in range(1, current_version + 1) if v not in present]
