"""Versioning Hook — before_flush listener that versions changes made through the bare session.

Invariants:
    - Runs once per flush over session.new, session.dirty and session.deleted
    - Every registered object gets its transition from core/versioning.py — the
      same functions the repository calls — and one ledger row per applied transition
    - A pending physical delete of a registered object never reaches the database:
      the object is re-added to the session and soft-deleted instead
    - Objects already stamped by the repository in this unit of work are skipped
    - Modifying a deleted record (without restoring it) aborts the flush with InvalidStateError
    - Ledger rows are append-only: updating or deleting one aborts the flush

Design Decisions:
    - Listener object instead of a module-level function: the default actor and the
      clock are per-hook, and the hook can be attached to one session or a factory
    - Acting user: value the caller assigned to created_by / updated_by / deleted_by
      in this flush, else session.info["softtrack.actor"], else the hook default
"""

import logging
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from softtrack.core.domain_types import Outcome
from softtrack.core.errors import InvalidStateError
from softtrack.core.versioning import (
    Transition, plan_create, plan_pending_change, plan_soft_delete,
)
from softtrack.services.clock import Clock, utc_now
from softtrack.services.record_mapping import (
    apply_state, committed_state, given_id, insert_payload, payload_of, pending_value,
)
from softtrack.services.registry import Registration, VersionedRegistry

logger = logging.getLogger(__name__)

ACTOR_KEY = "softtrack.actor"
STAMPED_KEY = "softtrack.stamped"


def set_actor(session: Session | AsyncSession, actor: str | None) -> None:
    """Set the acting user for changes flushed by this session."""
    session.info[ACTOR_KEY] = actor


def mark_stamped(session: Session | AsyncSession, obj: Any) -> None:
    """Tell the hook that `obj` already carries its transition for this flush."""
    session.info.setdefault(STAMPED_KEY, set()).add(id(obj))


def record_transition(
    session: Session | AsyncSession,
    registration: Registration,
    obj: Any,
    transition: Transition,
) -> Any | None:
    """Apply an APPLIED transition to `obj` and append its ledger row.

    Shared by the repository and the hook. Returns the ledger row, or None
    when the type has no ledger.
    """
    apply_state(obj, transition.state)
    draft = transition.draft
    logger.info(
        f"{registration.name} {draft.entity_id} -> v{draft.version} "
        f"({draft.operation.value})",
        extra={
            "entity_id": str(draft.entity_id),
            "version": draft.version,
            "operation": draft.operation.value,
            "actor": draft.performed_by,
        },
    )
    if registration.ledger is None:
        return None
    return registration.ledger.append(session, draft)


class VersioningHook:
    """Applies versioning rules to every pending change of a registered type."""

    def __init__(
        self,
        registry: VersionedRegistry,
        actor: str | None = None,
        clock: Clock = utc_now,
    ):
        self.registry = registry
        self.actor = actor
        self.clock = clock

    def install(self, target: Any) -> "VersioningHook":
        """Listen on a Session, sessionmaker, Session subclass or AsyncSession.sync_session."""
        event.listen(target, "before_flush", self.before_flush)
        return self

    def before_flush(self, session: Session, flush_context: Any, instances: Any) -> None:
        stamped: set[int] = session.info.pop(STAMPED_KEY, set())
        actor = session.info.get(ACTOR_KEY, self.actor)
        now = self.clock()

        new = list(session.new)
        dirty = list(session.dirty)
        deleted = list(session.deleted)
        self._guard_ledger_rows(session, dirty, deleted)

        for obj in new:
            registration = self._registration(obj, stamped)
            if registration is not None:
                self._version_insert(session, registration, obj, actor, now)
        for obj in dirty:
            registration = self._registration(obj, stamped)
            if registration is not None and session.is_modified(
                obj, include_collections=False,
            ):
                self._version_update(session, registration, obj, actor, now)
        for obj in deleted:
            registration = self._registration(obj, stamped)
            if registration is not None:
                self._convert_delete(session, registration, obj, actor, now)

    def _guard_ledger_rows(self, session, dirty, deleted) -> None:
        for obj in deleted:
            if self.registry.is_ledger_row(obj):
                raise InvalidStateError(
                    type(obj).__name__, str(obj.id), "ledger rows cannot be deleted",
                )
        for obj in dirty:
            if self.registry.is_ledger_row(obj) and session.is_modified(
                obj, include_collections=False,
            ):
                raise InvalidStateError(
                    type(obj).__name__, str(obj.id), "ledger rows cannot be modified",
                )

    def _registration(self, obj: Any, stamped: set[int]) -> Registration | None:
        if id(obj) in stamped:
            return None
        return self.registry.lookup(obj)

    def _version_insert(self, session, registration, obj, actor, now) -> None:
        transition = plan_create(
            insert_payload(obj),
            obj.created_by or actor,
            now,
            record_id=given_id(obj),
        )
        record_transition(session, registration, obj, transition)

    def _version_update(self, session, registration, obj, actor, now) -> None:
        committed = committed_state(obj)
        pending_is_deleted = bool(obj.is_deleted)
        acting = (
            pending_value(obj, "deleted_by" if pending_is_deleted else "updated_by")
            or actor
        )
        transition = plan_pending_change(
            committed, pending_is_deleted, payload_of(obj), acting, now,
        )
        if transition.outcome is Outcome.INVALID_STATE:
            raise InvalidStateError(
                registration.name, str(committed.id),
                "cannot modify a deleted record; restore it first",
            )
        if transition.applied:
            record_transition(session, registration, obj, transition)

    def _convert_delete(self, session, registration, obj, actor, now) -> None:
        # session.add() on a pending delete takes it back out of session.deleted
        session.add(obj)
        committed = committed_state(obj)
        transition = plan_soft_delete(
            committed, pending_value(obj, "deleted_by") or actor, now,
        )
        if transition.applied:
            record_transition(session, registration, obj, transition)
        else:
            logger.debug(
                f"{registration.name} {committed.id} already deleted; delete ignored",
                extra={"entity_id": str(committed.id)},
            )
