"""SoftTrack Repository — explicit create/update/soft_delete/restore/restore_to_version API.

Invariants:
    - Each mutation is one unit of work: load, plan (core/versioning.py), apply,
      append ledger row, single commit — record and ledger row commit together or not at all
    - Loads run with autoflush disabled, re-read the row over the identity map and,
      when enabled, use SELECT ... FOR UPDATE
    - Mutations return OperationResult; NOT_FOUND / INVALID_STATE / NOOP are data, not exceptions
    - get/get_all exclude deleted records unless include_deleted=True;
      get_history always returns every ledger row, ascending by version
    - SQLAlchemy failures roll back the unit of work and surface as DatabaseError

Design Decisions:
    - Repository stamps objects itself and marks them for the versioning hook, so a
      session carrying the hook never versions the same change twice
    - Row lock on read-modify-write serializes concurrent writers to one id on
      PostgreSQL; the later commit's payload still wins (last-committed-wins, no
      optimistic concurrency token)
    - NOOP / NOT_FOUND / INVALID_STATE do not end the caller's transaction: the
      session may carry other pending work, so the row lock taken by _load is
      released when the caller commits, rolls back or closes the session
    - Ledger presence decided at construction; without one, mutations succeed
      unaudited and a WARNING is logged once
"""

import logging
from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from softtrack.core.domain_types import ActorId, Outcome, RecordId, Version
from softtrack.core.errors import DatabaseError, ErrorContext, SnapshotDecodeError
from softtrack.core.repository_protocols import HistoryLike, VersionedLike
from softtrack.core.results import OperationResult
from softtrack.core.versioning import (
    Transition,
    plan_create,
    plan_restore,
    plan_restore_to_version,
    plan_soft_delete,
    plan_update,
)
from softtrack.services.clock import Clock, utc_now
from softtrack.services.ledger import HistoryLedger
from softtrack.services.record_mapping import (
    committed_state, given_id, insert_payload, payload_of, state_from_snapshot,
)
from softtrack.services.registry import (
    INCLUDE_DELETED, Registration, build_registration,
)
from softtrack.services.versioning_hook import (
    STAMPED_KEY, mark_stamped, record_transition,
)

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=VersionedLike)


class SoftTrackRepository(Generic[R]):
    """Versioned, soft-deleting repository for one record type."""

    def __init__(
        self,
        db: AsyncSession,
        model: type[R],
        history_model: type | None = None,
        *,
        registration: Registration | None = None,
        clock: Clock = utc_now,
        lock_for_update: bool = True,
    ):
        self.db = db
        self.model = model
        self.registration = registration or build_registration(model, history_model)
        self.clock = clock
        self.lock_for_update = lock_for_update

    @property
    def ledger(self) -> HistoryLedger | None:
        return self.registration.ledger

    @property
    def ledger_configured(self) -> bool:
        return self.registration.ledger is not None

    def require_ledger(self) -> HistoryLedger:
        """Ledger for callers that need strict audit completeness."""
        return self.registration.require_ledger()

    # ─── Mutations ───────────────────────────────────────────────

    async def create(self, record: R, actor: ActorId | None = None) -> OperationResult:
        transition = plan_create(
            insert_payload(record), actor, self.clock(),
            record_id=given_id(record),
        )
        self.db.add(record)
        return await self._commit(record, transition)

    async def update(self, record: R, actor: ActorId | None = None) -> OperationResult:
        payload = payload_of(record)
        existing = await self._load(record.id)
        current = committed_state(existing) if existing is not None else None
        transition = plan_update(current, payload, actor, self.clock())
        return await self._finish(existing, record.id, transition)

    async def soft_delete(
        self, record_id: RecordId, actor: ActorId | None = None,
    ) -> OperationResult:
        existing = await self._load(record_id)
        current = committed_state(existing) if existing is not None else None
        transition = plan_soft_delete(current, actor, self.clock())
        return await self._finish(existing, record_id, transition)

    async def restore(
        self, record_id: RecordId, actor: ActorId | None = None,
    ) -> OperationResult:
        existing = await self._load(record_id)
        current = committed_state(existing) if existing is not None else None
        transition = plan_restore(current, actor, self.clock())
        return await self._finish(existing, record_id, transition)

    async def restore_to_version(
        self, record_id: RecordId, version: Version, actor: ActorId | None = None,
    ) -> OperationResult:
        """Re-apply the snapshot payload of `version` as a new, higher version.

        record is None when the live record, the ledger row or a readable
        snapshot is missing.
        """
        if self.ledger is None:
            logger.warning(
                f"restore_to_version on {self.registration.name} without a ledger",
                extra={"entity_id": str(record_id)},
            )
            return self._result(Outcome.NOT_FOUND, record_id)
        entry = await self.ledger.find(self.db, record_id, version)
        if entry is None:
            return self._result(Outcome.NOT_FOUND, record_id)
        try:
            target = state_from_snapshot(self.model, entry.snapshot)
        except SnapshotDecodeError as e:
            logger.warning(
                f"Unreadable snapshot {self.registration.name} {record_id} v{version}: "
                f"{e.message}",
                extra={"entity_id": str(record_id), "version": version,
                       "error_code": e.code},
            )
            return self._result(Outcome.SNAPSHOT_UNREADABLE, record_id)
        existing = await self._load(record_id)
        current = committed_state(existing) if existing is not None else None
        transition = plan_restore_to_version(current, target, actor, self.clock())
        return await self._finish(existing, record_id, transition)

    # ─── Reads ───────────────────────────────────────────────────

    async def get(self, record_id: RecordId, include_deleted: bool = False) -> R | None:
        query = select(self.model).where(self.model.id == record_id)
        if not include_deleted:
            query = query.where(self.model.is_deleted.is_(False))
        result = await self.db.execute(
            query.execution_options(**{INCLUDE_DELETED: include_deleted}),
        )
        return result.scalar_one_or_none()

    async def get_all(self, include_deleted: bool = False) -> list[R]:
        query = select(self.model).order_by(self.model.created_at.asc())
        if not include_deleted:
            query = query.where(self.model.is_deleted.is_(False))
        result = await self.db.execute(
            query.execution_options(**{INCLUDE_DELETED: include_deleted}),
        )
        return list(result.scalars().all())

    async def get_history(self, record_id: RecordId) -> list[HistoryLike]:
        if self.ledger is None:
            return []
        return await self.ledger.history(self.db, record_id)

    async def find_version(
        self, record_id: RecordId, version: Version,
    ) -> HistoryLike | None:
        if self.ledger is None:
            return None
        return await self.ledger.find(self.db, record_id, version)

    # ─── Unit of work ────────────────────────────────────────────

    async def _load(self, record_id: RecordId | None) -> R | None:
        """Current database row regardless of deletion state.

        Pending edits are neither flushed nor kept: the row is re-read over any
        identity-mapped copy, so refused edits on a live instance are dropped.
        """
        if record_id is None:
            return None
        query = (
            select(self.model)
            .where(self.model.id == record_id)
            .execution_options(
                autoflush=False, populate_existing=True, **{INCLUDE_DELETED: True},
            )
        )
        if self.lock_for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def _finish(
        self, existing: R | None, record_id: RecordId | None, transition: Transition,
    ) -> OperationResult:
        """Commit an applied transition; report any other outcome without writing.

        Non-applied outcomes leave the transaction opened by _load running, so on
        PostgreSQL the row stays locked until the caller commits, rolls back or
        closes the session.
        """
        if transition.applied:
            return await self._commit(existing, transition)
        logger.info(
            f"{self.registration.name} {record_id}: {transition.outcome.value}",
            extra={"entity_id": str(record_id), "operation": transition.outcome.value},
        )
        return self._result(transition.outcome, record_id, existing)

    async def _commit(self, obj: R, transition: Transition) -> OperationResult:
        entry = record_transition(self.db, self.registration, obj, transition)
        mark_stamped(self.db, obj)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.error(
                f"DB integrity error versioning {self.registration.name}: {e}",
                extra={"entity_id": str(transition.state.id),
                       "version": transition.state.version},
            )
            raise DatabaseError(
                "Integrity constraint violated", "commit",
                ErrorContext(
                    entity_type=self.registration.name,
                    entity_id=str(transition.state.id),
                    version=transition.state.version,
                ),
            )
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"SQLAlchemy error versioning {self.registration.name}: {e}")
            raise DatabaseError(
                "Database operation failed", "commit",
                ErrorContext(
                    entity_type=self.registration.name,
                    entity_id=str(transition.state.id),
                ),
            )
        except BaseException:
            # hook refusals and cancellation: drop the stamped object and its ledger row
            await self.db.rollback()
            raise
        finally:
            self.db.info.pop(STAMPED_KEY, None)
        return self._result(Outcome.APPLIED, transition.state.id, obj, entry)

    def _result(
        self,
        outcome: Outcome,
        record_id: RecordId | None,
        record: R | None = None,
        entry: Any | None = None,
    ) -> OperationResult:
        return OperationResult(
            outcome=outcome,
            entity_type=self.registration.name,
            entity_id=str(record_id) if record_id is not None else None,
            record=record if outcome.succeeded else None,
            entry=entry,
        )
