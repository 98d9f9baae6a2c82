"""Boundary Protocols — contracts between core and shell.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - Any ORM class with these attributes can be versioned; no base class required

Design Decisions:
    - Protocol over ABC: structural subtyping, checked by the type checker
      rather than by runtime type scanning
    - Async in Protocol: boundary methods are async because implementations do IO,
      but the versioning engine that uses their data is never async itself
"""

from datetime import datetime
from typing import Protocol, Sequence, TypeVar, runtime_checkable
from uuid import UUID

from softtrack.core.domain_types import ActorId, HistoryEntryId, RecordId, Version


class VersionedLike(Protocol):
    """Capability contract for any record the engine may version."""
    id: UUID | None
    version: int
    is_deleted: bool
    created_at: datetime
    created_by: str | None
    updated_at: datetime | None
    updated_by: str | None
    deleted_at: datetime | None
    deleted_by: str | None


class HistoryLike(Protocol):
    """Structural contract for one ledger row."""
    id: HistoryEntryId
    entity_id: UUID
    version: int
    snapshot: str
    operation_type: str
    performed_at: datetime
    performed_by: ActorId | None


R = TypeVar("R", bound=VersionedLike)
E = TypeVar("E", bound=HistoryLike)


@runtime_checkable
class VersionedRepository(Protocol[R, E]):
    """Contract for the explicit repository surface — implemented by services/."""
    async def create(self, record: R, actor: ActorId | None = None): ...
    async def update(self, record: R, actor: ActorId | None = None): ...
    async def soft_delete(self, record_id: RecordId, actor: ActorId | None = None): ...
    async def restore(self, record_id: RecordId, actor: ActorId | None = None): ...
    async def restore_to_version(
        self, record_id: RecordId, version: Version, actor: ActorId | None = None,
    ): ...
    async def get(self, record_id: RecordId, include_deleted: bool = False) -> R | None: ...
    async def get_all(self, include_deleted: bool = False) -> Sequence[R]: ...
    async def get_history(self, record_id: RecordId) -> Sequence[E]: ...
