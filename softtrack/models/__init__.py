"""ORM Models — declarative mixins for versioned records and their history ledgers.

Invariants:
    - Concrete record types combine VersionedRecordMixin with a DeclarativeBase
    - Each record type that wants an audit trail gets its own history table
      built from HistoryEntryMixin

Design Decisions:
    - One file per mixin for locality
    - Mixins, not concrete tables: the library ships no schema of its own
"""

from softtrack.models.versioned_record import VersionedRecordMixin  # noqa: F401
from softtrack.models.history_entry import HistoryEntryMixin  # noqa: F401
