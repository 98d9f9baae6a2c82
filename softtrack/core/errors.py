"""Error Hierarchy — typed, categorized exceptions for all SoftTrack failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Domain errors are recoverable by the caller; infrastructure errors are critical
    - to_dict() produces a flat envelope suitable for structured logs

Design Decisions:
    - Single hierarchy with SoftTrackError base: callers can catch one type
    - Repository methods return Outcome data; these errors are raised only by
      OperationResult.unwrap(), the snapshot codec and the session manager
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    CONFIGURATION = "configuration"
    DATABASE = "database"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    entity_type: str | None = None
    entity_id: str | None = None
    version: int | None = None
    actor: str | None = None
    debug_info: dict[str, Any] | None = None


class SoftTrackError(Exception):
    """Base exception for all SoftTrack errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()

    def to_dict(self) -> dict:
        """Convert to a structured error envelope."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "entity_type": self.context.entity_type,
                    "entity_id": self.context.entity_id,
                    "version": self.context.version,
                    "actor": self.context.actor,
                },
            }
        }


# ─── Domain Errors ──────────────────────────────────────────────

class RecordNotFoundError(SoftTrackError):
    """Target record does not exist."""
    def __init__(
        self, entity_type: str, entity_id: str, context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.entity_type = entity_type
        ctx.entity_id = entity_id
        super().__init__(
            f"{entity_type} '{entity_id}' not found",
            "RECORD_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, ctx,
        )


class InvalidStateError(SoftTrackError):
    """Operation not allowed in the record's current state (e.g. update while deleted)."""
    def __init__(
        self, entity_type: str, entity_id: str, reason: str,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.entity_type = entity_type
        ctx.entity_id = entity_id
        super().__init__(
            f"{entity_type} '{entity_id}': {reason}",
            "INVALID_STATE", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.ERROR, ctx,
        )
        self.reason = reason


class SnapshotDecodeError(SoftTrackError):
    """Ledger snapshot text could not be decoded back into a record state."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            f"Snapshot decode failed: {message}",
            "SNAPSHOT_DECODE_FAILED", ErrorCategory.VALIDATION,
            ErrorSeverity.WARNING, context,
        )


class LedgerNotConfiguredError(SoftTrackError):
    """A history ledger was required but none is registered for the record type."""
    def __init__(self, entity_type: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.entity_type = entity_type
        super().__init__(
            f"No history ledger configured for {entity_type}",
            "LEDGER_NOT_CONFIGURED", ErrorCategory.CONFIGURATION,
            ErrorSeverity.CRITICAL, ctx,
        )


# ─── Infrastructure Errors ──────────────────────────────────────

class DatabaseError(SoftTrackError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context,
        )
        self.operation = operation
