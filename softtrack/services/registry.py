"""Versioned Registry — explicit list of record types SoftTrack manages.

Invariants:
    - Only registered types are versioned by the hook or filtered by SoftDeleteFilter
    - A type is registered once; its ledger (or lack of one) is fixed at registration
    - A type without a history model is logged at WARNING when registered

Design Decisions:
    - Explicit registration over scanning every mapped class for a base type:
      the set of versioned types is readable in one place
    - Ledger presence decided here, once, instead of being discovered when a
      ledger write fails at call time
"""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import event, inspect
from sqlalchemy.orm import ORMExecuteState, with_loader_criteria

from softtrack.core.errors import ErrorContext, LedgerNotConfiguredError
from softtrack.core.record_state import SYSTEM_FIELDS
from softtrack.services.ledger import HistoryLedger

logger = logging.getLogger(__name__)

INCLUDE_DELETED = "include_deleted"


@dataclass(frozen=True)
class Registration:
    """One versioned record type and its ledger."""
    model: type
    ledger: HistoryLedger | None = None

    @property
    def name(self) -> str:
        return self.model.__name__

    def require_ledger(self) -> HistoryLedger:
        if self.ledger is None:
            raise LedgerNotConfiguredError(
                self.name, ErrorContext(entity_type=self.name),
            )
        return self.ledger


def _check_versioned_columns(model: type) -> None:
    keys = {attr.key for attr in inspect(model).column_attrs}
    missing = [name for name in SYSTEM_FIELDS if name not in keys]
    if missing:
        raise TypeError(
            f"{model.__name__} is missing versioned columns {missing}; "
            "mix in VersionedRecordMixin",
        )


def build_registration(model: type, history_model: type | None = None) -> Registration:
    """Validate a record type and pair it with its ledger."""
    _check_versioned_columns(model)
    if history_model is None:
        logger.warning(
            f"No history ledger configured for {model.__name__}: "
            "mutations will be versioned but not audited",
            extra={"entity_type": model.__name__},
        )
        return Registration(model)
    return Registration(model, HistoryLedger(history_model))


class VersionedRegistry:
    """Explicit registry of versioned record types."""

    def __init__(self):
        self._entries: dict[type, Registration] = {}

    def register(self, model: type, history_model: type | None = None) -> Registration:
        if model in self._entries:
            raise ValueError(f"{model.__name__} is already registered")
        registration = build_registration(model, history_model)
        self._entries[model] = registration
        logger.info(
            f"Registered versioned type {model.__name__}",
            extra={"entity_type": model.__name__},
        )
        return registration

    def lookup(self, obj: Any) -> Registration | None:
        """Registration for an instance (or its nearest registered base class)."""
        for cls in type(obj).__mro__:
            registration = self._entries.get(cls)
            if registration is not None:
                return registration
        return None

    def __getitem__(self, model: type) -> Registration:
        return self._entries[model]

    def __contains__(self, model: type) -> bool:
        return model in self._entries

    @property
    def models(self) -> tuple[type, ...]:
        return tuple(self._entries)

    def is_ledger_row(self, obj: Any) -> bool:
        return any(
            r.ledger is not None and isinstance(obj, r.ledger.history_model)
            for r in self._entries.values()
        )

    def soft_delete_filter(self) -> "SoftDeleteFilter":
        return SoftDeleteFilter(self.models)


class SoftDeleteFilter:
    """do_orm_execute listener hiding deleted rows of registered types from selects.

    Opt out per statement with `.execution_options(include_deleted=True)`.
    """

    def __init__(self, models: tuple[type, ...]):
        self.models = models

    def install(self, target: Any) -> "SoftDeleteFilter":
        event.listen(target, "do_orm_execute", self.on_execute)
        return self

    def on_execute(self, execute_state: ORMExecuteState) -> None:
        if (
            not execute_state.is_select
            or execute_state.is_column_load
            or execute_state.is_relationship_load
        ):
            return
        if execute_state.execution_options.get(INCLUDE_DELETED, False):
            return
        execute_state.statement = execute_state.statement.options(*(
            with_loader_criteria(
                model, lambda cls: cls.is_deleted.is_(False), include_aliases=True,
            )
            for model in self.models
        ))
