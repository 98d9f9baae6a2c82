"""Record Mapping — translate between ORM rows and pure RecordState values.

Invariants:
    - committed_state() reads values as last loaded/flushed, ignoring pending edits
    - apply_state() writes every system field and every payload column the state carries
    - No function here emits SQL (attribute history is read with no lazy loads)

Design Decisions:
    - Payload columns discovered from the mapper of the registered class,
      not from runtime scanning of instances
    - Snapshot payload values are coerced back to each column's Python type with
      pydantic TypeAdapter, so a restored DateTime column gets a datetime, not a string
"""

import logging
from functools import lru_cache
from typing import Any

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import inspect
from sqlalchemy.types import JSON, PickleType

from softtrack.core.domain_types import RecordId, Version
from softtrack.core.errors import SnapshotDecodeError
from softtrack.core.record_state import (
    RecordState, SYSTEM_FIELDS, SYSTEM_FIELDS_SET,
)
from softtrack.schemas.snapshot import decode_snapshot

logger = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def payload_columns(model: type) -> tuple[str, ...]:
    """Column attribute keys of `model` that are not system fields."""
    return tuple(
        attr.key for attr in inspect(model).column_attrs
        if attr.key not in SYSTEM_FIELDS_SET
    )


def payload_of(obj: Any) -> dict[str, Any]:
    """Current (possibly pending) payload values of an ORM object.

    Columns never assigned on the instance are left out, so an update built
    from a partially populated object only touches the columns it sets.
    """
    values = inspect(obj).dict
    return {
        key: values[key] for key in payload_columns(type(obj)) if key in values
    }


def insert_payload(obj: Any) -> dict[str, Any]:
    """Full payload of a new object; unset columns take their scalar column default."""
    payload = payload_of(obj)
    columns = inspect(type(obj)).columns
    for key in payload_columns(type(obj)):
        if payload.get(key) is not None:
            continue
        default = columns[key].default
        payload[key] = default.arg if default is not None and default.is_scalar else None
    return payload


def given_id(obj: Any) -> RecordId | None:
    """Caller-assigned id of a new object; unset or all-zero means "assign one"."""
    if obj.id is None or obj.id.int == 0:
        return None
    return RecordId(obj.id)


def committed_value(obj: Any, key: str) -> Any:
    """Value of `key` before any change pending in this unit of work."""
    history = inspect(obj).attrs[key].history
    if history.deleted:
        return history.deleted[0]
    return getattr(obj, key)


def committed_state(obj: Any) -> RecordState:
    """RecordState of a persistent row as it stands in the database."""
    values = {name: committed_value(obj, name) for name in SYSTEM_FIELDS}
    return RecordState(
        id=RecordId(values["id"]),
        version=Version(values["version"]),
        is_deleted=bool(values["is_deleted"]),
        created_at=values["created_at"],
        created_by=values["created_by"],
        updated_at=values["updated_at"],
        updated_by=values["updated_by"],
        deleted_at=values["deleted_at"],
        deleted_by=values["deleted_by"],
        payload={
            key: committed_value(obj, key) for key in payload_columns(type(obj))
        },
    )


def pending_value(obj: Any, key: str) -> Any:
    """Value assigned to `key` in this unit of work, or None when untouched."""
    history = inspect(obj).attrs[key].history
    return history.added[0] if history.added else None


def apply_state(obj: Any, state: RecordState) -> None:
    """Write a RecordState onto an ORM object."""
    for name, value in state.system_values().items():
        setattr(obj, name, value)
    columns = set(payload_columns(type(obj)))
    for key, value in state.payload.items():
        if key in columns:
            setattr(obj, key, value)


# ─── Snapshot payload coercion ───────────────────────────────────

@lru_cache(maxsize=None)
def _column_adapters(model: type) -> dict[str, TypeAdapter | None]:
    adapters: dict[str, TypeAdapter | None] = {}
    for attr in inspect(model).column_attrs:
        if attr.key in SYSTEM_FIELDS_SET:
            continue
        col_type = attr.columns[0].type
        if isinstance(col_type, (JSON, PickleType)):
            adapters[attr.key] = None
            continue
        try:
            python_type = col_type.python_type
        except NotImplementedError:
            adapters[attr.key] = None
            continue
        adapters[attr.key] = TypeAdapter(python_type)
    return adapters


def coerce_payload(model: type, payload: dict[str, Any]) -> dict[str, Any]:
    """Coerce JSON payload values to the Python types of `model`'s columns.

    Keys that no longer map to a column are dropped.
    """
    adapters = _column_adapters(model)
    coerced: dict[str, Any] = {}
    for key, value in payload.items():
        if key not in adapters:
            logger.debug(f"Dropping unmapped snapshot field {model.__name__}.{key}")
            continue
        adapter = adapters[key]
        if value is None or adapter is None:
            coerced[key] = value
            continue
        try:
            coerced[key] = adapter.validate_python(value)
        except ValidationError as e:
            raise SnapshotDecodeError(
                f"{model.__name__}.{key}: {e.errors()[0]['msg']}",
            ) from e
    return coerced


def state_from_snapshot(model: type, text: str) -> RecordState:
    """Decode ledger snapshot text into a RecordState with typed payload values."""
    state = decode_snapshot(text)
    return state.evolve(payload=coerce_payload(model, state.payload))
