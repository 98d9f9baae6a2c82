"""Operation Results — verifies outcome flags and unwrap() error mapping."""

import pytest

from softtrack.core.domain_types import Outcome
from softtrack.core.errors import (
    InvalidStateError, RecordNotFoundError, SnapshotDecodeError,
)
from softtrack.core.results import OperationResult


def _result(outcome, record=None):
    return OperationResult(outcome, "Document", "abc", record)


def test_applied_is_ok_and_changed():
    r = _result(Outcome.APPLIED, record="rec")
    assert r.ok and r.changed
    assert r.unwrap() == "rec"


def test_noop_is_ok_but_unchanged():
    r = _result(Outcome.NOOP, record="rec")
    assert r.ok
    assert not r.changed
    assert r.unwrap() == "rec"


@pytest.mark.parametrize("outcome, error", [
    (Outcome.NOT_FOUND, RecordNotFoundError),
    (Outcome.INVALID_STATE, InvalidStateError),
    (Outcome.SNAPSHOT_UNREADABLE, SnapshotDecodeError),
])
def test_unwrap_raises_typed_error(outcome, error):
    r = _result(outcome)
    assert not r.ok
    with pytest.raises(error):
        r.unwrap()


def test_unwrap_error_carries_entity():
    with pytest.raises(RecordNotFoundError) as exc:
        _result(Outcome.NOT_FOUND).unwrap()
    assert exc.value.context.entity_type == "Document"
    assert exc.value.context.entity_id == "abc"
