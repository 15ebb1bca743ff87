"""Tests for shared error helpers."""

from __future__ import annotations

from pathlib import Path

import pytest

from ih_common.errors import (
    AggregateError,
    ConfigurationError,
    IHError,
    aggregate_errors,
    error_to_payload,
)


pytestmark = pytest.mark.unit_common


def test_error_to_payload_normalizes_context() -> None:
    err = ConfigurationError(
        "boom",
        context={
            "path": Path("/tmp/test"),
            "count": 3,
            "nested": {"value": Path("nested")},
            "items": [Path("a"), "b"],
        },
    )
    payload = error_to_payload(err)
    assert payload["error_type"] == "ConfigurationError"
    assert payload["error"] == "boom"
    assert payload["error_context"]["path"].endswith("test")
    assert payload["error_context"]["count"] == 3
    assert payload["error_context"]["nested"]["value"] == "nested"
    assert payload["error_context"]["items"][0] == "a"


def test_cause_is_chained() -> None:
    cause = OSError("disk full")
    err = IHError("write failed", context={"file": "x"}, cause=cause)
    assert err.__cause__ is cause
    assert err.to_dict() == {
        "type": "IHError",
        "message": "write failed",
        "context": {"file": "x"},
    }


def test_aggregate_errors_collapses_none_and_single() -> None:
    single = RuntimeError("only")
    assert aggregate_errors(None, None) is None
    assert aggregate_errors(None, single) is single


def test_aggregate_errors_keeps_every_error() -> None:
    first = IHError("apply failed")
    second = RuntimeError("destroy failed")
    combined = aggregate_errors(first, None, second)

    assert isinstance(combined, AggregateError)
    assert combined.errors == [first, second]
    assert combined.__cause__ is first
    assert "IHError: apply failed" in str(combined)
    assert "RuntimeError: destroy failed" in str(combined)
    payload = combined.to_dict()
    assert [entry["type"] for entry in payload["errors"]] == ["IHError", "RuntimeError"]
