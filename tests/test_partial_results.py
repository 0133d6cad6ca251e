"""
Tests for partial results handling utilities.
"""

import asyncio
from unittest.mock import MagicMock

import httpx
import pytest

from opentsdb_datasource.utils.partial_results import (
    FailureInfo,
    PartialResult,
    format_failure_summary,
    gather_partial,
)


@pytest.mark.asyncio
async def test_gather_partial_all_succeed():
    """Test gathering when all operations succeed."""

    async def success_op(value):
        await asyncio.sleep(0.01)
        return value

    operations = {
        "op1": success_op("result1"),
        "op2": success_op("result2"),
        "op3": success_op("result3"),
    }

    result = await gather_partial(operations, "test_operation")

    assert result.all_succeeded
    assert not result.has_failures
    assert result.success_rate == 1.0
    assert result.successes == {
        "op1": "result1",
        "op2": "result2",
        "op3": "result3",
    }


@pytest.mark.asyncio
async def test_gather_partial_keeps_submission_order():
    """Successes are keyed in submission order, not completion order."""

    async def delayed(value, delay):
        await asyncio.sleep(delay)
        return value

    operations = {
        "slow": delayed("a", 0.03),
        "fast": delayed("b", 0.0),
    }

    result = await gather_partial(operations)
    assert list(result.successes) == ["slow", "fast"]


@pytest.mark.asyncio
async def test_gather_partial_some_fail():
    """Test gathering when some operations fail."""

    async def success_op(value):
        return value

    async def fail_op(msg):
        raise ValueError(msg)

    operations = {
        "op1": success_op("result1"),
        "op2": fail_op("error in op2"),
        "op3": success_op("result3"),
        "op4": fail_op("error in op4"),
    }

    result = await gather_partial(operations, "test_operation")

    assert result.has_failures
    assert not result.all_succeeded
    assert not result.all_failed
    assert result.success_rate == 0.5
    assert set(result.successes.values()) == {"result1", "result3"}

    failed_ids = {f.identifier for f in result.failures}
    assert failed_ids == {"op2", "op4"}
    assert all(f.error_type == "parse_error" for f in result.failures)
    assert {f.error for f in result.failures} == {"error in op2", "error in op4"}


@pytest.mark.asyncio
async def test_gather_partial_empty_operations():
    """No operations yield an empty result."""
    result = await gather_partial({}, "test")
    assert result.successes == {}
    assert result.failures == []
    assert not result.all_succeeded


@pytest.mark.asyncio
async def test_gather_partial_propagates_cancellation():
    """Cancellation is not recorded as a failure."""

    async def cancelled():
        raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await gather_partial({"op": cancelled()})


@pytest.mark.asyncio
async def test_gather_partial_classifies_http_errors():
    """Test that different HTTP errors are classified correctly."""

    async def timeout_error():
        raise httpx.TimeoutException("timeout")

    async def server_error():
        response = MagicMock()
        response.status_code = 503
        raise httpx.HTTPStatusError(
            "server error", request=MagicMock(), response=response
        )

    async def not_found():
        response = MagicMock()
        response.status_code = 404
        raise httpx.HTTPStatusError("not found", request=MagicMock(), response=response)

    async def missing():
        raise KeyError("tsdb")

    operations = {
        "timeout": timeout_error(),
        "server": server_error(),
        "notfound": not_found(),
        "missing": missing(),
    }

    result = await gather_partial(operations, "test")

    assert result.all_failed
    failures_by_id = {f.identifier: f for f in result.failures}

    assert failures_by_id["timeout"].error_type == "timeout"
    assert failures_by_id["timeout"].retryable is True

    assert failures_by_id["server"].error_type == "server_error"
    assert failures_by_id["server"].retryable is True

    assert failures_by_id["notfound"].error_type == "not_found"
    assert failures_by_id["notfound"].retryable is False

    assert failures_by_id["missing"].error_type == "missing_field"
    assert isinstance(failures_by_id["missing"].exception, KeyError)


def test_format_failure_summary_no_failures():
    """Test formatting summary when no failures."""
    result = PartialResult(successes={"a": 1, "b": 2})
    summary = format_failure_summary(result, "annotation source")
    assert summary == "All 2 annotation source(s) succeeded."


def test_format_failure_summary_with_failures():
    """Test formatting summary with failures."""
    result = PartialResult(
        successes={"a": 1, "b": 2},
        failures=[
            FailureInfo("id1", "error1", "timeout", retryable=True),
            FailureInfo("id2", "error2", "timeout", retryable=True),
            FailureInfo("id3", "error3", "not_found", retryable=False),
        ],
    )
    summary = format_failure_summary(result, "annotation source")

    assert "2 succeeded, 3 failed" in summary
    assert "40.0% success rate" in summary
    assert "2 timeout (retryable)" in summary
    assert "1 not_found (not retryable)" in summary
    assert "Affected: id1, id2" in summary


def test_partial_result_properties():
    """Test PartialResult computed properties."""
    empty = PartialResult()
    assert empty.success_rate == 0.0
    assert not empty.has_failures
    assert not empty.all_succeeded
    assert not empty.all_failed

    mixed = PartialResult(
        successes={"a": 1},
        failures=[FailureInfo("id1", "e1", "error")],
    )
    assert mixed.success_rate == 0.5
    assert mixed.has_failures
    assert not mixed.all_succeeded
    assert not mixed.all_failed
