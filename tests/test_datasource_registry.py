"""Test datasource registration and logging functionality."""

from __future__ import annotations

import logging

import pytest

from opentsdb_datasource.adapters import (
    get_available_datasources,
    get_datasource,
    log_datasource_status,
    register_datasource,
    reset_datasources,
)
from opentsdb_datasource.adapters.opentsdb import OpenTSDBDatasource


def test_log_datasource_status_no_datasources(caplog):
    """Test log_datasource_status when no datasources are registered."""
    with caplog.at_level(logging.WARNING):
        log_datasource_status()

    warning_logs = [
        record.message for record in caplog.records if record.levelname == "WARNING"
    ]
    assert len(warning_logs) > 0
    assert "No datasources registered" in " ".join(warning_logs)


def test_log_datasource_status_with_datasources(caplog):
    """Test log_datasource_status when datasources are registered."""
    ds = OpenTSDBDatasource("http://test-tsdb:4242", name="tsdb", timeout=30)
    register_datasource("tsdb", ds)

    with caplog.at_level(logging.INFO):
        log_datasource_status()

    info_logs = [
        record.message for record in caplog.records if record.levelname == "INFO"
    ]
    combined_logs = " ".join(info_logs)
    assert "Datasources registered" in combined_logs
    assert "'tsdb'" in combined_logs
    assert "default: tsdb" in combined_logs


def test_first_registered_is_default():
    first = OpenTSDBDatasource("http://a", name="a")
    second = OpenTSDBDatasource("http://b", name="b")
    register_datasource("a", first)
    register_datasource("b", second)

    assert get_datasource() is first
    assert get_datasource("b") is second
    assert get_available_datasources() == ["a", "b"]


def test_explicit_default_overrides_first():
    first = OpenTSDBDatasource("http://a", name="a")
    second = OpenTSDBDatasource("http://b", name="b")
    register_datasource("a", first)
    register_datasource("b", second, default=True)
    assert get_datasource() is second
    assert get_datasource(None) is second


def test_unknown_datasource_raises():
    with pytest.raises(KeyError):
        get_datasource()
    register_datasource("a", OpenTSDBDatasource("http://a"))
    with pytest.raises(KeyError):
        get_datasource("missing")


def test_datasource_registry_reset():
    """Test that the registry can be cleared for testing."""
    register_datasource("test", OpenTSDBDatasource("http://example"))
    assert get_available_datasources() == ["test"]
    reset_datasources()
    assert get_available_datasources() == []
