"""
Tests for lookup query building and template-variable query parsing.
"""

import pytest

from opentsdb_datasource.domain.search import (
    MetricFindQueryError,
    build_lookup_query,
    extract_find_values,
    extract_lookup_values,
    parse_metric_find_query,
)
from opentsdb_datasource.schemas.opentsdb_contract import (
    LookupRow,
    LookupType,
    QueryTarget,
)

ROWS = [
    LookupRow(metric="sys.cpu.user", tags={"host": "web01", "dc": "east"}),
    LookupRow(metric="sys.cpu.user", tags={"host": "web02", "dc": "west"}),
    LookupRow(metric="sys.mem.free", tags={"host": "web01", "dc": "east"}),
    LookupRow(metric="app.requests", tags={"host": "app01", "env": "east"}),
]


def test_build_lookup_query_for_metrics_omits_metric():
    """Metric lookups search across metrics using only tags."""
    target = QueryTarget(metric="sys.cpu", tags={"host": "web01"})
    assert build_lookup_query(LookupType.METRICS, target) == "{host=web01}"


def test_build_lookup_query_tagv_adds_current_key():
    """Tag value lookups add ``<key>=*`` for the key being edited."""
    target = QueryTarget(metric="sys.cpu", tags={"dc": "east"}, current_tag_key="host")
    assert build_lookup_query(LookupType.TAGV, target) == "sys.cpu{dc=east,host=*}"


def test_build_lookup_query_tagk_adds_current_value():
    """Tag key lookups add ``*=<value>`` for the value being edited."""
    target = QueryTarget(metric="sys.cpu", current_tag_value="web01")
    assert build_lookup_query(LookupType.TAGK, target) == "sys.cpu{*=web01}"


def test_extract_lookup_metrics_sorted_and_distinct():
    """Metric names are deduplicated and sorted."""
    values = extract_lookup_values(LookupType.METRICS, QueryTarget(), ROWS)
    assert values == ["app.requests", "sys.cpu.user", "sys.mem.free"]


def test_extract_lookup_tag_values_filtered_by_current_key():
    """Tag values are restricted to the current tag key."""
    target = QueryTarget(current_tag_key="host")
    assert extract_lookup_values(LookupType.TAGV, target, ROWS) == [
        "app01",
        "web01",
        "web02",
    ]


def test_extract_lookup_tag_keys_filtered_by_current_value():
    """Tag keys are restricted to those carrying the current value."""
    target = QueryTarget(current_tag_value="east")
    assert extract_lookup_values(LookupType.TAGK, target, ROWS) == ["dc", "env"]


def test_extract_lookup_unfiltered_tag_keys():
    """Without a current value, every tag key is returned."""
    assert extract_lookup_values(LookupType.TAGK, QueryTarget(), ROWS) == [
        "dc",
        "env",
        "host",
    ]


def test_parse_metric_wildcard_with_tag_value_search():
    """``sys.*{host=*}`` enumerates host values; the metric wildcard is a prefix."""
    spec = parse_metric_find_query("sys.*{host=*}")
    assert spec.lookup_type == LookupType.TAGV
    assert spec.metric_pattern == "sys.*"
    assert spec.metric_prefix == "sys."
    assert spec.metric_suffix == ""
    assert spec.tag_match == "host"
    assert spec.lookup_query == "{host=*}"


def test_parse_tag_key_search():
    """A wildcard key enumerates tag keys carrying the value."""
    spec = parse_metric_find_query("sys.cpu.user{*=web01}")
    assert spec.lookup_type == LookupType.TAGK
    assert spec.tag_match == "web01"
    assert spec.lookup_query == "sys.cpu.user{*=web01}"


def test_parse_metric_search_without_tags():
    """A bare metric pattern enumerates metric names."""
    spec = parse_metric_find_query("sys.*.user")
    assert spec.lookup_type == LookupType.METRICS
    assert spec.metric_prefix == "sys."
    assert spec.metric_suffix == ".user"
    assert spec.lookup_query == "{}"


@pytest.mark.parametrize(
    "query",
    ["a{b=c}{d=e}", "a}b{", "m{host}", "m{=x}", "m{*=*}"],
)
def test_parse_rejects_malformed_queries(query):
    """Queries that do not decompose into metric and tag parts are rejected."""
    with pytest.raises(MetricFindQueryError):
        parse_metric_find_query(query)


def test_metric_find_error_is_value_error():
    """Parse errors can be handled as ValueError."""
    assert issubclass(MetricFindQueryError, ValueError)


def test_metric_pattern_anchors_prefix_and_suffix():
    """Wildcard patterns match both ends of the name."""
    spec = parse_metric_find_query("sys.*.user")
    assert spec.metric_matches("sys.cpu.user")
    assert not spec.metric_matches("sys.cpu.user.total")
    assert not spec.metric_matches("app.sys.cpu.user")
    assert not spec.metric_matches("sys.user")


def test_metric_pattern_exact_and_match_all():
    """Patterns without a wildcard match exactly; ``*`` and empty match all."""
    assert parse_metric_find_query("sys.cpu").metric_matches("sys.cpu")
    assert not parse_metric_find_query("sys.cpu").metric_matches("sys.cpu.user")
    assert parse_metric_find_query("*").metric_matches("anything")
    assert parse_metric_find_query("").metric_matches("anything")


def test_extract_find_values_for_metrics():
    """Metric results are filtered by the pattern."""
    spec = parse_metric_find_query("sys.*")
    assert extract_find_values(spec, ROWS) == ["sys.cpu.user", "sys.mem.free"]


def test_extract_find_values_for_tag_values():
    """Tag value results come from the requested key of the queried metric."""
    spec = parse_metric_find_query("sys.cpu.user{host=*}")
    assert extract_find_values(spec, ROWS) == ["web01", "web02"]


def test_extract_find_values_tag_values_under_metric_wildcard():
    """A wildcard metric still restricts tag values to matching metrics."""
    spec = parse_metric_find_query("sys.*{host=*}")
    assert extract_find_values(spec, ROWS) == ["web01", "web02"]
    spec = parse_metric_find_query("app.*{host=*}")
    assert extract_find_values(spec, ROWS) == ["app01"]


def test_extract_find_values_tag_keys_under_metric_wildcard():
    """Tag keys are only collected from rows of matching metrics."""
    spec = parse_metric_find_query("sys.*{*=east}")
    assert extract_find_values(spec, ROWS) == ["dc"]


def test_extract_find_values_for_tag_keys():
    """Tag key results are the keys carrying the requested value."""
    spec = parse_metric_find_query("{*=east}")
    assert extract_find_values(spec, ROWS) == ["dc", "env"]
