"""Metric and tag search helpers for autocompletion and template variables.

``/api/search/lookup`` takes a ``metric{tagk=tagv,...}`` expression and
returns matching time series; these helpers build that expression from a
query target or a template-variable query, and turn the returned rows into
sorted metric names, tag keys or tag values.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from ..schemas.opentsdb_contract import LookupRow, LookupType, QueryTarget

WILDCARD = "*"

_FIND_QUERY_PATTERN = re.compile(r"^([^{}]*)(?:\{([^{}]*)\})?$")


class MetricFindQueryError(ValueError):
    """Raised when a template-variable query cannot be parsed."""


def build_lookup_query(lookup_type: LookupType, target: QueryTarget) -> str:
    """Build the ``/api/search/lookup`` expression for an autocomplete lookup.

    The target's tags are always included. A tag-value lookup adds
    ``<current_tag_key>=*`` and a tag-key lookup adds
    ``*=<current_tag_value>`` when those are set. Metric lookups leave the
    metric name out.

    Examples
    --------
    >>> t = QueryTarget(metric="cpu", tags={"dc": "x"}, currentTagKey="host")
    >>> build_lookup_query(LookupType.TAGV, t)
    'cpu{dc=x,host=*}'
    """
    search_tags = [f"{key}={value}" for key, value in target.tags.items()]
    if lookup_type == LookupType.TAGV:
        if target.current_tag_key:
            search_tags.append(f"{target.current_tag_key}={WILDCARD}")
    elif lookup_type == LookupType.TAGK:
        if target.current_tag_value:
            search_tags.append(f"{WILDCARD}={target.current_tag_value}")

    prefix = "" if lookup_type == LookupType.METRICS else (target.metric or "")
    return prefix + "{" + ",".join(search_tags) + "}"


def extract_lookup_values(
    lookup_type: LookupType, target: QueryTarget, rows: Iterable[LookupRow]
) -> List[str]:
    """Collect distinct metric names, tag keys or tag values, sorted.

    Tag keys are restricted to those whose value equals
    ``target.current_tag_value`` and tag values to those whose key equals
    ``target.current_tag_key``, when set.
    """
    found = set()
    for row in rows:
        if lookup_type == LookupType.METRICS:
            found.add(row.metric)
            continue
        for key, value in row.tags.items():
            if lookup_type == LookupType.TAGK:
                if not target.current_tag_value or target.current_tag_value == value:
                    found.add(key)
            elif not target.current_tag_key or target.current_tag_key == key:
                found.add(value)
    return sorted(found)


@dataclass(frozen=True)
class MetricFindSpec:
    """A parsed template-variable query.

    Attributes
    ----------
    lookup_type: LookupType
        What the query enumerates.
    metric_pattern: str
        Metric part of the query, possibly containing one ``*``.
    tag_match: Optional[str]
        For ``tagv`` the tag key whose values are wanted; for ``tagk`` the
        tag value whose keys are wanted.
    lookup_query: str
        Expression sent to ``/api/search/lookup``.
    """

    lookup_type: LookupType
    metric_pattern: str
    tag_match: Optional[str]
    lookup_query: str

    @property
    def has_metric_wildcard(self) -> bool:
        return WILDCARD in self.metric_pattern

    @property
    def metric_prefix(self) -> str:
        return self.metric_pattern.split(WILDCARD, 1)[0]

    @property
    def metric_suffix(self) -> str:
        if not self.has_metric_wildcard:
            return ""
        return self.metric_pattern.split(WILDCARD, 1)[1]

    def metric_matches(self, metric: str) -> bool:
        """Match a metric name against the pattern.

        An empty pattern or a bare ``*`` matches everything; a pattern with a
        wildcard must match both the prefix and the suffix of the name; any
        other pattern must match exactly.
        """
        if self.metric_pattern in ("", WILDCARD):
            return True
        if not self.has_metric_wildcard:
            return metric == self.metric_pattern
        prefix, suffix = self.metric_prefix, self.metric_suffix
        return (
            len(metric) >= len(prefix) + len(suffix)
            and metric.startswith(prefix)
            and metric.endswith(suffix)
        )


def parse_metric_find_query(query: str) -> MetricFindSpec:
    """Parse a ``metric{tag=value,...}`` template-variable query.

    A ``*`` on the value side of one tag filter (``host=*``) asks for the
    values of that tag; on the key side (``*=web01``) it asks for the keys
    carrying that value. Without such a filter the query enumerates metric
    names. Lookups do not support metric wildcards, so a wildcard metric is
    left out of the lookup expression and applied to the results instead.

    Raises
    ------
    MetricFindQueryError
        If the query is not one metric part followed by at most one tag
        list, or a tag filter is malformed.

    Examples
    --------
    >>> spec = parse_metric_find_query("sys.*{host=*}")
    >>> spec.lookup_type.value, spec.metric_prefix, spec.tag_match
    ('tagv', 'sys.', 'host')
    """
    match = _FIND_QUERY_PATTERN.match(query.strip())
    if match is None:
        raise MetricFindQueryError(f"Cannot parse metric find query: {query!r}")

    metric_pattern = match.group(1).strip()
    tag_string = match.group(2) or ""

    lookup_type = LookupType.METRICS
    tag_match: Optional[str] = None
    filters = []
    for pair in tag_string.split(","):
        pair = pair.strip()
        if not pair:
            continue
        key, sep, value = pair.partition("=")
        key, value = key.strip(), value.strip()
        if not sep or not key or not value:
            raise MetricFindQueryError(
                f"Malformed tag filter {pair!r} in query {query!r}"
            )
        if key == WILDCARD and value == WILDCARD:
            raise MetricFindQueryError(
                f"Tag filter {pair!r} has a wildcard on both sides"
            )
        if value == WILDCARD:
            lookup_type, tag_match = LookupType.TAGV, key
        elif key == WILDCARD:
            lookup_type, tag_match = LookupType.TAGK, value
        filters.append(f"{key}={value}")

    tags = "{" + ",".join(filters) + "}"
    if WILDCARD in metric_pattern:
        lookup_query = tags
    else:
        lookup_query = metric_pattern + tags

    return MetricFindSpec(
        lookup_type=lookup_type,
        metric_pattern=metric_pattern,
        tag_match=tag_match,
        lookup_query=lookup_query,
    )


def extract_find_values(spec: MetricFindSpec, rows: Iterable[LookupRow]) -> List[str]:
    """Collect the distinct values a template-variable query enumerates, sorted.

    Rows whose metric does not match the query's metric pattern are ignored,
    including for tag searches whose lookup left a wildcard metric out.
    """
    found = set()
    for row in rows:
        if not spec.metric_matches(row.metric):
            continue
        if spec.lookup_type == LookupType.METRICS:
            found.add(row.metric)
            continue
        for key, value in row.tags.items():
            if spec.lookup_type == LookupType.TAGK and spec.tag_match == value:
                found.add(key)
            elif spec.lookup_type == LookupType.TAGV and spec.tag_match == key:
                found.add(value)
    return sorted(found)
