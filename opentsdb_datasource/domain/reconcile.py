"""Reconciliation of OpenTSDB series with the targets that requested them.

A batched ``/api/query`` response does not say which sub-query produced each
series, so every series is matched back to a target by metric name and tag
filters. When nothing matches, the series is attributed to the first target
rather than dropped; with several targets on one metric this can mislabel a
series, and callers rely on every series being returned.
"""

from __future__ import annotations

import logging
from typing import AbstractSet, Callable, Dict, List, Optional, Sequence

from ..schemas.opentsdb_contract import Datapoints, QueryTarget, SeriesResult
from .utils.labels import create_metric_label

logger = logging.getLogger(__name__)

Expand = Callable[[str], str]

WILDCARD = "*"


def _identity(text: str) -> str:
    return text


def _expanded_tag_filter(target: QueryTarget, expand: Expand) -> Dict[str, str]:
    tags: Dict[str, str] = {}
    for key, value in target.tags.items():
        key = expand(key)
        value = expand(value)
        if key != WILDCARD and value != WILDCARD:
            tags[key] = value
    return tags


def target_matches(
    series: SeriesResult, target: QueryTarget, expand: Expand = _identity
) -> bool:
    """Return True if ``series`` could have been produced by ``target``.

    Metric names must be equal after variable expansion. A target without
    tags matches any series of its metric. Otherwise every non-wildcard tag
    of the target, after variable expansion, must be present on the series
    with the same value; wildcard tags match anything.
    """
    if series.metric != expand(target.metric or ""):
        return False
    if not target.tags:
        return True
    wanted = _expanded_tag_filter(target, expand)
    return all(series.tags.get(key) == value for key, value in wanted.items())


def match_target(
    series: SeriesResult,
    targets: Sequence[QueryTarget],
    expand: Expand = _identity,
) -> Optional[QueryTarget]:
    """Pick the target a series belongs to.

    Targets are tried in declared order and the first match wins. With no
    match, the first declared target is returned; ``None`` only when there
    are no targets at all.
    """
    for target in targets:
        if target_matches(series, target, expand):
            return target
    if targets:
        logger.debug(
            "reconcile.fallback_target",
            extra={"metric": series.metric, "tags": series.tags},
        )
        return targets[0]
    return None


def transform_metric_data(
    series: SeriesResult,
    group_by_tags: AbstractSet[str],
    target: Optional[QueryTarget] = None,
    alias: Optional[str] = None,
) -> Datapoints:
    """Convert a backend series into labelled datapoints.

    OpenTSDB returns datapoints as ``{seconds: value}``; they become
    ``[value, milliseconds]`` pairs in the order the backend sent them.
    ``alias`` overrides the target's own alias when given.
    """
    label = create_metric_label(
        series.metric,
        series.tags,
        group_by_tags,
        alias or (target.alias if target is not None else None),
    )
    datapoints: List[List] = [
        [value, int(timestamp) * 1000] for timestamp, value in series.dps.items()
    ]
    return Datapoints(target=label, datapoints=datapoints, annotations=[])


def reconcile(
    series_list: Sequence[SeriesResult],
    targets: Sequence[QueryTarget],
    group_by_tags: AbstractSet[str],
    expand: Expand = _identity,
    alias: Optional[str] = None,
) -> List[Datapoints]:
    """Match and label every series of a response, preserving order."""
    return [
        transform_metric_data(
            series, group_by_tags, match_target(series, targets, expand), alias
        )
        for series in series_list
    ]
