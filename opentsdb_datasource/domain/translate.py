"""Translation of dashboard query targets into OpenTSDB sub-queries.

Every string a user can template (metric, aggregator, tag values, downsample
interval) is passed through the caller's ``expand`` function before it is
sent to the backend.
"""

from __future__ import annotations

from typing import Callable, FrozenSet, Iterable, List, Optional, Union

from ..schemas.opentsdb_contract import BackendQuery, QueryTarget, RateOptions

Expand = Callable[[str], str]

DEFAULT_AGGREGATOR = "avg"


def _identity(text: str) -> str:
    return text


def _parse_counter_value(value: Union[str, int, None]) -> Optional[int]:
    text = "" if value is None else str(value).strip()
    return int(text) if text else None


def convert_target_to_query(
    target: QueryTarget, expand: Expand = _identity
) -> Optional[BackendQuery]:
    """Translate one target into a backend query.

    Parameters
    ----------
    target: QueryTarget
        The user-authored target.
    expand: Callable[[str], str]
        Template variable substitution.

    Returns
    -------
    Optional[BackendQuery]
        ``None`` when the target has no metric; such targets are simply left
        out of the batch.

    Raises
    ------
    ValueError
        If ``counter_max`` or ``counter_reset_value`` is not an integer.
    """
    if not target.metric:
        return None

    aggregator = DEFAULT_AGGREGATOR
    if target.aggregator:
        aggregator = expand(target.aggregator)

    rate: Optional[bool] = None
    rate_options: Optional[RateOptions] = None
    if target.should_compute_rate:
        rate = True
        rate_options = RateOptions(
            counter=bool(target.is_counter),
            counter_max=_parse_counter_value(target.counter_max),
            reset_value=_parse_counter_value(target.counter_reset_value),
        )

    downsample: Optional[str] = None
    if target.should_downsample:
        downsample = (
            f"{expand(target.downsample_interval or '')}-"
            f"{target.downsample_aggregator or DEFAULT_AGGREGATOR}"
        )

    return BackendQuery(
        metric=expand(target.metric),
        aggregator=aggregator,
        tags={key: expand(value) for key, value in target.tags.items()},
        rate=rate,
        rate_options=rate_options,
        downsample=downsample,
    )


def convert_targets(
    targets: Iterable[QueryTarget], expand: Expand = _identity
) -> List[BackendQuery]:
    """Translate a batch of targets, dropping those without a metric."""
    queries = []
    for target in targets:
        query = convert_target_to_query(target, expand)
        if query is not None:
            queries.append(query)
    return queries


def collect_group_by_tags(queries: Iterable[BackendQuery]) -> FrozenSet[str]:
    """Return every tag key used by any query of the batch."""
    keys = set()
    for query in queries:
        keys.update(query.tags.keys())
    return frozenset(keys)
