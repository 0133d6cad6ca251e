"""OpenTSDB datasource adapter.

This adapter translates dashboard panel queries, autocomplete lookups and
annotation queries into requests against the OpenTSDB HTTP API, and maps the
responses back into the dashboard's model. It encapsulates transport
concerns (base URL, timeouts) behind an injected ``httpx.AsyncClient``.

Endpoints used
--------------
- ``POST /api/query``          panel time series
- ``GET  /api/query``          annotation queries
- ``GET  /api/suggest``        metric / tag autocompletion
- ``GET  /api/search/lookup``  series lookup by metric and tags

Notes
-----
- No retries are attempted; HTTP failures propagate to the caller as
  ``httpx.HTTPError``. Timeouts are owned by the injected client.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Union

import httpx

from ..config.models import DEFAULT_SUGGEST_MAX
from ..domain.annotations import events_from_response
from ..domain.reconcile import reconcile
from ..domain.search import (
    build_lookup_query,
    extract_find_values,
    extract_lookup_values,
    parse_metric_find_query,
)
from ..domain.translate import collect_group_by_tags, convert_targets
from ..domain.utils.intersect import intersect_sorted
from ..domain.utils.timestamps import InstantParser, convert_to_tsdb_time, parse_instant
from ..schemas.opentsdb_contract import (
    AnnotationEvent,
    AnnotationSource,
    BackendQuery,
    LookupResponse,
    LookupType,
    MetricFindResult,
    QueryOptions,
    QueryResponse,
    QueryTarget,
    RawTimeRange,
    SeriesResult,
    TimeRange,
)
from ..utils.cache import LookupCache

logger = logging.getLogger(__name__)


def _identity(text: str) -> str:
    return text


class OpenTSDBDatasource:
    """Client for one OpenTSDB instance.

    Parameters
    ----------
    url: str
        Base URL of the OpenTSDB HTTP API (e.g., "http://localhost:4242").
    name: str
        Datasource name, as referenced by annotation sources.
    timeout: float
        Request timeout in seconds for the default HTTP client.
    expand: Optional[Callable[[str], str]]
        Template variable substitution applied to metrics, tags and queries.
    parse_instant: Callable
        Parser for range values other than ``"now"``.
    suggest_max: int
        ``max`` parameter sent with ``/api/suggest`` requests.

    Attributes
    ----------
    _client: httpx.AsyncClient
        Shared async client configured with base URL and timeout.
    _lookup_cache: LookupCache
        Most recent ``/api/search/lookup`` result, keyed by (type, query).
    """

    type = "opentsdb"
    supports_metrics = True
    supports_annotations = True

    def __init__(
        self,
        url: str,
        name: str = "opentsdb",
        timeout: float = 30,
        *,
        expand: Optional[Callable[[str], str]] = None,
        parse_instant: InstantParser = parse_instant,
        suggest_max: int = DEFAULT_SUGGEST_MAX,
    ) -> None:
        self.url = url
        self.name = name
        self._client: Any = httpx.AsyncClient(base_url=url, timeout=timeout)
        self._expand = expand or _identity
        self._parse_instant = parse_instant
        self._suggest_max = suggest_max
        self._lookup_cache = LookupCache()
        logger.info(
            "opentsdb.datasource.init",
            extra={"url": url, "datasource": name, "timeout_seconds": timeout},
        )

    def inject_http_client_for_testing(self, client: Any) -> None:
        """Replace underlying HTTP client (testing only).

        This allows unit tests to provide a mock compatible with ``get()``
        and ``post()``.
        """
        self._client = client

    @property
    def lookup_cache(self) -> LookupCache:
        return self._lookup_cache

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "OpenTSDBDatasource":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ---------------- transport ----------------

    async def _get_json(self, path: str, params: Dict[str, Any]) -> Any:
        """GET an endpoint and return the parsed JSON body.

        Raises
        ------
        httpx.HTTPError
            On transport errors or non-2xx responses.
        """
        logger.debug(
            "opentsdb.http.get",
            extra={"path": path, "params": params},
        )
        resp = await self._client.get(path, params=params)
        return self._parse_response(path, resp)

    async def _post_json(self, path: str, payload: Dict[str, Any]) -> Any:
        """POST JSON to an endpoint and return the parsed JSON body.

        Raises
        ------
        httpx.HTTPError
            On transport errors or non-2xx responses.
        """
        logger.debug(
            "opentsdb.http.post",
            extra={"path": path, "payload_keys": list(payload.keys())},
        )
        resp = await self._client.post(path, json=payload)
        return self._parse_response(path, resp)

    @staticmethod
    def _parse_response(path: str, resp: Any) -> Any:
        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            body_preview = ""
            text = exc.response.text
            if text:
                body_preview = text if len(text) <= 500 else text[:500] + "..."
            logger.error(
                "opentsdb.http.status_error",
                extra={
                    "path": path,
                    "status": exc.response.status_code,
                    "body_preview": body_preview,
                },
            )
            raise
        logger.debug(
            "opentsdb.http.response",
            extra={"path": path, "status_code": resp.status_code},
        )
        return resp.json()

    # ---------------- time series ----------------

    def convert_range(self, raw: RawTimeRange) -> TimeRange:
        """Translate a dashboard range into OpenTSDB millisecond bounds."""
        return TimeRange(
            start=convert_to_tsdb_time(raw.from_, self._parse_instant),
            end=convert_to_tsdb_time(raw.to, self._parse_instant),
        )

    async def query(self, options: QueryOptions) -> QueryResponse:
        """Run a panel query and label each returned series.

        Targets without a metric are skipped; if none remain, an empty
        response is returned without contacting the backend.
        """
        time_range = self.convert_range(options.range)
        queries = convert_targets(options.targets, self._expand)

        if not queries:
            logger.debug("opentsdb.query.empty_batch")
            return QueryResponse(data=[])

        group_by_tags = collect_group_by_tags(queries)
        series = await self.perform_time_series_query(queries, time_range)
        data = reconcile(series, options.targets, group_by_tags, self._expand)
        logger.info(
            "opentsdb.query.complete",
            extra={"queries": len(queries), "series": len(data)},
        )
        return QueryResponse(data=data)

    async def perform_time_series_query(
        self, queries: List[BackendQuery], time_range: TimeRange
    ) -> List[SeriesResult]:
        """POST a batch of sub-queries to ``/api/query``.

        Relative ranges (e.g. last hour) are sent without an end time.
        """
        payload: Dict[str, Any] = {
            "start": time_range.start,
            "queries": [query.to_wire() for query in queries],
            "globalAnnotations": True,
        }
        if time_range.end:
            payload["end"] = time_range.end

        data = await self._post_json("/api/query", payload)
        return [SeriesResult.model_validate(item) for item in data or []]

    # ---------------- annotations ----------------

    async def annotation_query(
        self, source: AnnotationSource, raw_range: RawTimeRange
    ) -> List[AnnotationEvent]:
        """Fetch the annotations of one annotation source.

        Start and end times are returned by OpenTSDB in seconds and scaled
        to milliseconds.
        """
        time_range = self.convert_range(raw_range)
        query_string = self._expand(source.query) or "*"

        params: Dict[str, Any] = {"m": f"sum:{query_string}"}
        if time_range.start is not None:
            params["start"] = time_range.start
        if time_range.end is not None:
            params["end"] = time_range.end

        data = await self._get_json("/api/query", params)
        events = events_from_response(source, data or [])
        logger.debug(
            "opentsdb.annotations.received",
            extra={"source_name": source.name, "events": len(events)},
        )
        return events

    # ---------------- lookups ----------------

    async def perform_suggest_query(
        self,
        query: str,
        lookup_type: Union[LookupType, str],
        target: QueryTarget,
    ) -> List[str]:
        """Autocomplete a metric name, tag key or tag value.

        Suggestions are sorted and, unless this is a bare metric suggestion
        with no tag filters, narrowed to the values consistent with the
        target's current filters.
        """
        lookup_type = LookupType(lookup_type)
        params = {
            "type": lookup_type.value,
            "q": query,
            "max": self._suggest_max,
        }
        suggestions = sorted(await self._get_json("/api/suggest", params) or [])

        if (
            lookup_type == LookupType.METRICS or not target.metric
        ) and not target.tags:
            return suggestions

        lookup_results = await self.perform_search_lookup(lookup_type, target)
        return intersect_sorted(lookup_results, suggestions)

    async def perform_search_lookup(
        self, lookup_type: Union[LookupType, str], target: QueryTarget
    ) -> List[str]:
        """Return the sorted metrics, tag keys or tag values matching ``target``.

        The most recent lookup is cached; repeating it does not contact the
        backend.
        """
        lookup_type = LookupType(lookup_type)
        search = build_lookup_query(lookup_type, target)
        key = (lookup_type.value, search)

        cached = self._lookup_cache.get(key)
        if cached is not None:
            logger.debug(
                "opentsdb.lookup.cache_hit",
                extra={"lookup_type": lookup_type.value, "search": search},
            )
            return cached

        self._lookup_cache.begin(key)
        response = await self.do_search_lookup(search)
        values = extract_lookup_values(lookup_type, target, response.results)
        self._lookup_cache.store(key, values)
        return values

    async def metric_find_query(self, query: str) -> List[MetricFindResult]:
        """Resolve a template-variable query into selectable values.

        Raises
        ------
        MetricFindQueryError
            If the expanded query cannot be parsed.
        """
        spec = parse_metric_find_query(self._expand(query))
        response = await self.do_search_lookup(spec.lookup_query)
        return [
            MetricFindResult(text=value, expandable=False)
            for value in extract_find_values(spec, response.results)
        ]

    async def do_search_lookup(self, query: str) -> LookupResponse:
        """Call ``/api/search/lookup`` with a ``metric{tags}`` expression."""
        data = await self._get_json("/api/search/lookup", {"m": query})
        return LookupResponse.model_validate(data or {})
