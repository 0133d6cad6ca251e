"""Dashboard annotation aggregation.

Fetches the annotations of every enabled annotation source of a dashboard,
concurrently, and memoizes the combined result for one refresh cycle. A
``refresh`` or ``setup-dashboard`` event starts a new cycle.

A failing source is reported through an alert sink and leaves the other
sources' annotations intact.
"""

from __future__ import annotations

import asyncio
import html
import logging
from typing import Callable, List, Optional, Protocol

from .. import adapters
from ..adapters import AnnotationDatasource
from ..domain.annotations import Sanitize, to_annotation
from ..schemas.opentsdb_contract import (
    Annotation,
    AnnotationEvent,
    AnnotationSource,
    Dashboard,
    RawTimeRange,
)
from ..utils.partial_results import FailureInfo, gather_partial

logger = logging.getLogger(__name__)

REFRESH_EVENT = "refresh"
SETUP_DASHBOARD_EVENT = "setup-dashboard"
CACHE_RESET_EVENTS = frozenset({REFRESH_EVENT, SETUP_DASHBOARD_EVENT})

DEFAULT_ERROR_MESSAGE = "Annotation query failed"


class AlertSink(Protocol):
    """Side channel for user-visible alerts."""

    def set(self, title: str, message: str, severity: str) -> None:
        ...


class LoggingAlertSink:
    """Alert sink that records alerts and logs them."""

    def __init__(self) -> None:
        self.alerts: List[tuple[str, str, str]] = []

    def set(self, title: str, message: str, severity: str) -> None:
        self.alerts.append((title, message, severity))
        logger.error(
            "annotations.alert",
            extra={"title": title, "alert_message": message, "severity": severity},
        )


class AnnotationsService:
    """Aggregates annotations across a dashboard's annotation sources.

    Parameters
    ----------
    resolve_datasource: Callable[[Optional[str]], AnnotationDatasource]
        Looks up the datasource of an annotation source by name; defaults to
        the adapter registry.
    alerts: Optional[AlertSink]
        Receives one alert per failing source.
    sanitize: Callable[[str], str]
        Escaping applied to user-controlled text in tooltips.
    """

    def __init__(
        self,
        resolve_datasource: Optional[
            Callable[[Optional[str]], AnnotationDatasource]
        ] = None,
        alerts: Optional[AlertSink] = None,
        sanitize: Sanitize = html.escape,
    ) -> None:
        self._resolve = resolve_datasource or adapters.get_datasource
        self._alerts: AlertSink = alerts or LoggingAlertSink()
        self._sanitize = sanitize
        self._task: Optional["asyncio.Task[List[Annotation]]"] = None
        self.annotations: List[Annotation] = []
        self.errors: List[FailureInfo] = []

    def clear_cache(self) -> None:
        """Forget the current cycle's result; the next call queries again.

        A query still in flight keeps running but writes only into the list
        of the cycle that started it.
        """
        self._task = None
        self.annotations = []
        self.errors = []
        logger.debug("annotations.cache_cleared")

    def handle_app_event(self, event: str) -> None:
        """Clear the cache on ``refresh`` and ``setup-dashboard`` events."""
        if event in CACHE_RESET_EVENTS:
            self.clear_cache()

    async def get_annotations(
        self, raw_range: RawTimeRange, dashboard: Dashboard
    ) -> Optional[List[Annotation]]:
        """Return the annotations of all enabled sources.

        Returns ``None`` when the dashboard has annotations disabled. Within
        a refresh cycle every call shares one result, in flight or completed,
        including a failure.
        """
        if not dashboard.annotations.enable:
            return None

        if self._task is None:
            annotations: List[Annotation] = []
            errors: List[FailureInfo] = []
            self.annotations = annotations
            self.errors = errors
            self._task = asyncio.ensure_future(
                self._collect(raw_range, dashboard, annotations, errors)
            )

        return await asyncio.shield(self._task)

    async def _collect(
        self,
        raw_range: RawTimeRange,
        dashboard: Dashboard,
        annotations: List[Annotation],
        errors: List[FailureInfo],
    ) -> List[Annotation]:
        sources = [source for source in dashboard.annotations.list if source.enable]
        operations = {
            f"{index}:{source.name}": self._query_source(source, raw_range)
            for index, source in enumerate(sources)
        }

        result = await gather_partial(operations, "annotation_query")

        for events in result.successes.values():
            for event in events:
                annotations.append(
                    to_annotation(event, dashboard.timezone, self._sanitize)
                )

        for failure in result.failures:
            errors.append(failure)
            message = _error_message(failure)
            self._alerts.set("Annotations error", message, "error")

        logger.info(
            "annotations.collect.complete",
            extra={
                "sources": len(sources),
                "annotations": len(annotations),
                "failures": len(errors),
            },
        )
        return annotations

    async def _query_source(
        self, source: AnnotationSource, raw_range: RawTimeRange
    ) -> List[AnnotationEvent]:
        datasource = self._resolve(source.datasource)
        return await datasource.annotation_query(source, raw_range)


def _error_message(failure: FailureInfo) -> str:
    return failure.error or DEFAULT_ERROR_MESSAGE
