"""Annotation translation.

OpenTSDB attaches annotations to the series of an ``/api/query`` response,
with start and end times in seconds. They are first turned into
``AnnotationEvent`` records (milliseconds, source attached) and then
normalized into the ``Annotation`` records drawn on the dashboard.
"""

from __future__ import annotations

import html
from typing import Any, Callable, Iterable, List, Mapping

from ..schemas.opentsdb_contract import Annotation, AnnotationEvent, AnnotationSource
from .utils.timestamps import format_instant

Sanitize = Callable[[str], str]


def events_from_response(
    source: AnnotationSource, datasets: Iterable[Mapping[str, Any]]
) -> List[AnnotationEvent]:
    """Flatten the annotations of every dataset into events.

    A row without ``endTime`` becomes a point event with ``max == min``.
    """
    events = []
    for dataset in datasets:
        for row in dataset.get("annotations") or []:
            start = row.get("startTime")
            end = row.get("endTime")
            start_ms = int(start * 1000) if start is not None else None
            end_ms = int(end * 1000) if end else start_ms
            events.append(
                AnnotationEvent(
                    annotation=source,
                    min=start_ms,
                    max=end_ms,
                    title=row.get("description"),
                    text=row.get("notes"),
                )
            )
    return events


def render_description(
    start: int | None,
    end: int | None,
    tags: str | None = None,
    text: str | None = None,
    timezone: str = "utc",
    sanitize: Sanitize = html.escape,
) -> str:
    """Render the tooltip markup shown when hovering an annotation.

    User-controlled ``tags`` and ``text`` go through ``sanitize`` before
    they are embedded. Point events (no end, or ``end == start``) show a
    single time.
    """
    tooltip = "<small>"
    if tags:
        tooltip += f'<span class="tag label label-tag">{sanitize(tags)}</span><br/>'

    if start is not None:
        if end and end != start:
            if timezone == "browser":
                tooltip += (
                    f"<i><b>Start:</b> {format_instant(start, timezone)}</i> "
                    f"<i><b>End:</b> {format_instant(end, timezone)}</i><br/>"
                )
            else:
                tooltip += (
                    f"<i>Start: {format_instant(start, timezone)}</i><br/>"
                    f"<i>End: {format_instant(end, timezone)}</i><br/>"
                )
        else:
            tooltip += f"<i>{format_instant(start, timezone)}</i><br/>"

    if text:
        tooltip += sanitize(text).replace("\n", "<br/>")

    return tooltip + "</small>"


def to_annotation(
    event: AnnotationEvent,
    timezone: str = "utc",
    sanitize: Sanitize = html.escape,
) -> Annotation:
    """Normalize an event into the dashboard's annotation record."""
    start = event.min or event.time
    end = event.max or event.time
    return Annotation(
        annotation=event.annotation,
        min=start,
        max=end,
        event_type=event.annotation.name,
        title=event.title,
        description=render_description(
            start, end, event.tags, event.text, timezone, sanitize
        ),
        score=1,
    )
