"""Datasource interfaces and registry."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Protocol

from ..schemas.opentsdb_contract import AnnotationEvent, AnnotationSource, RawTimeRange


class AnnotationDatasource(Protocol):
    """Protocol for datasources that can answer annotation queries.

    The annotation service resolves each annotation source's datasource by
    name through this registry and calls ``annotation_query`` on it.
    """

    name: str

    async def annotation_query(
        self, source: AnnotationSource, raw_range: RawTimeRange
    ) -> List[AnnotationEvent]:
        """Return the events of one annotation source within the range."""
        raise NotImplementedError


_datasources: Dict[str, AnnotationDatasource] = {}
_default_name: Optional[str] = None


def register_datasource(
    name: str, datasource: AnnotationDatasource, *, default: bool = False
) -> None:
    """Register a datasource under ``name``.

    The first registered datasource becomes the default unless another one
    is registered with ``default=True``.
    """
    global _default_name
    _datasources[name] = datasource
    if default or _default_name is None:
        _default_name = name


def get_datasource(name: Optional[str] = None) -> AnnotationDatasource:
    """Retrieve a registered datasource, or the default one for ``None``.

    Raises
    ------
    KeyError
        If no such datasource is registered.
    """
    key = name or _default_name
    if key is None or key not in _datasources:
        raise KeyError(f"Datasource '{name}' is not registered.")
    return _datasources[key]


def get_available_datasources() -> list[str]:
    """Get list of registered datasource names."""
    return list(_datasources.keys())


def log_datasource_status() -> None:
    """Log which datasources are registered."""
    logger = logging.getLogger(__name__)

    if not _datasources:
        logger.warning(
            "No datasources registered. Annotation sources will fail to resolve."
        )
    else:
        logger.info(
            "Datasources registered: %s (default: %s)",
            ", ".join(f"'{name}'" for name in _datasources),
            _default_name,
        )


def reset_datasources() -> None:
    """Test-only helper to clear registered datasources."""
    global _default_name
    _datasources.clear()
    _default_name = None
