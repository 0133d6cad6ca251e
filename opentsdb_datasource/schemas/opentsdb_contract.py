"""
OpenTSDB Datasource Schemas

Code-first schema definitions using Pydantic that serve as:
1. The dashboard-facing query model (targets, ranges, annotation sources)
2. The OpenTSDB wire format (query objects, series, lookup rows)
3. The normalized records handed back to the dashboard

Field names follow the dashboard's camelCase JSON via aliases so panel
definitions can be validated as-is, while Python code uses snake_case.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class LookupType(str, Enum):
    """Kinds of autocomplete lookups supported by OpenTSDB"""

    METRICS = "metrics"
    TAGK = "tagk"
    TAGV = "tagv"


# Query targets


class QueryTarget(BaseModel):
    """A user-declared request for one logical series.

    Targets are input-only: the translator never mutates them.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    metric: Optional[str] = None
    tags: Dict[str, str] = Field(default_factory=dict)
    aggregator: Optional[str] = None
    should_compute_rate: bool = Field(False, alias="shouldComputeRate")
    is_counter: bool = Field(False, alias="isCounter")
    counter_max: Optional[Union[str, int]] = Field(None, alias="counterMax")
    counter_reset_value: Optional[Union[str, int]] = Field(
        None, alias="counterResetValue"
    )
    should_downsample: bool = Field(False, alias="shouldDownsample")
    downsample_interval: Optional[str] = Field(None, alias="downsampleInterval")
    downsample_aggregator: Optional[str] = Field(
        None, alias="downsampleAggregator"
    )
    alias: Optional[str] = None
    current_tag_key: Optional[str] = Field(None, alias="currentTagKey")
    current_tag_value: Optional[str] = Field(None, alias="currentTagValue")


class RateOptions(BaseModel):
    """Counter handling for rate queries"""

    model_config = ConfigDict(populate_by_name=True)

    counter: bool = False
    counter_max: Optional[int] = Field(None, alias="counterMax")
    reset_value: Optional[int] = Field(None, alias="resetValue")


class BackendQuery(BaseModel):
    """A single sub-query of an OpenTSDB ``POST /api/query`` body"""

    model_config = ConfigDict(populate_by_name=True)

    metric: str
    aggregator: str = "avg"
    tags: Dict[str, str] = Field(default_factory=dict)
    rate: Optional[bool] = None
    rate_options: Optional[RateOptions] = Field(None, alias="rateOptions")
    downsample: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        """Serialize with OpenTSDB field names, omitting unset options."""
        return self.model_dump(by_alias=True, exclude_none=True)


# Time ranges


class RawTimeRange(BaseModel):
    """Dashboard time range as entered, e.g. ``now-1h`` to ``now``"""

    model_config = ConfigDict(populate_by_name=True)

    from_: Any = Field(..., alias="from")
    to: Any = "now"


class TimeRange(BaseModel):
    """Backend-native range in epoch milliseconds.

    ``end`` is ``None`` for open-ended ranges relative to now.
    """

    start: Optional[int] = None
    end: Optional[int] = None


# Query execution


class QueryOptions(BaseModel):
    """Arguments of a panel query"""

    range: RawTimeRange
    targets: List[QueryTarget] = Field(default_factory=list)


class SeriesResult(BaseModel):
    """One series returned by ``POST /api/query``"""

    model_config = ConfigDict(populate_by_name=True)

    metric: str
    tags: Dict[str, str] = Field(default_factory=dict)
    aggregate_tags: List[str] = Field(default_factory=list, alias="aggregateTags")
    dps: Dict[str, Optional[float]] = Field(default_factory=dict)
    annotations: Optional[List[Dict[str, Any]]] = None


class Datapoints(BaseModel):
    """A labelled series ready for plotting"""

    target: str
    datapoints: List[List[Optional[Union[float, int]]]] = Field(default_factory=list)
    annotations: List[Dict[str, Any]] = Field(default_factory=list)


class QueryResponse(BaseModel):
    """Result of a panel query"""

    data: List[Datapoints] = Field(default_factory=list)


# Lookups


class LookupRow(BaseModel):
    """One row of ``/api/search/lookup`` results"""

    model_config = ConfigDict(populate_by_name=True)

    metric: str = ""
    tags: Dict[str, str] = Field(default_factory=dict)
    tsuid: Optional[str] = None


class LookupResponse(BaseModel):
    """Response body of ``/api/search/lookup``"""

    model_config = ConfigDict(populate_by_name=True)

    type: Optional[str] = None
    metric: Optional[str] = None
    results: List[LookupRow] = Field(default_factory=list)
    total_results: Optional[int] = Field(None, alias="totalResults")


class MetricFindResult(BaseModel):
    """Template variable option produced by ``metric_find_query``"""

    text: str
    expandable: bool = False


# Annotations


class AnnotationSource(BaseModel):
    """An annotation query configured on a dashboard"""

    datasource: Optional[str] = None
    query: str = ""
    enable: bool = True
    name: str = ""


class AnnotationEvent(BaseModel):
    """An event returned by a datasource for an annotation source.

    ``min``/``max`` are epoch milliseconds; ``time`` is used when neither is
    set.
    """

    annotation: AnnotationSource
    min: Optional[int] = None
    max: Optional[int] = None
    time: Optional[int] = None
    title: Optional[str] = None
    text: Optional[str] = None
    tags: Optional[str] = None


class Annotation(BaseModel):
    """Normalized annotation consumed by the dashboard overlay"""

    model_config = ConfigDict(populate_by_name=True)

    annotation: AnnotationSource
    min: Optional[int] = None
    max: Optional[int] = None
    event_type: str = Field("", alias="eventType")
    title: Optional[str] = None
    description: str = ""
    score: int = 1


class DashboardAnnotations(BaseModel):
    """Annotation settings of a dashboard"""

    enable: bool = False
    list: List[AnnotationSource] = Field(default_factory=list)


class Dashboard(BaseModel):
    """The slice of a dashboard the annotation service reads"""

    timezone: str = "utc"
    annotations: DashboardAnnotations = Field(default_factory=DashboardAnnotations)
