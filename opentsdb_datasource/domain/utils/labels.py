"""
Series label formatting.

Builds the display label of a series from its metric name and tags, either
by expanding a caller-supplied alias template or by appending the group-by
tags present on the series.
"""

import re
from typing import AbstractSet, Callable, Mapping, Optional

_ALIAS_PATTERN = re.compile(r"\$(\w+)|\[\[([\s\S]+?)\]\]")


def expand_variables(text: str, scope: Mapping[str, str]) -> str:
    """
    Expand ``$name`` and ``[[name]]`` placeholders against ``scope``.

    Placeholders whose name is missing from the scope, or maps to an empty
    value, are left verbatim.

    Parameters
    ----------
    text : str
        Template text
    scope : Mapping[str, str]
        Variable values by name

    Returns
    -------
    str
        The expanded text

    Examples
    --------
    >>> expand_variables("$metric on [[host]]", {"metric": "cpu", "host": "a"})
    'cpu on a'
    >>> expand_variables("$missing", {})
    '$missing'
    """

    def _replace(match: "re.Match[str]") -> str:
        value = scope.get(match.group(1) or match.group(2))
        if not value:
            return match.group(0)
        return value

    return _ALIAS_PATTERN.sub(_replace, text)


def make_expander(variables: Mapping[str, str]) -> Callable[[str], str]:
    """
    Build an ``expand`` callable over a fixed set of template variables.

    Useful wherever no dashboard template service is available (CLI,
    scripts); unknown variables pass through unchanged.
    """
    scope = dict(variables)

    def expand(text: str) -> str:
        if not text:
            return text
        return expand_variables(text, scope)

    return expand


def create_metric_label(
    metric: str,
    tags: Optional[Mapping[str, str]],
    group_by_tags: AbstractSet[str],
    alias: Optional[str] = None,
) -> str:
    """
    Build the display label for a series.

    Parameters
    ----------
    metric : str
        Metric name of the series
    tags : Mapping[str, str], optional
        Tags of the series, in backend order
    group_by_tags : AbstractSet[str]
        Tag keys the caller wants distinguished in the label
    alias : str, optional
        Alias template; when set it wins over the group-by label

    Returns
    -------
    str
        ``alias`` expanded over the series tags plus ``metric``, or
        ``metric{k1=v1, k2=v2}`` for the group-by tags present on the series,
        or the bare metric name

    Examples
    --------
    >>> create_metric_label("cpu", {"host": "a", "dc": "x"}, {"host"})
    'cpu{host=a}'
    >>> create_metric_label("cpu", {"host": "a"}, set(), alias="$host: $metric")
    'a: cpu'
    """
    tags = tags or {}

    if alias:
        scope = dict(tags)
        scope["metric"] = metric
        return expand_variables(alias, scope)

    distinct = [(key, value) for key, value in tags.items() if key in group_by_tags]
    if distinct:
        tag_text = ", ".join(f"{key}={value}" for key, value in distinct)
        return f"{metric}{{{tag_text}}}"

    return metric
