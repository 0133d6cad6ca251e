"""
Timestamp parsing and conversion utilities.

Provides the default instant parser for dashboard range values (ISO8601
strings, Unix timestamps in seconds or milliseconds, ``now-<n><unit>``
relative expressions and ``datetime`` objects) and the conversion of a range
value into OpenTSDB's millisecond epoch representation.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union

logger = logging.getLogger(__name__)

InstantValue = Union[str, int, float, datetime]
InstantParser = Callable[[InstantValue], datetime]

NOW = "now"

# Unit lengths in seconds; months and years are fixed-length approximations.
_UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 604800,
    "M": 2592000,
    "y": 31536000,
}

_RELATIVE_PATTERN = re.compile(r"^now(?:([+-])(\d+)([smhdwMy]))?$")


def parse_instant(
    value: InstantValue, now: Optional[datetime] = None
) -> datetime:
    """
    Parse a dashboard range value into an aware UTC datetime.

    Supports:
    - ``datetime`` objects (naive values are taken as UTC)
    - ``now`` and relative expressions such as ``now-1h`` or ``now-7d``
    - ISO8601 strings (with or without 'Z' suffix)
    - Unix timestamps in seconds (< 10000000000) or milliseconds

    Parameters
    ----------
    value : str, int, float or datetime
        The value to parse
    now : datetime, optional
        Reference instant for relative expressions; defaults to the current
        time

    Returns
    -------
    datetime
        Parsed datetime in UTC

    Raises
    ------
    ValueError
        If the value cannot be parsed

    Examples
    --------
    >>> parse_instant("2025-10-15T12:00:00Z")
    datetime.datetime(2025, 10, 15, 12, 0, tzinfo=datetime.timezone.utc)
    >>> ref = datetime(2025, 10, 15, 12, 0, tzinfo=timezone.utc)
    >>> parse_instant("now-1h", now=ref)
    datetime.datetime(2025, 10, 15, 11, 0, tzinfo=datetime.timezone.utc)
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    if isinstance(value, bool):
        raise ValueError(f"Cannot parse instant from {value!r}")

    if isinstance(value, (int, float)):
        return _parse_unix_timestamp(value)

    if isinstance(value, str):
        text = value.strip()
        relative = _RELATIVE_PATTERN.match(text)
        if relative:
            return _parse_relative(relative, now)
        if text.lstrip("-").isdigit():
            return _parse_unix_timestamp(int(text))
        return _parse_iso8601(text)

    raise ValueError(f"Cannot parse instant from {value!r}")


def _parse_relative(match: "re.Match[str]", now: Optional[datetime]) -> datetime:
    reference = now or datetime.now(timezone.utc)
    sign, amount, unit = match.groups()
    if sign is None:
        return reference
    offset = timedelta(seconds=int(amount) * _UNIT_SECONDS[unit])
    return reference - offset if sign == "-" else reference + offset


def _parse_iso8601(value: str) -> datetime:
    """
    Parse an ISO8601 timestamp string.

    Handles trailing 'Z' by converting to '+00:00'.
    """
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"

    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        logger.warning(
            "timestamps.parse_iso8601_failed",
            extra={"value": value, "error": "invalid format"},
        )
        raise ValueError(f"Cannot parse instant from {value!r}") from None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _parse_unix_timestamp(value: Union[int, float]) -> datetime:
    """
    Parse a Unix timestamp (seconds or milliseconds since epoch).

    Values >= 10000000000 are treated as milliseconds.
    """
    try:
        if value >= 10000000000:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError) as exc:
        raise ValueError(f"Cannot parse instant from {value!r}") from exc


def to_epoch_ms(dt: datetime) -> int:
    """
    Convert a datetime to Unix milliseconds.

    Examples
    --------
    >>> to_epoch_ms(datetime(2023, 10, 15, 12, 0, 0, tzinfo=timezone.utc))
    1697371200000
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def convert_to_tsdb_time(
    value: InstantValue, parser: InstantParser = parse_instant
) -> Optional[int]:
    """
    Convert a range bound into OpenTSDB time.

    ``"now"`` means "no bound" and yields ``None`` so the caller can omit it
    from the request. Everything else goes through ``parser`` and becomes a
    millisecond epoch.
    """
    if value == NOW:
        return None
    return to_epoch_ms(parser(value))


def format_instant(epoch_ms: int, tz: str = "utc") -> str:
    """
    Format a millisecond epoch as ``YYYY-MM-DD HH:MM:SS``.

    ``tz="browser"`` renders in the host's local timezone, anything else in
    UTC.
    """
    dt = datetime.fromtimestamp(epoch_ms / 1000.0, tz=timezone.utc)
    if tz == "browser":
        dt = dt.astimezone()
    return dt.strftime("%Y-%m-%d %H:%M:%S")
