"""
Partial results handling for fan-out operations where some calls may fail.

Collects successful results while tracking failures, so one failing
annotation source never hides the rows of the others.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, List, Mapping, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class FailureInfo:
    """
    Information about a failed operation.

    Attributes
    ----------
    identifier : str
        Identifier for the failed operation (e.g., annotation source name)
    error : str
        Error message
    error_type : str
        Type of error (e.g., "http_error", "timeout", "parse_error")
    retryable : bool
        Whether the operation might succeed if retried
    exception : BaseException, optional
        The original exception
    """

    identifier: str
    error: str
    error_type: str
    retryable: bool = False
    exception: Any = None


@dataclass
class PartialResult:
    """
    Result container for operations that may partially fail.

    Attributes
    ----------
    successes : Dict[str, Any]
        Successfully retrieved results keyed by identifier, in submission order
    failures : List[FailureInfo]
        Information about failed operations
    """

    successes: Dict[str, Any] = field(default_factory=dict)
    failures: List[FailureInfo] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        """Calculate success rate (0.0-1.0)."""
        total = len(self.successes) + len(self.failures)
        if total == 0:
            return 0.0
        return len(self.successes) / total

    @property
    def has_failures(self) -> bool:
        """Check if any operations failed."""
        return len(self.failures) > 0

    @property
    def all_succeeded(self) -> bool:
        """Check if all operations succeeded."""
        return len(self.failures) == 0 and len(self.successes) > 0

    @property
    def all_failed(self) -> bool:
        """Check if all operations failed."""
        return len(self.successes) == 0 and len(self.failures) > 0


async def gather_partial(
    operations: Mapping[str, Awaitable[T]],
    operation_type: str = "operation",
) -> PartialResult:
    """
    Run async operations concurrently and collect partial results.

    Every operation runs to completion or failure; failures are classified
    and recorded instead of propagating.

    Parameters
    ----------
    operations : Mapping[str, Awaitable[T]]
        Mapping of identifiers to async operations
    operation_type : str
        Human-readable type of operation (for logging)

    Returns
    -------
    PartialResult
        Container with successes and failures; empty when there were no
        operations

    Examples
    --------
    >>> operations = {
    ...     "deploys": fetch_annotations("deploys"),
    ...     "outages": fetch_annotations("outages"),
    ... }
    >>> result = await gather_partial(operations, "annotation_query")
    >>> print(f"{len(result.successes)} ok, {len(result.failures)} failed")
    """
    results = PartialResult()
    if not operations:
        return results

    tasks: Dict[str, "asyncio.Task[Any]"] = {
        identifier: asyncio.ensure_future(operation)
        for identifier, operation in operations.items()
    }

    completed = await asyncio.gather(*tasks.values(), return_exceptions=True)

    for identifier, result in zip(tasks.keys(), completed):
        if isinstance(result, Exception):
            error_type = _classify_error(result)
            retryable = _is_retryable(error_type)
            results.failures.append(
                FailureInfo(
                    identifier=identifier,
                    error=str(result),
                    error_type=error_type,
                    retryable=retryable,
                    exception=result,
                )
            )
            logger.warning(
                f"partial_results.{operation_type}.failed",
                extra={
                    "identifier": identifier,
                    "error_type": error_type,
                    "retryable": retryable,
                    "error": str(result),
                },
            )
        elif isinstance(result, BaseException):
            raise result
        else:
            results.successes[identifier] = result

    logger.info(
        f"partial_results.{operation_type}.complete",
        extra={
            "total": len(operations),
            "successes": len(results.successes),
            "failures": len(results.failures),
            "success_rate": results.success_rate,
        },
    )
    return results


def _classify_error(exc: Exception) -> str:
    """Classify exception into error type."""
    error_type = "unknown_error"

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status >= 500:
            error_type = "server_error"
        elif status == 429:
            error_type = "rate_limit"
        elif status in (401, 403):
            error_type = "auth_error"
        elif status == 404:
            error_type = "not_found"
        else:
            error_type = "http_error"
    elif isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        error_type = "timeout"
    elif isinstance(exc, httpx.ConnectError):
        error_type = "connection_error"
    elif isinstance(exc, ValueError):
        error_type = "parse_error"
    elif isinstance(exc, KeyError):
        error_type = "missing_field"

    return error_type


def _is_retryable(error_type: str) -> bool:
    """Determine if an error type is retryable."""
    return error_type in {
        "timeout",
        "connection_error",
        "server_error",
        "rate_limit",
    }


def format_failure_summary(
    result: PartialResult, operation_type: str = "operation"
) -> str:
    """
    Format a human-readable summary of partial result failures.

    Parameters
    ----------
    result : PartialResult
        The partial result to summarize
    operation_type : str
        Type of operation (for messaging)

    Returns
    -------
    str
        Formatted summary string
    """
    if not result.has_failures:
        return f"All {len(result.successes)} {operation_type}(s) succeeded."

    lines = [
        f"Partial results: {len(result.successes)} succeeded, "
        f"{len(result.failures)} failed ({result.success_rate:.1%} success rate)",
    ]

    failures_by_type: Dict[str, List[FailureInfo]] = {}
    for failure in result.failures:
        failures_by_type.setdefault(failure.error_type, []).append(failure)

    for error_type, failures in failures_by_type.items():
        retry_note = " (retryable)" if failures[0].retryable else " (not retryable)"
        lines.append(f"  - {len(failures)} {error_type}{retry_note}")
        lines.append(f"    Affected: {', '.join(f.identifier for f in failures)}")

    return "\n".join(lines)
