"""Command-line interface for querying an OpenTSDB datasource.

Builds a datasource from a JSON config file, ``--url`` or the
``OPENTSDB_DS_URL`` environment variable, runs one operation and prints the
result as JSON.

Usage
-----
    opentsdb-datasource --url http://localhost:4242 query \\
        --metric sys.cpu.user --tag host=* --from now-1h
    opentsdb-datasource --config config.json find "sys.*{host=*}"
    opentsdb-datasource --config config.json annotations --dashboard dash.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .adapters import log_datasource_status, register_datasource
from .adapters.opentsdb import OpenTSDBDatasource
from .config.models import AppConfig, DatasourceConfig, EnvSettings
from .domain.utils.labels import make_expander
from .observability import setup_logging
from .schemas.opentsdb_contract import (
    Dashboard,
    LookupType,
    QueryOptions,
    QueryTarget,
    RawTimeRange,
)
from .services.annotations import AnnotationsService, LoggingAlertSink
from .utils.partial_results import PartialResult, format_failure_summary


def _parse_pairs(pairs: Optional[Sequence[str]], what: str) -> Dict[str, str]:
    """Parse ``NAME=VALUE`` arguments into an ordered dict."""
    result: Dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid {what} {pair!r}, expected NAME=VALUE")
        result[key] = value
    return result


def _datasource_config(args: argparse.Namespace) -> DatasourceConfig:
    if args.config:
        return AppConfig.load(Path(args.config)).resolve(args.datasource)
    env = EnvSettings()
    url = args.url or env.url
    if not url:
        raise ValueError(
            "No datasource configured: use --config, --url or OPENTSDB_DS_URL"
        )
    return DatasourceConfig(url=url, timeout_seconds=env.timeout_seconds)


def build_datasource(args: argparse.Namespace) -> OpenTSDBDatasource:
    """Create the datasource selected by the command-line arguments."""
    cfg = _datasource_config(args)
    variables = dict(cfg.variables)
    variables.update(_parse_pairs(args.var, "variable"))
    return OpenTSDBDatasource(
        cfg.url,
        cfg.name,
        cfg.timeout_seconds,
        expand=make_expander(variables),
        suggest_max=cfg.suggest_max,
    )


def _target_from_args(args: argparse.Namespace) -> QueryTarget:
    return QueryTarget(
        metric=getattr(args, "metric", None),
        tags=_parse_pairs(getattr(args, "tag", None), "tag"),
        aggregator=getattr(args, "aggregator", None),
        should_compute_rate=getattr(args, "rate", False),
        is_counter=getattr(args, "counter", False),
        counter_max=getattr(args, "counter_max", None),
        counter_reset_value=getattr(args, "counter_reset_value", None),
        should_downsample=bool(getattr(args, "downsample_interval", None)),
        downsample_interval=getattr(args, "downsample_interval", None),
        downsample_aggregator=getattr(args, "downsample_aggregator", "avg"),
        alias=getattr(args, "alias", None),
        current_tag_key=getattr(args, "current_tag_key", None),
        current_tag_value=getattr(args, "current_tag_value", None),
    )


def _load_targets(path: str) -> List[QueryTarget]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return [QueryTarget.model_validate(item) for item in data]


async def _run(args: argparse.Namespace, datasource: OpenTSDBDatasource) -> Any:
    """Run the selected subcommand and return a JSON-serializable result."""
    command = args.command
    if command == "query":
        targets = _load_targets(args.targets) if args.targets else [
            _target_from_args(args)
        ]
        options = QueryOptions(
            range=RawTimeRange(from_=args.from_, to=args.to), targets=targets
        )
        response = await datasource.query(options)
        return response.model_dump()["data"]

    if command == "suggest":
        return await datasource.perform_suggest_query(
            args.query, LookupType(args.type), _target_from_args(args)
        )

    if command == "lookup":
        return await datasource.perform_search_lookup(
            LookupType(args.type), _target_from_args(args)
        )

    if command == "find":
        results = await datasource.metric_find_query(args.query)
        return [item.model_dump() for item in results]

    if command == "annotations":
        register_datasource(datasource.name, datasource, default=True)
        log_datasource_status()
        dashboard = Dashboard.model_validate(
            json.loads(Path(args.dashboard).read_text(encoding="utf-8"))
        )
        service = AnnotationsService(alerts=LoggingAlertSink())
        annotations = await service.get_annotations(
            RawTimeRange(from_=args.from_, to=args.to), dashboard
        )
        if service.errors:
            summary = PartialResult(
                successes={"annotations": annotations}, failures=service.errors
            )
            print(format_failure_summary(summary, "annotation source"), file=sys.stderr)
        if annotations is None:
            return None
        return [item.model_dump(by_alias=True) for item in annotations]

    raise ValueError(f"Unknown command {command!r}")


async def _main_async(args: argparse.Namespace) -> Any:
    datasource = build_datasource(args)
    async with datasource:
        return await _run(args, datasource)


def _add_target_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--metric", help="Metric name")
    parser.add_argument(
        "--tag", action="append", metavar="KEY=VALUE", help="Tag filter (repeatable)"
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="opentsdb-datasource", description="OpenTSDB datasource CLI"
    )
    parser.add_argument("--config", help="Path to JSON app config")
    parser.add_argument("--datasource", help="Datasource name from the config")
    parser.add_argument("--url", help="OpenTSDB base URL (overrides environment)")
    parser.add_argument(
        "--var",
        action="append",
        metavar="NAME=VALUE",
        help="Template variable (repeatable)",
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        choices=["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"],
        help="Logging level (overrides environment)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (once sets DEBUG)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    query = sub.add_parser("query", help="Run a time series query")
    _add_target_arguments(query)
    query.add_argument("--targets", help="JSON file with a list of targets")
    query.add_argument("--aggregator", help="Aggregator (default avg)")
    query.add_argument("--rate", action="store_true", help="Compute rate")
    query.add_argument("--counter", action="store_true", help="Treat as counter")
    query.add_argument("--counter-max", dest="counter_max")
    query.add_argument("--counter-reset-value", dest="counter_reset_value")
    query.add_argument("--downsample-interval", dest="downsample_interval")
    query.add_argument(
        "--downsample-aggregator", dest="downsample_aggregator", default="avg"
    )
    query.add_argument("--alias", help="Alias template, e.g. '$metric $host'")
    query.add_argument("--from", dest="from_", default="now-1h")
    query.add_argument("--to", default="now")

    for name, help_text in (
        ("suggest", "Autocomplete metrics, tag keys or tag values"),
        ("lookup", "Look up metrics, tag keys or tag values for a target"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("type", choices=[t.value for t in LookupType])
        if name == "suggest":
            cmd.add_argument("query", help="Prefix to complete")
        _add_target_arguments(cmd)
        cmd.add_argument("--current-tag-key", dest="current_tag_key")
        cmd.add_argument("--current-tag-value", dest="current_tag_value")

    find = sub.add_parser("find", help="Resolve a template variable query")
    find.add_argument("query", help="e.g. 'sys.*{host=*}'")

    annotations = sub.add_parser("annotations", help="Fetch dashboard annotations")
    annotations.add_argument("--dashboard", required=True, help="Dashboard JSON file")
    annotations.add_argument("--from", dest="from_", default="now-6h")
    annotations.add_argument("--to", default="now")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)

    env_level = EnvSettings().log_level.upper()
    effective_level = args.log_level or ("DEBUG" if args.verbose > 0 else env_level)
    setup_logging(effective_level)

    try:
        result = asyncio.run(_main_async(args))
    except (ValueError, KeyError, httpx.HTTPError) as exc:
        parser.exit(2, f"{parser.prog}: error: {exc}\n")

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
