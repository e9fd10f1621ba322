"""CLI entry point for patchsync."""

import argparse
import asyncio
import inspect
import json
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path

from .config import Config, SourceConfig, load_config
from .engine import SourceResult, SyncEngine, SyncStatus
from .errors import ConfigInvalid, FailureReason
from .fetcher import HttpFetcher
from .preflight import preflight
from .state import load_state

logger = logging.getLogger(__name__)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        # Set by engine and preflight calls via extra={"source": ...}
        if hasattr(record, "source"):
            log_data["source"] = record.source

        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        try:
            return json.dumps(log_data)
        except (TypeError, ValueError):
            log_data["message"] = str(log_data["message"])
            return json.dumps(log_data)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level_map = {
            "warning": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }
        level = level_map.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    logging.basicConfig(level=level, handlers=[handler], force=True)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if level == logging.DEBUG else logging.WARNING)


def _load(args: argparse.Namespace) -> Config | None:
    try:
        return load_config(args.config)
    except ConfigInvalid as e:
        print(f"Error: {e}", file=sys.stderr)
        return None


def _resume_id(source: SourceConfig) -> int:
    if not source.state_path.is_file():
        return 0
    try:
        return load_state(source.state_path)
    except OSError as e:
        logger.warning(f"Can't read {source.state_path}: {e}", extra={"source": source.name})
        return 0


def _print_results(results: list[SourceResult]) -> None:
    print()
    print("Sync Summary")
    print("============")
    for result in results:
        if result.status == SyncStatus.DONE:
            print(f"  {result.source}: done ({result.applied} applied, at patch {result.last_id})")
        else:
            reason = result.reason.value if result.reason else "error"
            print(f"  {result.source}: FAILED [{reason}] {result.error}")
            if result.entry:
                print(f"    in progress: patch {result.entry.id} - {result.entry.filename}")
            print(f"    applied {result.applied}/{result.pending}, state at patch {result.last_id}")


async def cmd_sync(args: argparse.Namespace) -> int:
    """Synchronize configured sources."""
    config = _load(args)
    if config is None:
        return 1

    try:
        sources = config.select(args.server)
    except ConfigInvalid as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not sources:
        print("No servers configured", file=sys.stderr)
        return 1

    results: list[SourceResult] = []

    async with HttpFetcher(
        timeout=config.fetch.timeout_seconds,
        user_agent=config.fetch.user_agent,
    ) as fetcher:
        if not args.skip_preflight:
            problems = await preflight(sources, fetcher)
            ready = []
            for source in sources:
                if problems[source.name]:
                    results.append(
                        SourceResult(
                            source=source.name,
                            status=SyncStatus.FAILED,
                            last_id=_resume_id(source),
                            reason=FailureReason.CONFIG_INVALID,
                            error="; ".join(problems[source.name]),
                            timestamp=datetime.now(),
                        )
                    )
                else:
                    ready.append(source)
            sources = ready

        engine = SyncEngine(fetcher, max_attempts=config.fetch.max_attempts)
        results.extend(await engine.sync_all(sources))

    order = {s.name: i for i, s in enumerate(config.sources)}
    results.sort(key=lambda r: order[r.source])

    if args.report_json:
        print(json.dumps([r.to_dict() for r in results], indent=2))
    else:
        _print_results(results)

    return 0 if all(r.ok for r in results) else 1


async def cmd_check(args: argparse.Namespace) -> int:
    """Run preflight checks without syncing."""
    config = _load(args)
    if config is None:
        return 1

    async with HttpFetcher(
        timeout=config.fetch.timeout_seconds,
        user_agent=config.fetch.user_agent,
    ) as fetcher:
        problems = await preflight(config.sources, fetcher)

    failed = False
    for source in config.sources:
        if problems[source.name]:
            failed = True
            print(f"{source.name}: FAILED")
            for problem in problems[source.name]:
                print(f"  - {problem}")
        else:
            print(f"{source.name}: OK")

    return 1 if failed else 0


def cmd_status(args: argparse.Namespace) -> int:
    """Show the local resume state of each source."""
    config = _load(args)
    if config is None:
        return 1

    status_data = []
    for source in config.sources:
        state_path = source.state_path
        status_data.append(
            {
                "server": source.name,
                "output_dir": str(source.output_dir),
                "state_file": str(state_path),
                "initialized": state_path.exists(),
                "last_id": _resume_id(source),
                "checksum_list": source.checksum_list,
            }
        )

    if args.json:
        print(json.dumps(status_data, indent=2))
        return 0

    print("patchsync Status")
    print("================")
    for entry in status_data:
        print(f"{entry['server']}:")
        print(f"  Output: {entry['output_dir']}")
        if entry["initialized"]:
            print(f"  Last applied patch: {entry['last_id']}")
        else:
            print("  Last applied patch: none (never synced)")
        print(f"  Checksum list: {entry['checksum_list'] or 'not configured'}")

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="patchsync",
        description="Mirror remote patch lists to local directories",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    sync_parser = subparsers.add_parser("sync", help="Download pending patches")
    sync_parser.add_argument(
        "-s", "--server",
        action="append",
        default=None,
        help="Only sync this server (repeatable)",
    )
    sync_parser.add_argument(
        "--skip-preflight",
        action="store_true",
        help="Don't check output directories and remote URIs first",
    )
    sync_parser.add_argument(
        "--report-json",
        action="store_true",
        help="Print the per-server report as JSON",
    )
    sync_parser.set_defaults(func=cmd_sync)

    check_parser = subparsers.add_parser("check", help="Validate config, directories and remotes")
    check_parser.set_defaults(func=cmd_check)

    status_parser = subparsers.add_parser("status", help="Show local resume state")
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Output status as JSON",
    )
    status_parser.set_defaults(func=cmd_status)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose, args.log_level, args.json_logs)

    if not args.command:
        parser.print_help()
        return 1

    func = args.func
    if inspect.iscoroutinefunction(func):
        return asyncio.run(func(args))
    return func(args)


if __name__ == "__main__":
    sys.exit(main())
