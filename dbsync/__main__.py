"""CLI entry point for dbsync."""

import argparse
import json
import logging
import os
import sys
from datetime import datetime
from pathlib import Path

from .config import ConfigError, load_config
from .discovery import ModelDiscovery, resolve_model, table_name_for
from .registrar import setup_sync


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

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (error, warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level_map = {
            "error": logging.ERROR,
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
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )


def _print_table(headers: list[str], rows: list[list[str]]) -> None:
    """Print rows as a simple aligned table."""
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    border = "+" + "+".join("-" * (w + 2) for w in widths) + "+"

    def line(cells: list[str]) -> str:
        return "| " + " | ".join(c.ljust(w) for c, w in zip(cells, widths)) + " |"

    print(border)
    print(line(headers))
    print(border)
    for row in rows:
        print(line(row))
    print(border)


def _describe_model(descriptor: str) -> list[str]:
    try:
        return [descriptor, table_name_for(resolve_model(descriptor))]
    except Exception as e:
        return [descriptor, f"Error: {e}"]


def cmd_discover(args: argparse.Namespace) -> int:
    """List discovered models and their tables."""
    config = load_config(args.config)

    models = sorted(ModelDiscovery(config.discovery).discover())
    rows = [_describe_model(descriptor) for descriptor in models]

    if args.json:
        print(json.dumps(
            [{"model": model, "table": table} for model, table in rows],
            indent=2,
        ))
        return 0

    print("Discovering models...")
    _print_table(["Model Class", "Table"], rows)
    print(f"Found {len(models)} models")
    return 0


def cmd_register(args: argparse.Namespace) -> int:
    """Register all discovered models for sync."""
    config = load_config(args.config)

    if not args.json:
        print("Registering models for sync...")
    registrar = setup_sync(config)
    if not config.sync.enabled:
        # setup_sync only registers when sync is enabled
        registrar.register_all()

    registered = registrar.registered_models
    if args.json:
        print(json.dumps({"registered_models": registered}, indent=2))
    else:
        print(f"Registered {len(registered)} models for sync")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Show sync settings and registered models."""
    config = load_config(args.config)
    registrar = setup_sync(config)
    status = registrar.get_status()

    if args.json:
        print(json.dumps(status, indent=2))
        return 0

    print("Database Sync Status:")
    print(f"Enabled: {'Yes' if status['enabled'] else 'No'}")
    print(f"Endpoint: {status['endpoint']}")
    print(f"Registered Models: {status['registered_count']}")

    if status["registered_models"]:
        _print_table(["Model"], [[m] for m in status["registered_models"]])

    return 0


SYNC_COMMANDS = {
    "discover": cmd_discover,
    "register": cmd_register,
    "status": cmd_status,
}


def cmd_sync(args: argparse.Namespace) -> int:
    """Dispatch a sync action."""
    func = SYNC_COMMANDS.get(args.action)
    if func is None:
        print(
            "Invalid action. Use: discover, register, or status",
            file=sys.stderr,
        )
        return 1

    try:
        return func(args)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="dbsync",
        description="Forward database model changes to a sync endpoint",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: dbsync.yaml if present)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["error", "warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Sync command
    sync_parser = subparsers.add_parser("sync", help="Manage database synchronization")
    sync_parser.add_argument(
        "action",
        help="One of: " + ", ".join(SYNC_COMMANDS),
    )
    sync_parser.add_argument(
        "--json",
        action="store_true",
        help="Output report as JSON",
    )
    sync_parser.set_defaults(func=cmd_sync)

    args = parser.parse_args(argv)

    setup_logging(args.verbose, args.log_level, args.json_logs)

    if not args.command:
        parser.print_help()
        return 1

    # Application packages under the working directory must be importable
    if os.getcwd() not in sys.path:
        sys.path.insert(0, os.getcwd())

    if args.config is None and Path("dbsync.yaml").exists():
        args.config = Path("dbsync.yaml")

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
