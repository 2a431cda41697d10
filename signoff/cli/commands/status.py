"""
Status command for signoff CLI.

This module implements the 'signoff status' command which displays
configuration, database health and workflow statistics.

Usage:
    signoff status
    signoff status --detailed
    signoff status --check
"""

import argparse
from typing import TYPE_CHECKING, Any

from signoff.exceptions import SignoffError

if TYPE_CHECKING:
    from signoff.cli.main import CLIContext


def register(subparsers: argparse._SubParsersAction) -> None:  # type: ignore[type-arg]
    """
    Register the status command with the parser.

    Args:
        subparsers: Subparsers action to add command to.
    """
    parser = subparsers.add_parser(
        "status",
        help="Show system status",
        description="Display signoff configuration, database health and statistics.",
    )
    parser.add_argument(
        "--detailed",
        action="store_true",
        help="Show workflow statistics",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Exit with non-zero status when a check fails",
    )
    parser.set_defaults(func=run_status)


def run_status(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the status command."""
    from signoff.cli.main import EXIT_ERROR, EXIT_SUCCESS

    status_data: dict[str, Any] = {
        "configuration": _check_config(ctx),
    }
    if status_data["configuration"]["healthy"]:
        status_data["database"] = _check_database(ctx)
    else:
        status_data["database"] = {"healthy": False, "error": "Configuration not loaded"}

    all_healthy = all(section["healthy"] for section in status_data.values())

    if args.detailed and status_data["database"]["healthy"]:
        status_data["statistics"] = ctx.service.get_statistics().to_dict()

    if ctx.output_format == "table":
        _print_status_table(status_data, ctx)
    else:
        ctx.emit(status_data)

    if args.check and not all_healthy:
        return EXIT_ERROR
    return EXIT_SUCCESS


def _check_config(ctx: "CLIContext") -> dict[str, Any]:
    try:
        config = ctx.config
    except SignoffError as e:
        return {"healthy": False, "error": e.message}
    return {
        "healthy": True,
        "environment": config.environment,
        "path": ctx.config_path or "(default)",
        "notification_channel": config.notifications.channel,
    }


def _check_database(ctx: "CLIContext") -> dict[str, Any]:
    try:
        db = ctx.database
        if not db.health_check():
            return {"healthy": False, "error": "Database health check failed"}
        validation = db.validate_connection()
    except SignoffError as e:
        return {"healthy": False, "error": e.message}

    return {
        "healthy": True,
        "path": validation["path"],
        "schema_version": validation["schema_version"],
        "journal_mode": validation["journal_mode"],
        "table_count": validation["table_count"],
    }


def _print_status_table(status_data: dict[str, Any], ctx: "CLIContext") -> None:
    ctx.print("signoff Status")
    ctx.print("=" * 50)
    ctx.print("")

    config = status_data["configuration"]
    ctx.print(f"Configuration: {'[OK]' if config['healthy'] else '[FAIL]'}")
    if config["healthy"]:
        ctx.print(f"  Environment: {config['environment']}")
        ctx.print(f"  Config path: {config['path']}")
        ctx.print(f"  Notification channel: {config['notification_channel']}")
    else:
        ctx.print(f"  Error: {config['error']}")
    ctx.print("")

    db = status_data["database"]
    ctx.print(f"Database: {'[OK]' if db['healthy'] else '[FAIL]'}")
    if db["healthy"]:
        ctx.print(f"  Path: {db['path']}")
        ctx.print(f"  Schema version: {db['schema_version']}")
        ctx.print(f"  Journal mode: {db['journal_mode']}")
        ctx.print(f"  Tables: {db['table_count']}")
    else:
        ctx.print(f"  Error: {db['error']}")

    stats = status_data.get("statistics")
    if stats:
        ctx.print("")
        ctx.print("Statistics:")
        ctx.print(f"  Workflows: {stats['total_workflows']}")
        for status, count in stats["workflows_by_status"].items():
            ctx.print(f"    {status}: {count}")
        ctx.print(f"  Steps: {stats['total_steps']}")
        ctx.print(f"  Overdue steps: {stats['overdue_steps']}")

    ctx.print("")
