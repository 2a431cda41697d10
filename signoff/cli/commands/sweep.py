"""
Sweep command for signoff CLI.

This module implements the 'signoff sweep' command which flags overdue
steps and workflows and sends their notifications.

Usage:
    signoff sweep
    signoff sweep --now 2026-01-01T00:00:00+00:00
    signoff sweep --watch [--interval SECONDS]
"""

import argparse
import time
from typing import TYPE_CHECKING

from signoff.exceptions import BadRequestError

if TYPE_CHECKING:
    from signoff.cli.main import CLIContext
    from signoff.workflows.sweeper import SweepResult


def register(subparsers: argparse._SubParsersAction) -> None:  # type: ignore[type-arg]
    """
    Register the sweep command with the parser.

    Args:
        subparsers: Subparsers action to add command to.
    """
    parser = subparsers.add_parser(
        "sweep",
        help="Flag overdue steps and workflows",
        description="Run the deadline sweeper once, or repeatedly with --watch.",
    )
    parser.add_argument(
        "--now",
        metavar="TIMESTAMP",
        help="Reference time for the sweep (ISO 8601, default: current time)",
    )
    parser.add_argument(
        "--watch",
        "-w",
        action="store_true",
        help="Keep sweeping until interrupted",
    )
    parser.add_argument(
        "--interval",
        type=float,
        help="Seconds between sweeps with --watch (default: from config)",
    )
    parser.set_defaults(func=run_sweep)


def run_sweep(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the sweep command."""
    from signoff.cli.main import EXIT_SUCCESS
    from signoff.models.base import parse_datetime

    try:
        now = parse_datetime(args.now)
    except ValueError as e:
        raise BadRequestError(f"Invalid timestamp '{args.now}'") from e

    _report(ctx.service.sweep_overdue(now), ctx)

    if not args.watch:
        return EXIT_SUCCESS

    interval = args.interval or ctx.config.workflow.sweep_interval_seconds
    ctx.print(f"Sweeping every {interval}s. Press Ctrl+C to stop.")
    try:
        while True:
            time.sleep(interval)
            _report(ctx.service.sweep_overdue(), ctx)
    except KeyboardInterrupt:
        ctx.print("Stopped.")
    return EXIT_SUCCESS


def _report(result: "SweepResult", ctx: "CLIContext") -> None:
    if ctx.output_format != "table":
        ctx.emit(result.to_dict())
        return
    ctx.print(
        f"[{result.swept_at.isoformat()}] "
        f"{len(result.overdue_steps)} step(s) and "
        f"{len(result.overdue_workflows)} workflow(s) newly overdue"
    )
    for step in result.overdue_steps:
        ctx.print(f"  step {step.id} of workflow {step.workflow_id} (approver {step.approver_id})")
    for workflow in result.overdue_workflows:
        ctx.print(f"  workflow {workflow.id} (document {workflow.document_id})")
