"""
Initialize command for signoff CLI.

This module implements the 'signoff init' command which sets up
a new signoff database and configuration file.

Usage:
    signoff init [--path PATH] [--force]
"""

import argparse
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from signoff.cli.main import CLIContext


CONFIG_TEMPLATE = """# signoff configuration
# =====================
# Values may reference environment variables as ${VAR} or ${VAR:-default}.
# Every key can also be overridden with SIGNOFF_<SECTION>_<KEY>.

environment: development

database:
  path: signoff.db
  pool_size: 5
  timeout_seconds: 30.0

workflow:
  sweep_enabled: true
  sweep_interval_seconds: 300
  clear_overdue_on_reset: true
  notify_overdue_workflows_once: true

notifications:
  enabled: true
  channel: log
  webhook_url: ""
  webhook_timeout_seconds: 10.0
  deadline_recipient_id: ""
  store_in_app: true

logging:
  level: INFO
  format: text
  file: ""

server:
  host: 127.0.0.1
  port: 8080
  user_header: X-User-ID
  cors_origins: []
  request_timeout_seconds: 30.0
"""


def register(subparsers: argparse._SubParsersAction) -> None:  # type: ignore[type-arg]
    """
    Register the init command with the parser.

    Args:
        subparsers: Subparsers action to add command to.
    """
    parser = subparsers.add_parser(
        "init",
        help="Initialize a new signoff database and config",
        description="Initialize a signoff project directory with a database and configuration.",
    )
    parser.add_argument(
        "--path",
        "-p",
        metavar="PATH",
        default=".",
        help="Directory to initialize (default: current directory)",
    )
    parser.add_argument(
        "--force",
        "-F",
        action="store_true",
        help="Overwrite existing files",
    )
    parser.set_defaults(func=run_init)


def run_init(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """
    Execute the init command.

    Args:
        args: Parsed command-line arguments.
        ctx: CLI context.

    Returns:
        Exit code.
    """
    from signoff.cli.main import EXIT_ERROR, EXIT_SUCCESS

    target_path = Path(args.path).resolve()

    ctx.print(f"Initializing signoff in: {target_path}")

    if not target_path.exists():
        target_path.mkdir(parents=True)
        ctx.print(f"  Created directory: {target_path}")

    config_file = target_path / "signoff.yaml"
    db_file = target_path / "signoff.db"

    existing_files = [str(f) for f in (config_file, db_file) if f.exists()]
    if existing_files and not args.force:
        ctx.print_error("The following files already exist:")
        for f in existing_files:
            ctx.print_error(f"  - {f}")
        ctx.print_error("Use --force to overwrite, or choose a different path.")
        return EXIT_ERROR

    config_file.write_text(CONFIG_TEMPLATE)
    ctx.print(f"  Created configuration: {config_file}")

    _init_database(db_file, ctx)

    ctx.print("")
    ctx.print("signoff initialized successfully.")
    ctx.print("")
    ctx.print("Next steps:")
    ctx.print("  1. Edit signoff.yaml to customize configuration")
    ctx.print("  2. Register users and documents with 'signoff directory'")
    ctx.print("  3. Run 'signoff status' to verify setup")

    return EXIT_SUCCESS


def _init_database(db_file: Path, ctx: "CLIContext") -> None:
    from signoff.storage.database import Database

    if db_file.exists():
        db_file.unlink()

    db = Database(path=str(db_file))
    try:
        db.initialize()
        ctx.print(f"  Initialized database: {db_file}")
    finally:
        db.close()
