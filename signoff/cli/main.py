"""
Main entry point for the signoff CLI.

This module provides the main command-line interface for signoff
using argparse for argument parsing. It supports global options,
subcommands, and proper exit codes.

Exit Codes:
    0: Success
    1: General error
    2: Invalid request or validation error
    3: Configuration error
    4: Not found
    5: Forbidden
    6: Conflict
"""

import argparse
import logging
import sys
from typing import TYPE_CHECKING, Any

from signoff.exceptions import (
    ConfigurationError,
    ErrorKind,
    SignoffError,
    WorkflowError,
)
from signoff.version import __version__

if TYPE_CHECKING:
    from signoff.config.schema import SignoffConfig
    from signoff.notifications.manager import NotificationManager
    from signoff.storage.database import Database
    from signoff.workflows.service import ApprovalWorkflowService

# Exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_VALIDATION_ERROR = 2
EXIT_CONFIG_ERROR = 3
EXIT_NOT_FOUND = 4
EXIT_FORBIDDEN = 5
EXIT_CONFLICT = 6

EXIT_CODES_BY_KIND = {
    ErrorKind.BAD_REQUEST: EXIT_VALIDATION_ERROR,
    ErrorKind.NOT_FOUND: EXIT_NOT_FOUND,
    ErrorKind.FORBIDDEN: EXIT_FORBIDDEN,
    ErrorKind.CONFLICT: EXIT_CONFLICT,
}


class CLIContext:
    """
    Context object that holds CLI state and configuration.

    Configuration, database, notification manager and service are built
    lazily on first use, so commands that need none of them (``init``)
    never touch the database.

    Attributes:
        config_path: Path to the configuration file.
        database_path: Path to the database file.
        verbose: Enable verbose output.
        quiet: Suppress non-essential output.
        output_format: Output format (table, json, yaml).
    """

    def __init__(
        self,
        config_path: str | None = None,
        database_path: str | None = None,
        verbose: bool = False,
        quiet: bool = False,
        output_format: str = "table",
    ) -> None:
        """
        Initialize the CLI context.

        Args:
            config_path: Path to configuration file.
            database_path: Path to database file.
            verbose: Enable verbose output.
            quiet: Suppress non-essential output.
            output_format: Output format.
        """
        self.config_path = config_path
        self.database_path = database_path
        self.verbose = verbose
        self.quiet = quiet
        self.output_format = output_format
        self._config: "SignoffConfig | None" = None
        self._database: "Database | None" = None
        self._notifications: "NotificationManager | None" = None
        self._service: "ApprovalWorkflowService | None" = None
        self._logger: logging.Logger | None = None

    @property
    def config(self) -> "SignoffConfig":
        """
        Load and return configuration.

        Raises:
            ConfigurationError: If configuration cannot be loaded.
        """
        if self._config is None:
            from signoff.config.loader import ConfigLoader

            loader = ConfigLoader()
            self._config = loader.load(self.config_path)

            # Override database path if specified
            if self.database_path:
                self._config.database.path = self.database_path

        return self._config

    @property
    def database(self) -> "Database":
        """
        Get an initialized database connection.

        Raises:
            StorageError: If database connection fails.
        """
        if self._database is None:
            from signoff.storage.database import Database

            database = Database(
                path=self.config.database.path,
                pool_size=self.config.database.pool_size,
                timeout=self.config.database.timeout_seconds,
            )
            database.initialize()
            self._database = database
        return self._database

    @property
    def notifications(self) -> "NotificationManager":
        """Get the notification manager backed by the in-app inbox."""
        if self._notifications is None:
            from signoff.notifications.manager import NotificationManager
            from signoff.storage.repositories import NotificationRepository

            self._notifications = NotificationManager.from_config(
                self.config.notifications,
                repository=NotificationRepository(self.database),
            )
        return self._notifications

    @property
    def service(self) -> "ApprovalWorkflowService":
        """Get the approval workflow service."""
        if self._service is None:
            from signoff.workflows.service import ApprovalWorkflowService

            self._service = ApprovalWorkflowService.from_database(
                self.database,
                self.config,
                sink=self.notifications,
            )
        return self._service

    @property
    def logger(self) -> logging.Logger:
        """Get configured logger."""
        if self._logger is None:
            self._logger = logging.getLogger("signoff.cli")
            level = logging.DEBUG if self.verbose else logging.INFO
            if self.quiet:
                level = logging.WARNING
            self._logger.setLevel(level)

            if not self._logger.handlers:
                handler = logging.StreamHandler(sys.stderr)
                handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
                self._logger.addHandler(handler)

        return self._logger

    def print(self, message: str, error: bool = False) -> None:
        """
        Print a message to stdout or stderr.

        Args:
            message: The message to print.
            error: If True, print to stderr.
        """
        if self.quiet and not error:
            return
        output = sys.stderr if error else sys.stdout
        print(message, file=output)

    def print_error(self, message: str) -> None:
        """Print an error message to stderr."""
        print(f"Error: {message}", file=sys.stderr)

    def emit(self, data: Any, title: str | None = None) -> None:
        """Print data in the selected output format."""
        from signoff.cli.formatters import format_output

        self.print(format_output(data, self.output_format, title=title))

    def cleanup(self) -> None:
        """Clean up resources."""
        if self._service is not None:
            self._service.sweeper.stop()
        if self._database is not None:
            self._database.close()


def create_parser() -> argparse.ArgumentParser:
    """
    Create the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance.
    """
    parser = argparse.ArgumentParser(
        prog="signoff",
        description="signoff: multi-step document approval workflows",
        epilog="Use 'signoff <command> --help' for more information on a command.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Global options
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"signoff {__version__}",
    )
    parser.add_argument(
        "-c",
        "--config",
        metavar="PATH",
        help="Path to configuration file",
    )
    parser.add_argument(
        "-d",
        "--database",
        metavar="PATH",
        help="Path to database file (overrides config)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Suppress non-essential output",
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=["table", "json", "yaml"],
        default="table",
        help="Output format (default: table)",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        metavar="<command>",
    )

    _register_commands(subparsers)

    return parser


def _register_commands(subparsers: argparse._SubParsersAction) -> None:  # type: ignore[type-arg]
    """
    Register all command modules with the parser.

    Args:
        subparsers: Subparsers action to add commands to.
    """
    from signoff.cli.commands import directory as directory_cmd
    from signoff.cli.commands import init as init_cmd
    from signoff.cli.commands import serve as serve_cmd
    from signoff.cli.commands import status as status_cmd
    from signoff.cli.commands import sweep as sweep_cmd
    from signoff.cli.commands import workflow as workflow_cmd

    init_cmd.register(subparsers)
    status_cmd.register(subparsers)
    directory_cmd.register(subparsers)
    workflow_cmd.register(subparsers)
    sweep_cmd.register(subparsers)
    serve_cmd.register(subparsers)


def _print_details(ctx: CLIContext, error: SignoffError) -> None:
    if ctx.verbose and error.details:
        ctx.print_error(f"Details: {error.details}")


def run_command(
    args: argparse.Namespace,
    ctx: CLIContext,
) -> int:
    """
    Execute the selected command.

    Args:
        args: Parsed command-line arguments.
        ctx: CLI context object.

    Returns:
        Exit code.
    """
    if not hasattr(args, "func"):
        return EXIT_ERROR

    try:
        return args.func(args, ctx)
    except ConfigurationError as e:
        ctx.print_error(e.message)
        _print_details(ctx, e)
        return EXIT_CONFIG_ERROR
    except WorkflowError as e:
        ctx.print_error(e.message)
        _print_details(ctx, e)
        return EXIT_CODES_BY_KIND[e.kind]
    except SignoffError as e:
        ctx.print_error(e.message)
        _print_details(ctx, e)
        return EXIT_ERROR
    except KeyboardInterrupt:
        ctx.print("\nOperation cancelled.", error=True)
        return EXIT_ERROR
    except Exception as e:
        ctx.print_error(f"Unexpected error: {e}")
        if ctx.verbose:
            import traceback

            traceback.print_exc()
        return EXIT_ERROR


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:]).

    Returns:
        Exit code.
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_SUCCESS

    ctx = CLIContext(
        config_path=args.config,
        database_path=args.database,
        verbose=args.verbose,
        quiet=args.quiet,
        output_format=args.format,
    )

    try:
        return run_command(args, ctx)
    finally:
        ctx.cleanup()


if __name__ == "__main__":
    sys.exit(main())
