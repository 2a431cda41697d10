"""
Serve command for signoff CLI.

Usage:
    signoff serve [--host HOST] [--port PORT]
"""

import argparse
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from signoff.cli.main import CLIContext


def register(subparsers: argparse._SubParsersAction) -> None:  # type: ignore[type-arg]
    """
    Register the serve command with the parser.

    Args:
        subparsers: Subparsers action to add command to.
    """
    parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP API server",
        description="Run the signoff HTTP API with the deadline sweeper in the background.",
    )
    parser.add_argument("--host", help="Host address to bind to (default: from config)")
    parser.add_argument("--port", type=int, help="Port to listen on (default: from config)")
    parser.set_defaults(func=run_serve)


def run_serve(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the serve command."""
    from signoff.cli.main import EXIT_SUCCESS
    from signoff.logging_config import configure_logging
    from signoff.server.app import create_app, run_server

    config = ctx.config
    if args.host:
        config.server.host = args.host
    if args.port:
        config.server.port = args.port

    configure_logging(config.logging)

    run_server(create_app(config), config=config)
    return EXIT_SUCCESS
