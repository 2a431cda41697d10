"""
HTTP server module for signoff.

This module provides an HTTP API over the approval workflow service.
It uses aiohttp for async HTTP handling. The acting user is read from
a request header set by an authenticating proxy.

Example:
    Running the server::

        from signoff.server import create_app, run_server
        from signoff.config import load_config

        config = load_config()
        run_server(create_app(config), config=config)

    Or from the command line::

        signoff serve --host 0.0.0.0 --port 8080

Components:
    - app: Application factory and runner
    - routes: API route definitions
    - middleware: HTTP middleware (request ids, errors, identity, logging)
"""

from signoff.server.app import (
    SignoffApplication,
    create_app,
    run_server,
    run_server_async,
)

__all__ = [
    "SignoffApplication",
    "create_app",
    "run_server",
    "run_server_async",
]
