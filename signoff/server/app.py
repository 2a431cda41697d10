"""
signoff HTTP server application.

This module provides the application factory and server runner for the
signoff HTTP API.

Example:
    Running the server::

        from signoff.server import create_app, run_server
        from signoff.config import load_config

        config = load_config()
        app = create_app(config)
        run_server(app, config=config)
"""

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aiohttp import web

from signoff.config.schema import SignoffConfig
from signoff.storage.database import Database

logger = logging.getLogger("signoff.server")


class SignoffApplication:
    """
    signoff HTTP application.

    Wraps the aiohttp application with signoff-specific setup and
    lifecycle management. Startup builds the database, repositories,
    notification manager, workflow service and sweeper timer; cleanup
    stops the timer and closes the database.

    A prebuilt, initialized Database may be passed in. It is then left
    open on cleanup, so the caller keeps ownership of it.

    Example:
        Creating and running the application::

            app = SignoffApplication(load_config())
            app.run()
    """

    def __init__(
        self,
        config: SignoffConfig | None = None,
        database: Database | None = None,
    ) -> None:
        """
        Initialize the application.

        Args:
            config: signoff configuration.
            database: Initialized database to use instead of opening
                the configured one.
        """
        self._config = config or SignoffConfig()
        self._database = database
        self._owns_database = database is None
        self._app: "web.Application | None" = None
        self._runner: "web.AppRunner | None" = None
        self._site: "web.TCPSite | None" = None

    @property
    def config(self) -> SignoffConfig:
        return self._config

    @property
    def app(self) -> "web.Application":
        """Get the aiohttp application, creating it if needed."""
        if self._app is None:
            self._app = self._create_app()
        return self._app

    def _create_app(self) -> "web.Application":
        """Create and configure the aiohttp application."""
        from aiohttp import web

        from signoff.server.middleware import (
            create_cors_middleware,
            create_error_handler_middleware,
            create_identity_middleware,
            create_request_id_middleware,
            create_request_logging_middleware,
            create_timeout_middleware,
        )
        from signoff.server.routes import setup_routes

        server = self._config.server
        middlewares = []

        # Request ID middleware (first, so all subsequent middleware have access)
        middlewares.append(create_request_id_middleware())

        middlewares.append(create_error_handler_middleware())

        if server.cors_origins:
            middlewares.append(create_cors_middleware(allowed_origins=server.cors_origins))

        middlewares.append(create_request_logging_middleware())

        middlewares.append(create_identity_middleware(header_name=server.user_header))

        middlewares.append(create_timeout_middleware(server.request_timeout_seconds))

        app = web.Application(middlewares=middlewares)
        app["config"] = self._config

        setup_routes(app)

        app.on_startup.append(self._on_startup)
        app.on_cleanup.append(self._on_cleanup)

        return app

    async def _on_startup(self, app: "web.Application") -> None:
        """Initialize application resources on startup."""
        from signoff.notifications.manager import NotificationManager
        from signoff.storage.repositories import (
            DocumentRepository,
            NotificationRepository,
            UserRepository,
        )
        from signoff.workflows.service import ApprovalWorkflowService

        logger.info("Starting signoff server...")

        try:
            database = self._database
            if database is None:
                database = Database(
                    path=self._config.database.path,
                    pool_size=self._config.database.pool_size,
                    timeout=self._config.database.timeout_seconds,
                )
                database.initialize()
                self._database = database
                logger.info(f"Database initialized: {self._config.database.path}")
            app["database"] = database

            app["user_repository"] = UserRepository(database)
            app["document_repository"] = DocumentRepository(database)

            manager = NotificationManager.from_config(
                self._config.notifications,
                repository=NotificationRepository(database),
            )
            app["notification_manager"] = manager

            service = ApprovalWorkflowService.from_database(
                database,
                self._config,
                sink=manager,
            )
            app["service"] = service

            if self._config.workflow.sweep_enabled:
                service.sweeper.start(self._config.workflow.sweep_interval_seconds)

            logger.info("signoff server started successfully")

        except Exception as e:
            logger.error(f"Failed to initialize server: {e}")
            raise

    async def _on_cleanup(self, app: "web.Application") -> None:
        """Clean up application resources on shutdown."""
        logger.info("Shutting down signoff server...")

        service = app.get("service")
        if service is not None:
            service.sweeper.stop()

        database = app.get("database")
        if database is not None and self._owns_database:
            database.close()
            self._database = None
            logger.info("Database connection closed")

        logger.info("signoff server shut down")

    async def start(self) -> None:
        """Start the server (async)."""
        from aiohttp import web

        self._runner = web.AppRunner(self.app)
        await self._runner.setup()

        server = self._config.server
        self._site = web.TCPSite(self._runner, server.host, server.port)
        await self._site.start()

        logger.info(f"Server listening on http://{server.host}:{server.port}")

    async def stop(self) -> None:
        """Stop the server (async)."""
        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()

    def run(self) -> None:
        """Run the server (blocking)."""
        from aiohttp import web

        web.run_app(
            self.app,
            host=self._config.server.host,
            port=self._config.server.port,
            print=lambda msg: logger.info(msg),
        )


def create_app(
    config: SignoffConfig | None = None,
    database: Database | None = None,
) -> "web.Application":
    """
    Create a signoff HTTP application.

    Args:
        config: signoff configuration.
        database: Initialized database to serve instead of the configured one.

    Returns:
        Configured aiohttp Application.
    """
    return SignoffApplication(config, database).app


def run_server(
    app: "web.Application | None" = None,
    host: str | None = None,
    port: int | None = None,
    config: SignoffConfig | None = None,
) -> None:
    """
    Run the signoff HTTP server (blocking).

    Args:
        app: Pre-created application (optional).
        host: Host address to bind to; defaults to the configured host.
        port: Port number to listen on; defaults to the configured port.
        config: signoff configuration (used if app not provided).
    """
    from aiohttp import web

    config = config or SignoffConfig()
    host = host or config.server.host
    port = port or config.server.port

    if app is None:
        app = create_app(config)

    logger.info(f"Starting signoff server on http://{host}:{port}")

    web.run_app(
        app,
        host=host,
        port=port,
        print=lambda msg: logger.info(msg),
    )


async def run_server_async(
    app: "web.Application | None" = None,
    host: str | None = None,
    port: int | None = None,
    config: SignoffConfig | None = None,
    shutdown_event: asyncio.Event | None = None,
) -> None:
    """
    Run the signoff HTTP server until ``shutdown_event`` is set.

    Args:
        app: Pre-created application (optional).
        host: Host address to bind to.
        port: Port number to listen on.
        config: signoff configuration (used if app not provided).
        shutdown_event: Event to signal shutdown; runs forever when None.
    """
    from aiohttp import web

    config = config or SignoffConfig()
    host = host or config.server.host
    port = port or config.server.port

    if app is None:
        app = create_app(config)

    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"Server listening on http://{host}:{port}")

    try:
        if shutdown_event:
            await shutdown_event.wait()
        else:
            while True:
                await asyncio.sleep(3600)
    finally:
        await runner.cleanup()
