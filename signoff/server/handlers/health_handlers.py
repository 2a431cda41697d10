"""
Health and readiness check handlers.
"""

import logging
import time
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from aiohttp import web

from signoff.exceptions import StorageError
from signoff.version import __version__

logger = logging.getLogger("signoff.server.handlers.health")


async def health_check(request: "web.Request") -> "web.Response":
    """
    Health check endpoint.

    Returns a simple OK response to indicate the server is running.
    This endpoint is suitable for load balancer health checks.
    """
    from aiohttp import web

    return web.json_response({
        "status": "healthy",
        "version": __version__,
        "timestamp": time.time(),
    })


async def readiness_check(request: "web.Request") -> "web.Response":
    """
    Readiness check endpoint.

    Checks that the database answers and the workflow service is built.
    The deadline sweeper is reported but does not affect readiness.

    Returns:
        JSON response with readiness status and component checks.
    """
    from aiohttp import web

    app = request.app

    checks: dict[str, dict[str, Any]] = {}
    all_ready = True

    database = app.get("database")
    if database is None:
        checks["database"] = {"status": "not_configured"}
        all_ready = False
    else:
        try:
            info = database.validate_connection()
            checks["database"] = {
                "status": "ready",
                "schema_version": info["schema_version"],
            }
        except StorageError as e:
            checks["database"] = {"status": "error", "message": e.message}
            all_ready = False

    service = app.get("service")
    if service is None:
        checks["workflows"] = {"status": "not_configured"}
        all_ready = False
    else:
        checks["workflows"] = {"status": "ready"}
        checks["sweeper"] = service.sweeper.get_status()

    status_code = 200 if all_ready else 503
    status = "ready" if all_ready else "not_ready"

    if not all_ready:
        logger.warning(f"Readiness check failed: {checks}")

    return web.json_response(
        {
            "status": status,
            "checks": checks,
            "timestamp": time.time(),
        },
        status=status_code,
    )
