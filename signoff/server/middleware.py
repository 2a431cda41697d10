"""
HTTP middleware for signoff server.

This module provides middleware components for the HTTP server including
request ids, error handling, CORS, request logging, the acting-user
header and request timeouts.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Awaitable, Callable

if TYPE_CHECKING:
    from aiohttp import web

from signoff.exceptions import (
    ConfigurationError,
    ErrorKind,
    SignoffError,
    StorageError,
    WorkflowError,
)
from signoff.models.base import generate_uuid, utc_now

# Type alias for aiohttp middleware handler
Handler = Callable[["web.Request"], Awaitable["web.StreamResponse"]]
Middleware = Callable[["web.Request", Handler], Awaitable["web.StreamResponse"]]


logger = logging.getLogger("signoff.server")

KIND_STATUS = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.CONFLICT: 409,
}

PUBLIC_PATHS = ("/v1/health", "/v1/ready")


@dataclass
class RequestInfo:
    """
    Information about an HTTP request for logging.

    Attributes:
        request_id: Unique identifier for the request.
        method: HTTP method.
        path: Request path.
        remote: Remote address.
        start_time: Request start time.
        status_code: Response status code.
        duration_ms: Request duration in milliseconds.
        user_id: Acting user, if identified.
        error: Error message if request failed.
    """

    request_id: str = field(default_factory=generate_uuid)
    method: str = ""
    path: str = ""
    remote: str = ""
    start_time: datetime = field(default_factory=utc_now)
    status_code: int = 0
    duration_ms: float = 0.0
    user_id: str | None = None
    error: str | None = None


def error_body(
    error_type: str,
    message: str,
    request_id: str,
    details: dict | None = None,
) -> dict:
    """Build the JSON error envelope shared by every error response."""
    return {
        "error": {
            "type": error_type,
            "message": message,
            "details": details or {},
            "request_id": request_id,
        }
    }


def status_for_error(error: SignoffError) -> int:
    """Map a signoff exception to an HTTP status code."""
    if isinstance(error, WorkflowError):
        return KIND_STATUS[error.kind]
    if isinstance(error, StorageError):
        return 503
    if isinstance(error, ConfigurationError):
        return 500
    return 500


def create_request_logging_middleware(log_level: int = logging.INFO) -> Middleware:
    """
    Create request logging middleware.

    Logs method, path, status, duration and acting user of each request.

    Args:
        log_level: Logging level for request logs.

    Returns:
        Middleware function.
    """
    from aiohttp import web

    @web.middleware
    async def request_logging_middleware(
        request: web.Request,
        handler: Handler,
    ) -> web.StreamResponse:
        """Log request and response information."""
        info = RequestInfo(
            request_id=request.get("request_id", generate_uuid()),
            method=request.method,
            path=request.path,
            remote=request.remote or "unknown",
            start_time=utc_now(),
        )

        start_time = time.perf_counter()

        try:
            response = await handler(request)
            info.status_code = response.status
            return response

        except web.HTTPException as e:
            info.status_code = e.status
            info.error = str(e)
            raise

        except Exception as e:
            info.status_code = 500
            info.error = str(e)
            raise

        finally:
            info.duration_ms = (time.perf_counter() - start_time) * 1000
            info.user_id = request.get("user_id")

            log_message = (
                f"{info.method} {info.path} "
                f"{info.status_code} "
                f"{info.duration_ms:.2f}ms "
                f"[{info.request_id[:8]}]"
            )
            if info.user_id:
                log_message += f" user={info.user_id}"

            if info.error:
                logger.log(log_level, f"{log_message} error={info.error}")
            else:
                logger.log(log_level, log_message)

    return request_logging_middleware


def create_error_handler_middleware() -> Middleware:
    """
    Create error handling middleware.

    Converts signoff exceptions to JSON error responses. Workflow errors
    map by kind: not found 404, bad request 400, forbidden 403 and
    conflict 409. Storage errors map to 503, everything else to 500.

    Returns:
        Middleware function.
    """
    from aiohttp import web

    @web.middleware
    async def error_handler_middleware(
        request: web.Request,
        handler: Handler,
    ) -> web.StreamResponse:
        """Handle exceptions and convert to HTTP responses."""
        try:
            return await handler(request)

        except web.HTTPException:
            raise

        except SignoffError as e:
            status = status_for_error(e)
            request_id = request.get("request_id", "unknown")

            if status >= 500:
                logger.error(
                    f"{e.__class__.__name__} on {request.method} {request.path}: {e.message}",
                    extra={"request_id": request_id},
                )
            else:
                logger.debug(
                    f"{e.__class__.__name__}: {e.message}",
                    extra={"request_id": request_id},
                )

            return web.json_response(
                error_body(e.__class__.__name__, e.message, request_id, e.details),
                status=status,
            )

        except asyncio.CancelledError:
            raise

        except Exception as e:
            request_id = request.get("request_id", "unknown")
            logger.exception(
                f"Unhandled exception: {e}",
                extra={"request_id": request_id},
            )
            return web.json_response(
                error_body("InternalError", "An internal error occurred", request_id),
                status=500,
            )

    return error_handler_middleware


def create_cors_middleware(
    allowed_origins: list[str] | None = None,
    allowed_methods: list[str] | None = None,
    allowed_headers: list[str] | None = None,
    max_age: int = 3600,
) -> Middleware:
    """
    Create CORS middleware.

    Args:
        allowed_origins: List of allowed origins. None or empty disables CORS.
        allowed_methods: Allowed HTTP methods.
        allowed_headers: Allowed request headers.
        max_age: Preflight cache duration in seconds.

    Returns:
        Middleware function.
    """
    from aiohttp import web

    origins = list(allowed_origins or [])
    methods = allowed_methods or ["GET", "POST", "PATCH", "OPTIONS"]
    headers = allowed_headers or ["Content-Type", "X-User-ID", "X-Request-ID"]

    @web.middleware
    async def cors_middleware(
        request: web.Request,
        handler: Handler,
    ) -> web.StreamResponse:
        """Handle CORS headers."""
        origin = request.headers.get("Origin", "")
        origin_allowed = bool(origins) and ("*" in origins or origin in origins)

        if request.method == "OPTIONS" and origin_allowed:
            response = web.Response(status=204)
            response.headers["Access-Control-Allow-Origin"] = origin or "*"
            response.headers["Access-Control-Allow-Methods"] = ", ".join(methods)
            response.headers["Access-Control-Allow-Headers"] = ", ".join(headers)
            response.headers["Access-Control-Max-Age"] = str(max_age)
            return response

        response = await handler(request)

        if origin_allowed:
            response.headers["Access-Control-Allow-Origin"] = origin or "*"

        return response

    return cors_middleware


def create_request_id_middleware() -> Middleware:
    """
    Create middleware that ensures every request has a unique ID.

    The request ID is taken from the X-Request-ID header if present,
    otherwise a new UUID is generated.

    Returns:
        Middleware function.
    """
    from aiohttp import web

    @web.middleware
    async def request_id_middleware(
        request: web.Request,
        handler: Handler,
    ) -> web.StreamResponse:
        """Ensure request has a unique ID."""
        request_id = request.headers.get("X-Request-ID") or generate_uuid()
        request["request_id"] = request_id

        response = await handler(request)
        response.headers["X-Request-ID"] = request_id

        return response

    return request_id_middleware


def create_identity_middleware(
    header_name: str = "X-User-ID",
    public_paths: tuple[str, ...] = PUBLIC_PATHS,
) -> Middleware:
    """
    Create middleware that reads the acting user from a request header.

    Authentication is done upstream; the trusted proxy passes the user
    id in ``header_name``. Requests without it are refused with 401,
    except for ``public_paths`` and CORS preflights.

    Args:
        header_name: Header carrying the user id.
        public_paths: Paths served without a user.

    Returns:
        Middleware function.
    """
    from aiohttp import web

    @web.middleware
    async def identity_middleware(
        request: web.Request,
        handler: Handler,
    ) -> web.StreamResponse:
        """Attach the acting user id to the request."""
        if request.path in public_paths or request.method == "OPTIONS":
            return await handler(request)

        user_id = request.headers.get(header_name, "").strip()
        if not user_id:
            return web.json_response(
                error_body(
                    "Unauthorized",
                    f"Missing {header_name} header",
                    request.get("request_id", "unknown"),
                ),
                status=401,
            )

        request["user_id"] = user_id
        return await handler(request)

    return identity_middleware


def create_timeout_middleware(timeout_seconds: float) -> Middleware:
    """
    Create middleware that bounds the time spent on one request.

    Args:
        timeout_seconds: Maximum handling time before a 504 is returned.

    Returns:
        Middleware function.
    """
    from aiohttp import web

    @web.middleware
    async def timeout_middleware(
        request: web.Request,
        handler: Handler,
    ) -> web.StreamResponse:
        try:
            return await asyncio.wait_for(handler(request), timeout=timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"{request.method} {request.path} timed out after {timeout_seconds}s")
            return web.json_response(
                error_body(
                    "RequestTimeout",
                    f"Request took longer than {timeout_seconds} seconds",
                    request.get("request_id", "unknown"),
                ),
                status=504,
            )

    return timeout_middleware
