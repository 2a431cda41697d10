"""
Notification inbox handlers for signoff server.
"""

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aiohttp import web

from signoff.exceptions import NotFoundError, StorageError

logger = logging.getLogger("signoff.server.handlers.notifications")


async def list_notifications(request: "web.Request") -> "web.Response":
    """
    List the caller's notifications, newest first.

    Query parameters:
        unread_only: Only unread notifications (default: false)
        limit: Maximum results (default: 100)
    """
    from aiohttp import web

    manager = request.app.get("notification_manager")
    if manager is None:
        raise StorageError("Notifications not configured")

    unread_only = request.query.get("unread_only", "false").lower() in ("true", "1", "yes")
    try:
        limit = int(request.query.get("limit", "100"))
    except ValueError:
        limit = 100

    notifications = manager.list_for_user(request["user_id"], unread_only=unread_only, limit=limit)
    return web.json_response({
        "notifications": notifications,
        "total": len(notifications),
    })


async def mark_notification_read(request: "web.Request") -> "web.Response":
    """Mark one of the caller's notifications as read."""
    from aiohttp import web

    manager = request.app.get("notification_manager")
    if manager is None:
        raise StorageError("Notifications not configured")

    notification_id = request.match_info["notification_id"]
    if not manager.mark_read(notification_id, request["user_id"]):
        raise NotFoundError(
            f"Notification with ID {notification_id} not found",
            details={"notification_id": notification_id},
        )
    return web.json_response({"id": notification_id, "is_read": True})


async def mark_all_notifications_read(request: "web.Request") -> "web.Response":
    """Mark every unread notification of the caller as read."""
    from aiohttp import web

    manager = request.app.get("notification_manager")
    if manager is None:
        raise StorageError("Notifications not configured")

    count = manager.mark_all_read(request["user_id"])
    return web.json_response({"marked_read": count})
