"""
API route definitions for signoff server.

Static workflow paths are registered before ``/v1/workflows/{workflow_id}``
so they are matched first.
"""

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aiohttp import web

logger = logging.getLogger("signoff.server.routes")


def setup_routes(app: "web.Application") -> None:
    """
    Set up all API routes on the application.

    Args:
        app: The aiohttp application instance.
    """
    from signoff.server.handlers import (
        health_handlers,
        notification_handlers,
        workflow_handlers,
    )

    router = app.router

    # Health
    router.add_get("/v1/health", health_handlers.health_check, name="health")
    router.add_get("/v1/ready", health_handlers.readiness_check, name="ready")

    # Workflows
    router.add_post("/v1/workflows", workflow_handlers.create_workflow, name="create_workflow")
    router.add_get("/v1/workflows", workflow_handlers.list_workflows, name="list_workflows")
    router.add_get("/v1/workflows/pending", workflow_handlers.list_pending, name="list_pending")
    router.add_get("/v1/workflows/returned", workflow_handlers.list_returned, name="list_returned")
    router.add_get(
        "/v1/workflows/statistics",
        workflow_handlers.get_statistics,
        name="workflow_statistics",
    )
    router.add_get(
        "/v1/workflows/{workflow_id}",
        workflow_handlers.get_workflow,
        name="get_workflow",
    )
    router.add_patch(
        "/v1/workflows/{workflow_id}",
        workflow_handlers.update_workflow,
        name="update_workflow",
    )
    router.add_get(
        "/v1/workflows/{workflow_id}/return-history",
        workflow_handlers.get_return_history,
        name="return_history",
    )

    # Steps
    router.add_patch(
        "/v1/workflows/{workflow_id}/steps/{step_id}",
        workflow_handlers.update_step,
        name="update_step",
    )
    router.add_post(
        "/v1/workflows/{workflow_id}/steps/{step_id}/read",
        workflow_handlers.mark_step_read,
        name="mark_step_read",
    )
    router.add_get(
        "/v1/workflows/{workflow_id}/steps/{step_id}/returnable-users",
        workflow_handlers.get_returnable_users,
        name="returnable_users",
    )
    router.add_get(
        "/v1/workflows/{workflow_id}/steps/{step_id}/resubmission-target",
        workflow_handlers.get_resubmission_target,
        name="resubmission_target",
    )

    # Deadlines
    router.add_post("/v1/sweeps", workflow_handlers.run_sweep, name="run_sweep")

    # Notifications
    router.add_get(
        "/v1/notifications",
        notification_handlers.list_notifications,
        name="list_notifications",
    )
    router.add_post(
        "/v1/notifications/{notification_id}/read",
        notification_handlers.mark_notification_read,
        name="mark_notification_read",
    )
    router.add_post(
        "/v1/notifications/read-all",
        notification_handlers.mark_all_notifications_read,
        name="mark_all_notifications_read",
    )

    logger.debug(f"Registered {len(router.routes())} routes")
