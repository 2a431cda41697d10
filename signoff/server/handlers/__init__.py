"""
API handlers for signoff server.

Modules:
    health_handlers: Health and readiness checks
    workflow_handlers: Approval workflow endpoints
    notification_handlers: Notification inbox endpoints
"""

from signoff.server.handlers import (
    health_handlers,
    notification_handlers,
    workflow_handlers,
)

__all__ = [
    "health_handlers",
    "notification_handlers",
    "workflow_handlers",
]
