"""
Notification delivery for signoff.
"""

from signoff.notifications.manager import (
    Notification,
    NotificationChannel,
    NotificationManager,
    NotificationStatus,
    NotificationTemplate,
    NotificationType,
)

__all__ = [
    "Notification",
    "NotificationChannel",
    "NotificationManager",
    "NotificationStatus",
    "NotificationTemplate",
    "NotificationType",
]
