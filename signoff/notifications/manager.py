"""
Notification management for signoff.

This module provides the NotificationManager class, the notification
sink of the approval engine. It turns workflow events into rendered
notifications, delivers them through the log or a webhook, and keeps a
copy in the in-app inbox.
"""

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from signoff.config.schema import NotificationConfig
from signoff.exceptions import NotificationError, StorageError
from signoff.models.base import generate_uuid, utc_now
from signoff.storage.repositories import NotificationRepository
from signoff.version import __version__
from signoff.workflows.events import WorkflowEvent, WorkflowEventType


class NotificationChannel(Enum):
    """Available notification channels."""

    WEBHOOK = "webhook"
    """Send notification via HTTP webhook."""

    LOG = "log"
    """Write notification to the application log."""


class NotificationStatus(Enum):
    """Status of a notification."""

    PENDING = "pending"
    """Notification is queued for delivery."""

    SENT = "sent"
    """Notification was sent successfully."""

    FAILED = "failed"
    """Notification delivery failed."""

    SKIPPED = "skipped"
    """Notification was skipped because delivery is disabled."""


class NotificationType(Enum):
    """Types of notifications."""

    OVERDUE_STEP = "overdue_step"
    """An approval step passed its deadline."""

    OVERDUE_WORKFLOW = "overdue_workflow"
    """An approval workflow passed its deadline."""

    WORKFLOW_RETURNED = "workflow_returned"
    """A document was returned to the recipient for revision."""

    WORKFLOW_RESUBMITTED = "workflow_resubmitted"
    """A corrected document was resubmitted to the recipient."""


EVENT_NOTIFICATION_TYPES = {
    WorkflowEventType.STEP_OVERDUE: NotificationType.OVERDUE_STEP,
    WorkflowEventType.WORKFLOW_OVERDUE: NotificationType.OVERDUE_WORKFLOW,
    WorkflowEventType.STEP_RETURNED: NotificationType.WORKFLOW_RETURNED,
    WorkflowEventType.STEP_RESUBMITTED: NotificationType.WORKFLOW_RESUBMITTED,
}

OVERDUE_TYPES = (NotificationType.OVERDUE_STEP, NotificationType.OVERDUE_WORKFLOW)


@dataclass
class NotificationTemplate:
    """
    A template for generating notification content.

    Attributes:
        notification_type: Type of notification this template is for.
        title_template: Template for the notification title.
        message_template: Template for the notification message.
    """

    notification_type: NotificationType
    title_template: str = ""
    message_template: str = ""

    def render_title(self, context: dict[str, Any]) -> str:
        """Render the title with the given context."""
        return self._render(self.title_template, context)

    def render_message(self, context: dict[str, Any]) -> str:
        """Render the message with the given context."""
        return self._render(self.message_template, context)

    def _render(self, template: str, context: dict[str, Any]) -> str:
        try:
            return template.format(**context)
        except KeyError:
            # Fall back to partial substitution
            result = template
            for key, value in context.items():
                result = result.replace(f"{{{key}}}", str(value))
            return result


@dataclass
class Notification:
    """
    A notification addressed to one user.

    Attributes:
        notification_id: Unique identifier for the notification.
        notification_type: Type of notification.
        status: Delivery status.
        channel: Delivery channel.
        recipient: User who receives the notification.
        title: Rendered title.
        message: Rendered message.
        is_read: Whether the recipient has read it in the inbox.
        created_at: When the notification was created.
        sent_at: When the notification was delivered.
        error: Error message if delivery failed.
        metadata: Workflow and step references.
    """

    notification_id: str = field(default_factory=generate_uuid)
    notification_type: NotificationType = NotificationType.OVERDUE_STEP
    status: NotificationStatus = NotificationStatus.PENDING
    channel: NotificationChannel = NotificationChannel.LOG
    recipient: str = ""
    title: str = ""
    message: str = ""
    is_read: bool = False
    created_at: datetime = field(default_factory=utc_now)
    sent_at: datetime | None = None
    error: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.notification_id,
            "user_id": self.recipient,
            "type": self.notification_type.value,
            "status": self.status.value,
            "channel": self.channel.value,
            "title": self.title,
            "message": self.message,
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat(),
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "error": self.error,
            "metadata": self.metadata,
        }


# Type alias for notification callbacks
NotificationCallback = Callable[[Notification], None]


class NotificationManager:
    """
    Delivers workflow notifications.

    The NotificationManager implements the engine's NotificationSink
    protocol. For every event it:
    - Resolves the recipients, adding the configured deadline recipient
      to overdue events
    - Renders the title and message from the type's template
    - Stores the notification in the in-app inbox
    - Delivers it through the log or a webhook

    Delivery failures mark the notification FAILED and are logged; they
    are never raised to the caller.

    Example:
        Publishing events from the service::

            manager = NotificationManager(repository=NotificationRepository(db))
            service = ApprovalWorkflowService.from_database(db, sink=manager)
    """

    DEFAULT_TEMPLATES = {
        NotificationType.OVERDUE_STEP: NotificationTemplate(
            notification_type=NotificationType.OVERDUE_STEP,
            title_template="Overdue Approval Step",
            message_template='The approval step for document "{document_title}" is overdue.',
        ),
        NotificationType.OVERDUE_WORKFLOW: NotificationTemplate(
            notification_type=NotificationType.OVERDUE_WORKFLOW,
            title_template="Overdue Approval Workflow",
            message_template='The approval workflow for document "{document_title}" is overdue.',
        ),
        NotificationType.WORKFLOW_RETURNED: NotificationTemplate(
            notification_type=NotificationType.WORKFLOW_RETURNED,
            title_template="Document Returned for Revision",
            message_template=(
                'The document "{document_title}" has been returned to you for revision. '
                "Reason: {reason}"
            ),
        ),
        NotificationType.WORKFLOW_RESUBMITTED: NotificationTemplate(
            notification_type=NotificationType.WORKFLOW_RESUBMITTED,
            title_template="Document Resubmitted",
            message_template=(
                'A document "{document_title}" has been resubmitted to you with the '
                "following explanation: {explanation}"
            ),
        ),
    }

    def __init__(
        self,
        channel: NotificationChannel = NotificationChannel.LOG,
        webhook_url: str = "",
        webhook_timeout: float = 10.0,
        repository: NotificationRepository | None = None,
        deadline_recipient_id: str = "",
        enabled: bool = True,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the notification manager.

        Args:
            channel: Delivery channel for every notification.
            webhook_url: Endpoint for the webhook channel.
            webhook_timeout: Timeout in seconds for one webhook call.
            repository: In-app inbox storage; None keeps notifications
                in memory only.
            deadline_recipient_id: User that also receives overdue notifications.
            enabled: Deliver notifications; when False they are recorded
                as SKIPPED.
            logger: Logger to use instead of the module logger.
        """
        self._channel = channel
        self._webhook_url = webhook_url
        self._webhook_timeout = webhook_timeout
        self._repository = repository
        self._deadline_recipient_id = deadline_recipient_id
        self._enabled = enabled
        self._logger = logger or logging.getLogger("signoff.notifications")
        self._templates: dict[NotificationType, NotificationTemplate] = dict(
            self.DEFAULT_TEMPLATES
        )
        self._notifications: list[Notification] = []
        self._callbacks: list[NotificationCallback] = []

    @classmethod
    def from_config(
        cls,
        config: NotificationConfig,
        repository: NotificationRepository | None = None,
    ) -> "NotificationManager":
        """
        Build a manager from the notifications configuration section.

        Args:
            config: Notification options.
            repository: Inbox storage, used when ``store_in_app`` is set.
        """
        return cls(
            channel=NotificationChannel(config.channel.lower()),
            webhook_url=config.webhook_url,
            webhook_timeout=config.webhook_timeout_seconds,
            repository=repository if config.store_in_app else None,
            deadline_recipient_id=config.deadline_recipient_id,
            enabled=config.enabled,
        )

    def on_notification(self, callback: NotificationCallback) -> None:
        """Register a callback for delivered notifications."""
        self._callbacks.append(callback)

    def set_template(
        self,
        notification_type: NotificationType,
        title: str,
        message: str,
    ) -> None:
        """
        Set a custom template for a notification type.

        Args:
            notification_type: The notification type.
            title: Title template.
            message: Message template.
        """
        self._templates[notification_type] = NotificationTemplate(
            notification_type=notification_type,
            title_template=title,
            message_template=message,
        )

    def publish(self, event: WorkflowEvent) -> None:
        """
        Turn a committed workflow event into notifications.

        Args:
            event: The event to deliver.
        """
        notification_type = EVENT_NOTIFICATION_TYPES[event.event_type]
        recipients = [event.recipient_id]
        if (
            notification_type in OVERDUE_TYPES
            and self._deadline_recipient_id
            and self._deadline_recipient_id not in recipients
        ):
            recipients.append(self._deadline_recipient_id)

        context = {
            "document_title": event.details.get("document_title") or event.document_id,
            "reason": event.details.get("reason", ""),
            "explanation": event.details.get("explanation", ""),
        }
        metadata = {"workflow_id": event.workflow_id, "event_id": event.event_id}
        if event.step_id:
            metadata["step_id"] = event.step_id

        for recipient in recipients:
            self.notify(notification_type, recipient, context, metadata)

    def notify(
        self,
        notification_type: NotificationType,
        recipient: str,
        context: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Notification:
        """
        Render, store and deliver one notification.

        Args:
            notification_type: Type of notification.
            recipient: User who receives the notification.
            context: Values for template rendering.
            metadata: Workflow and step references kept with the notification.

        Returns:
            The notification object.
        """
        context = context or {}
        template = self._templates[notification_type]
        notification = Notification(
            notification_type=notification_type,
            channel=self._channel,
            recipient=recipient,
            title=template.render_title(context),
            message=template.render_message(context),
            metadata=dict(metadata or {}),
        )
        self._notifications.append(notification)

        if not self._enabled:
            notification.status = NotificationStatus.SKIPPED
            self._logger.debug(
                f"Notifications disabled; skipped {notification_type.value} for {recipient}"
            )
            return notification

        self._store(notification)
        self._send_notification(notification)

        for callback in self._callbacks:
            try:
                callback(notification)
            except Exception as e:
                self._logger.warning(f"Notification callback failed: {e}")
        return notification

    def get_notifications(
        self,
        recipient: str | None = None,
        status: NotificationStatus | None = None,
        notification_type: NotificationType | None = None,
        limit: int = 100,
    ) -> list[Notification]:
        """
        Get notifications produced by this manager, newest first.

        Args:
            recipient: Filter by recipient.
            status: Filter by status.
            notification_type: Filter by type.
            limit: Maximum number to return.
        """
        results = []
        for notification in reversed(self._notifications):
            if recipient and notification.recipient != recipient:
                continue
            if status and notification.status != status:
                continue
            if notification_type and notification.notification_type != notification_type:
                continue
            results.append(notification)
            if len(results) >= limit:
                break
        return results

    def list_for_user(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """
        List a user's inbox, newest first.

        Reads the in-app store when one is configured, otherwise the
        notifications held in memory.
        """
        if self._repository is not None:
            return self._repository.list_for_user(user_id, unread_only, limit)
        inbox = [
            n
            for n in reversed(self._notifications)
            if n.recipient == user_id
            and n.status != NotificationStatus.SKIPPED
            and not (unread_only and n.is_read)
        ]
        return [n.to_dict() for n in inbox[:limit]]

    def mark_read(self, notification_id: str, user_id: str) -> bool:
        """
        Mark one of the user's notifications as read.

        Returns:
            True if the notification exists and belongs to the user.
        """
        found = False
        for notification in self._notifications:
            if notification.notification_id == notification_id and notification.recipient == user_id:
                notification.is_read = True
                found = True
        if self._repository is not None:
            return self._repository.mark_read(notification_id, user_id)
        return found

    def mark_all_read(self, user_id: str) -> int:
        """
        Mark every unread notification of a user as read.

        Returns:
            The number of notifications that changed.
        """
        count = 0
        for notification in self._notifications:
            if (
                notification.recipient == user_id
                and notification.status != NotificationStatus.SKIPPED
                and not notification.is_read
            ):
                notification.is_read = True
                count += 1
        if self._repository is not None:
            return self._repository.mark_all_read(user_id)
        return count

    def get_statistics(self) -> dict[str, Any]:
        """Get notification statistics."""
        by_status: dict[str, int] = {}
        by_type: dict[str, int] = {}
        for notification in self._notifications:
            status = notification.status.value
            by_status[status] = by_status.get(status, 0) + 1
            ntype = notification.notification_type.value
            by_type[ntype] = by_type.get(ntype, 0) + 1

        return {
            "total": len(self._notifications),
            "by_status": by_status,
            "by_type": by_type,
            "channel": self._channel.value,
        }

    def _store(self, notification: Notification) -> None:
        if self._repository is None:
            return
        try:
            self._repository.create(
                notification.recipient,
                notification.notification_type.value,
                notification.title,
                notification.message,
                metadata=notification.metadata,
                notification_id=notification.notification_id,
            )
        except StorageError as e:
            self._logger.warning(
                f"Failed to store notification {notification.notification_id} "
                f"for {notification.recipient}: {e}"
            )

    def _send_notification(self, notification: Notification) -> None:
        """Send a notification using the configured channel."""
        try:
            if notification.channel == NotificationChannel.WEBHOOK:
                self._send_webhook(notification)
            else:
                self._send_log(notification)
            notification.status = NotificationStatus.SENT
            notification.sent_at = utc_now()
        except NotificationError as e:
            notification.status = NotificationStatus.FAILED
            notification.error = e.message
            self._logger.warning(
                f"Failed to deliver {notification.notification_type.value} notification "
                f"to {notification.recipient}: {e.message}"
            )

    def _send_webhook(self, notification: Notification) -> None:
        """
        Send notification via webhook.

        Raises:
            NotificationError: If the URL is missing or the call fails.
        """
        if not self._webhook_url:
            raise NotificationError("No webhook URL available")

        payload = {
            "id": notification.notification_id,
            "type": notification.notification_type.value,
            "recipient": notification.recipient,
            "title": notification.title,
            "message": notification.message,
            "metadata": notification.metadata,
            "timestamp": notification.created_at.isoformat(),
        }
        data = json.dumps(payload).encode("utf-8")

        request = urllib.request.Request(
            self._webhook_url,
            data=data,
            headers={
                "Content-Type": "application/json",
                "User-Agent": f"signoff/{__version__}",
            },
            method="POST",
        )

        try:
            with urllib.request.urlopen(request, timeout=self._webhook_timeout) as response:
                if response.status >= 400:
                    raise NotificationError(
                        f"Webhook returned status {response.status}",
                        details={"url": self._webhook_url},
                    )
        except (urllib.error.URLError, OSError) as e:
            raise NotificationError(
                f"Webhook request failed: {e}",
                details={"url": self._webhook_url},
            ) from e

    def _send_log(self, notification: Notification) -> None:
        self._logger.info(
            f"[{notification.notification_type.value}] to {notification.recipient}: "
            f"{notification.title} - {notification.message}"
        )
