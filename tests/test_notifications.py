"""
Tests for signoff notifications.

This module tests the NotificationManager: rendering, recipients,
delivery channels and the in-app inbox.
"""

import urllib.error
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from signoff.config.defaults import get_test_config
from signoff.config.schema import NotificationConfig
from signoff.notifications.manager import (
    Notification,
    NotificationChannel,
    NotificationManager,
    NotificationStatus,
    NotificationType,
)
from signoff.storage.database import Database
from signoff.storage.repositories import NotificationRepository
from signoff.workflows.events import WorkflowEvent, WorkflowEventType
from signoff.workflows.service import ApprovalWorkflowService

from tests.helpers import create_workflow, decide


def make_event(event_type: WorkflowEventType, **details: Any) -> WorkflowEvent:
    details.setdefault("document_title", "Quarterly Report")
    return WorkflowEvent(
        event_type=event_type,
        workflow_id="wf-1",
        document_id="doc-1",
        recipient_id="alice",
        step_id="s1",
        actor_id="bob",
        details=details,
    )


@pytest.fixture
def manager(notification_repo: NotificationRepository) -> NotificationManager:
    return NotificationManager(repository=notification_repo)


class TestRendering:
    """Tests for templates and event mapping."""

    def test_overdue_step(self, manager: NotificationManager) -> None:
        """Test the overdue step message."""
        manager.publish(make_event(WorkflowEventType.STEP_OVERDUE))

        notification = manager.get_notifications()[0]
        assert notification.notification_type == NotificationType.OVERDUE_STEP
        assert notification.title == "Overdue Approval Step"
        assert notification.message == (
            'The approval step for document "Quarterly Report" is overdue.'
        )

    def test_overdue_workflow(self, manager: NotificationManager) -> None:
        """Test the overdue workflow message."""
        manager.publish(make_event(WorkflowEventType.WORKFLOW_OVERDUE))

        notification = manager.get_notifications()[0]
        assert notification.title == "Overdue Approval Workflow"
        assert "is overdue" in notification.message

    def test_returned(self, manager: NotificationManager) -> None:
        """Test that the return reason is part of the message."""
        manager.publish(make_event(WorkflowEventType.STEP_RETURNED, reason="missing totals"))

        notification = manager.get_notifications()[0]
        assert notification.notification_type == NotificationType.WORKFLOW_RETURNED
        assert notification.title == "Document Returned for Revision"
        assert notification.message.endswith("Reason: missing totals")
        assert notification.metadata == {
            "workflow_id": "wf-1",
            "event_id": notification.metadata["event_id"],
            "step_id": "s1",
        }

    def test_resubmitted(self, manager: NotificationManager) -> None:
        """Test that the explanation is part of the message."""
        manager.publish(make_event(WorkflowEventType.STEP_RESUBMITTED, explanation="fixed"))

        notification = manager.get_notifications()[0]
        assert notification.title == "Document Resubmitted"
        assert notification.message.endswith("following explanation: fixed")

    def test_title_falls_back_to_document_id(self, manager: NotificationManager) -> None:
        """Test rendering when the document title is unknown."""
        event = make_event(WorkflowEventType.STEP_OVERDUE)
        event.details.pop("document_title")

        manager.publish(event)

        assert '"doc-1"' in manager.get_notifications()[0].message

    def test_custom_template(self, manager: NotificationManager) -> None:
        """Test replacing a template."""
        manager.set_template(NotificationType.OVERDUE_STEP, "Late: {document_title}", "Hurry")

        manager.publish(make_event(WorkflowEventType.STEP_OVERDUE))

        notification = manager.get_notifications()[0]
        assert notification.title == "Late: Quarterly Report"
        assert notification.message == "Hurry"


class TestRecipients:
    """Tests for recipient resolution."""

    def test_deadline_recipient_for_overdue(self, notification_repo: NotificationRepository) -> None:
        """Test that overdue events also reach the deadline recipient."""
        manager = NotificationManager(repository=notification_repo, deadline_recipient_id="admin")

        manager.publish(make_event(WorkflowEventType.STEP_OVERDUE))

        assert [n.recipient for n in manager.get_notifications()] == ["admin", "alice"]

    def test_no_deadline_recipient_for_returns(
        self, notification_repo: NotificationRepository
    ) -> None:
        """Test that returns reach only the target approver."""
        manager = NotificationManager(repository=notification_repo, deadline_recipient_id="admin")

        manager.publish(make_event(WorkflowEventType.STEP_RETURNED, reason="x"))

        assert [n.recipient for n in manager.get_notifications()] == ["alice"]

    def test_deadline_recipient_not_duplicated(self) -> None:
        """Test that the recipient is not notified twice."""
        manager = NotificationManager(deadline_recipient_id="alice")

        manager.publish(make_event(WorkflowEventType.WORKFLOW_OVERDUE))

        assert len(manager.get_notifications()) == 1


class TestDelivery:
    """Tests for delivery channels and status."""

    def test_log_channel(self, manager: NotificationManager) -> None:
        """Test that log delivery marks the notification SENT."""
        notification = manager.notify(
            NotificationType.OVERDUE_STEP, "alice", {"document_title": "Report"}
        )

        assert notification.status == NotificationStatus.SENT
        assert notification.sent_at is not None

    def test_disabled(self, notification_repo: NotificationRepository) -> None:
        """Test that disabled delivery skips and stores nothing."""
        manager = NotificationManager(repository=notification_repo, enabled=False)

        notification = manager.notify(NotificationType.OVERDUE_STEP, "alice")

        assert notification.status == NotificationStatus.SKIPPED
        assert notification_repo.list_for_user("alice") == []
        assert manager.list_for_user("alice") == []

    def test_webhook_failure_is_recorded(self) -> None:
        """Test that a failing webhook marks the notification FAILED."""
        manager = NotificationManager(
            channel=NotificationChannel.WEBHOOK,
            webhook_url="http://hooks.example/signoff",
            webhook_timeout=1.0,
        )

        with patch(
            "signoff.notifications.manager.urllib.request.urlopen",
            side_effect=urllib.error.URLError("connection refused"),
        ):
            notification = manager.notify(NotificationType.OVERDUE_STEP, "alice")

        assert notification.status == NotificationStatus.FAILED
        assert "Webhook request failed" in notification.error

    def test_webhook_success(self) -> None:
        """Test that a 2xx webhook response marks the notification SENT."""
        manager = NotificationManager(
            channel=NotificationChannel.WEBHOOK,
            webhook_url="http://hooks.example/signoff",
        )
        response = MagicMock()
        response.status = 204
        response.__enter__.return_value = response

        with patch(
            "signoff.notifications.manager.urllib.request.urlopen", return_value=response
        ) as urlopen:
            notification = manager.notify(NotificationType.OVERDUE_STEP, "alice")

        assert notification.status == NotificationStatus.SENT
        request = urlopen.call_args[0][0]
        assert request.full_url == "http://hooks.example/signoff"
        assert request.get_method() == "POST"

    def test_webhook_without_url(self) -> None:
        """Test that a webhook channel without a URL fails delivery."""
        manager = NotificationManager(channel=NotificationChannel.WEBHOOK)

        notification = manager.notify(NotificationType.OVERDUE_STEP, "alice")

        assert notification.status == NotificationStatus.FAILED

    def test_callbacks(self, manager: NotificationManager) -> None:
        """Test that callbacks see delivered notifications."""
        received: list[Notification] = []
        manager.on_notification(received.append)

        def broken(notification: Notification) -> None:
            raise RuntimeError("callback error")

        manager.on_notification(broken)
        manager.notify(NotificationType.OVERDUE_WORKFLOW, "alice")

        assert len(received) == 1

    def test_statistics(self, manager: NotificationManager) -> None:
        """Test the statistics counters."""
        manager.notify(NotificationType.OVERDUE_STEP, "alice")
        manager.notify(NotificationType.OVERDUE_STEP, "bob")
        manager.notify(NotificationType.WORKFLOW_RETURNED, "alice")

        stats = manager.get_statistics()

        assert stats["total"] == 3
        assert stats["by_status"] == {"sent": 3}
        assert stats["by_type"] == {"overdue_step": 2, "workflow_returned": 1}
        assert stats["channel"] == "log"


class TestInbox:
    """Tests for the in-app inbox."""

    def test_inbox_from_repository(self, manager: NotificationManager) -> None:
        """Test listing and reading stored notifications."""
        notification = manager.notify(NotificationType.OVERDUE_STEP, "alice")

        inbox = manager.list_for_user("alice")
        assert [row["id"] for row in inbox] == [notification.notification_id]
        assert inbox[0]["is_read"] is False

        assert manager.mark_read(notification.notification_id, "bob") is False
        assert manager.mark_read(notification.notification_id, "alice") is True
        assert manager.list_for_user("alice", unread_only=True) == []

    def test_inbox_in_memory(self) -> None:
        """Test the inbox without a repository."""
        manager = NotificationManager()
        notification = manager.notify(NotificationType.OVERDUE_STEP, "alice")

        assert manager.list_for_user("alice")[0]["id"] == notification.notification_id
        assert manager.mark_read(notification.notification_id, "alice") is True
        assert manager.list_for_user("alice", unread_only=True) == []

    def test_mark_all_read_from_repository(self, manager: NotificationManager) -> None:
        """Test marking the whole stored inbox as read."""
        manager.notify(NotificationType.OVERDUE_STEP, "alice")
        manager.notify(NotificationType.OVERDUE_STEP, "alice")
        manager.notify(NotificationType.OVERDUE_STEP, "bob")

        assert manager.mark_all_read("alice") == 2
        assert manager.list_for_user("alice", unread_only=True) == []
        assert len(manager.list_for_user("bob", unread_only=True)) == 1

    def test_mark_all_read_in_memory(self) -> None:
        """Test marking the in-memory inbox as read."""
        manager = NotificationManager()
        manager.notify(NotificationType.OVERDUE_STEP, "alice")
        manager.notify(NotificationType.OVERDUE_STEP, "alice")

        assert manager.mark_all_read("alice") == 2
        assert manager.mark_all_read("alice") == 0
        assert manager.list_for_user("alice", unread_only=True) == []

    def test_from_config_without_inbox(self, notification_repo: NotificationRepository) -> None:
        """Test that store_in_app=False keeps notifications out of storage."""
        config = NotificationConfig(store_in_app=False, deadline_recipient_id="admin")
        manager = NotificationManager.from_config(config, notification_repo)

        manager.notify(NotificationType.OVERDUE_STEP, "alice")

        assert notification_repo.list_for_user("alice") == []


class TestServiceIntegration:
    """Tests for notifications produced by workflow operations."""

    def test_return_notifies_target(self, seeded_db: Database) -> None:
        """Test that a return puts a message in the target's inbox."""
        repository = NotificationRepository(seeded_db)
        manager = NotificationManager(repository=repository)
        service = ApprovalWorkflowService.from_database(seeded_db, get_test_config(), sink=manager)
        workflow = create_workflow(service, "doc-1", ["alice", "bob"])
        decide(service, workflow, "alice", "APPROVED")

        decide(
            service,
            workflow,
            "bob",
            "RETURNED",
            return_to_user_id="alice",
            rejection_reason="wrong quarter",
        )

        inbox = repository.list_for_user("alice")
        assert len(inbox) == 1
        assert inbox[0]["type"] == "workflow_returned"
        assert inbox[0]["message"] == (
            'The document "Quarterly Report" has been returned to you for revision. '
            "Reason: wrong quarter"
        )
        assert inbox[0]["metadata"]["workflow_id"] == workflow.id
