"""
Workflow events emitted by the orchestrator and the deadline sweeper.

Side effects are described as data. The service hands each event to a
NotificationSink only after the transaction that produced it has been
committed.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from signoff.models.base import generate_uuid, utc_now

if TYPE_CHECKING:
    from signoff.directory.interfaces import DocumentDirectory


class WorkflowEventType(Enum):
    """Types of events a workflow can emit."""

    STEP_OVERDUE = "step_overdue"
    """A pending step passed its deadline."""

    WORKFLOW_OVERDUE = "workflow_overdue"
    """An active workflow passed its deadline."""

    STEP_RETURNED = "step_returned"
    """A document was returned to an earlier approver."""

    STEP_RESUBMITTED = "step_resubmitted"
    """A corrected document was resubmitted to an approver."""


@dataclass
class WorkflowEvent:
    """
    An event addressed to one recipient.

    Attributes:
        event_type: What happened.
        workflow_id: The workflow it happened in.
        document_id: The document the workflow approves.
        recipient_id: User the event is addressed to.
        step_id: The step concerned, if any.
        actor_id: User whose action produced the event, if any.
        details: Event-specific values such as the reason or explanation.
        event_id: Unique identifier for the event.
        timestamp: When the event was produced.
    """

    event_type: WorkflowEventType
    workflow_id: str
    document_id: str
    recipient_id: str
    step_id: str | None = None
    actor_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=generate_uuid)
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "workflow_id": self.workflow_id,
            "document_id": self.document_id,
            "recipient_id": self.recipient_id,
            "step_id": self.step_id,
            "actor_id": self.actor_id,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class NotificationSink(Protocol):
    """Protocol for anything that receives workflow events."""

    def publish(self, event: WorkflowEvent) -> None:
        """
        Deliver one event.

        Args:
            event: The committed workflow event.
        """
        ...


class CollectingSink:
    """
    Notification sink that keeps events in memory.

    Used when no notification manager is configured, and by tests that
    assert on emitted events.
    """

    def __init__(self) -> None:
        self.events: list[WorkflowEvent] = []

    def publish(self, event: WorkflowEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: WorkflowEventType) -> list[WorkflowEvent]:
        """Return the collected events of one type."""
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()


class EventPublisher:
    """
    Publishes committed events to a sink.

    Each event is enriched with the document title before delivery. A
    failing sink is logged and skipped; the mutation that produced the
    event has already been committed.
    """

    def __init__(
        self,
        sink: NotificationSink,
        documents: "DocumentDirectory | None" = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._sink = sink
        self._documents = documents
        self._logger = logger or logging.getLogger("signoff.workflows.events")

    def publish_all(self, events: list[WorkflowEvent]) -> None:
        """Enrich and publish events in order."""
        titles: dict[str, str | None] = {}
        for event in events:
            if "document_title" not in event.details:
                if event.document_id not in titles:
                    titles[event.document_id] = self._document_title(event.document_id)
                event.details["document_title"] = titles[event.document_id]
            try:
                self._sink.publish(event)
            except Exception as e:
                self._logger.warning(
                    f"Failed to publish {event.event_type.value} event for "
                    f"workflow {event.workflow_id}: {e}"
                )

    def _document_title(self, document_id: str) -> str | None:
        if self._documents is None:
            return None
        document = self._documents.get_document(document_id)
        return document.title if document else None
