"""
Deadline sweeping for signoff.

The sweeper scans for PENDING steps and active workflows whose deadline
has passed. Each overdue step is flagged exactly once through a
conditional update, so running the sweep again, or running two sweeps
at the same time, never reports a step twice. Workflows are stamped the
same way unless repeated reporting is configured.

A sweep runs on demand through ``sweep()`` or periodically on a
background thread started with ``start()``.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from signoff.exceptions import StorageError
from signoff.models.base import utc_now
from signoff.storage.database import Database
from signoff.storage.repositories import WorkflowRepository
from signoff.workflows.events import EventPublisher, WorkflowEvent, WorkflowEventType
from signoff.workflows.models import ApprovalStep, Workflow
from signoff.workflows.registry import StepRegistry


@dataclass
class SweepResult:
    """
    What one sweep flagged.

    Attributes:
        overdue_steps: Steps flagged overdue by this sweep.
        overdue_workflows: Workflows reported overdue by this sweep.
        events: Events emitted for them.
        swept_at: The reference time of the sweep.
    """

    overdue_steps: list[ApprovalStep] = field(default_factory=list)
    overdue_workflows: list[Workflow] = field(default_factory=list)
    events: list[WorkflowEvent] = field(default_factory=list)
    swept_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "swept_at": self.swept_at.isoformat(),
            "overdue_steps": [s.to_dict() for s in self.overdue_steps],
            "overdue_workflows": [
                w.to_dict(include_steps=False) for w in self.overdue_workflows
            ],
        }


class DeadlineSweeper:
    """
    Flags overdue steps and workflows and emits overdue events.

    Example:
        Running a sweep and a periodic timer::

            sweeper = DeadlineSweeper(db, repository, registry, publisher)
            result = sweeper.sweep()
            print(len(result.overdue_steps))

            sweeper.start(interval_seconds=300)
            ...
            sweeper.stop()
    """

    def __init__(
        self,
        database: Database,
        repository: WorkflowRepository,
        registry: StepRegistry,
        publisher: EventPublisher | None = None,
        notify_workflows_once: bool = True,
        clock: Callable[[], datetime] = utc_now,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the sweeper.

        Args:
            database: Database providing transactions.
            repository: Repository for workflow and step rows.
            registry: Registry used to build step and workflow objects.
            publisher: Publisher receiving overdue events after commit.
            notify_workflows_once: Stamp overdue workflows so each is
                reported once; when False, every sweep reports them.
            clock: Source of the current time.
            logger: Logger to use instead of the module logger.
        """
        self._database = database
        self._repository = repository
        self._registry = registry
        self._publisher = publisher
        self._notify_workflows_once = notify_workflows_once
        self._clock = clock
        self._logger = logger or logging.getLogger("signoff.workflows.sweeper")

        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._interval = 0.0
        self._runs = 0
        self._last_result: SweepResult | None = None

    def sweep(self, now: datetime | None = None) -> SweepResult:
        """
        Run one sweep.

        Args:
            now: Reference time; defaults to the clock.

        Returns:
            The steps and workflows flagged by this run.

        Raises:
            StorageError: If the scan fails. Nothing from the failed run
                is reported.
        """
        now = now or self._clock()
        result = SweepResult(swept_at=now)
        try:
            with self._database.transaction(immediate=True) as conn:
                for row in self._repository.find_overdue_steps(now, conn):
                    if not self._repository.mark_step_overdue(row["id"], conn):
                        continue
                    step = self._registry.build_step(row)
                    step.is_overdue = True
                    result.overdue_steps.append(step)
                    result.events.append(
                        WorkflowEvent(
                            event_type=WorkflowEventType.STEP_OVERDUE,
                            workflow_id=step.workflow_id,
                            document_id=row["document_id"],
                            recipient_id=step.approver_id,
                            step_id=step.id,
                            details={
                                "approver_id": step.approver_id,
                                "deadline": step.deadline.isoformat() if step.deadline else None,
                            },
                            timestamp=now,
                        )
                    )

                rows = self._repository.find_overdue_workflows(
                    now, unnotified_only=self._notify_workflows_once, conn=conn
                )
                for row in rows:
                    if self._notify_workflows_once and not (
                        self._repository.mark_workflow_overdue_notified(row["id"], now, conn)
                    ):
                        continue
                    workflow = self._registry.build_workflow(row, [])
                    result.overdue_workflows.append(workflow)
                    result.events.append(
                        WorkflowEvent(
                            event_type=WorkflowEventType.WORKFLOW_OVERDUE,
                            workflow_id=workflow.id,
                            document_id=workflow.document_id,
                            recipient_id=workflow.initiator_id,
                            details={
                                "deadline": workflow.deadline.isoformat() if workflow.deadline else None,
                            },
                            timestamp=now,
                        )
                    )
        except StorageError:
            self._logger.exception("Deadline sweep aborted")
            raise

        with self._lock:
            self._runs += 1
            self._last_result = result

        if result.overdue_steps or result.overdue_workflows:
            self._logger.info(
                f"Deadline sweep flagged {len(result.overdue_steps)} step(s) and "
                f"{len(result.overdue_workflows)} workflow(s)"
            )
        else:
            self._logger.debug("Deadline sweep found nothing overdue")

        if self._publisher is not None:
            self._publisher.publish_all(result.events)
        return result

    def start(self, interval_seconds: float) -> None:
        """
        Start sweeping periodically on a background thread.

        Args:
            interval_seconds: Seconds between the end of one sweep and
                the start of the next.
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        with self._lock:
            if self._thread is not None:
                return
            self._interval = interval_seconds
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._loop,
                daemon=True,
                name="DeadlineSweeper",
            )
            self._thread.start()
        self._logger.info(f"Deadline sweeper started (every {interval_seconds}s)")

    def stop(self) -> None:
        """Stop the background thread and wait for it to finish."""
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is None:
            return
        self._stop_event.set()
        thread.join(timeout=max(self._interval, 1.0) * 2)
        self._logger.info("Deadline sweeper stopped")

    def is_running(self) -> bool:
        """Check if the background thread is active."""
        with self._lock:
            return self._thread is not None

    def get_status(self) -> dict[str, Any]:
        """Get the current status of the sweeper."""
        with self._lock:
            last = self._last_result
            return {
                "running": self._thread is not None,
                "interval_seconds": self._interval,
                "runs": self._runs,
                "last_swept_at": last.swept_at.isoformat() if last else None,
                "last_overdue_steps": len(last.overdue_steps) if last else 0,
                "last_overdue_workflows": len(last.overdue_workflows) if last else 0,
            }

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.sweep()
            except StorageError:
                # already logged; try again on the next tick
                pass
            self._stop_event.wait(self._interval)
