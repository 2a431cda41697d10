"""
Workflow orchestration for signoff.

The orchestrator applies a validated transition to the in-memory step
list of one workflow, recomputes the workflow status, and persists
every changed row in a single transaction held under the workflow's
lock. Notifications are returned as WorkflowEvent data; publishing
them is the caller's job once the transaction has committed.
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from signoff.exceptions import SignoffError
from signoff.models.base import format_timestamp, utc_now
from signoff.storage.database import Database
from signoff.storage.repositories import WorkflowRepository
from signoff.workflows.events import WorkflowEvent, WorkflowEventType
from signoff.workflows.locks import KeyedLocks
from signoff.workflows.models import (
    ApprovalStep,
    StatusUpdate,
    StepStatus,
    Workflow,
    WorkflowStatus,
)
from signoff.workflows.registry import StepRegistry
from signoff.workflows.router import returners_of
from signoff.workflows.validator import TransitionValidator, ValidatedTransition


@dataclass
class TransitionOutcome:
    """
    Result of applying one transition.

    Attributes:
        workflow: The workflow after the transition.
        step: The decided step after the transition.
        changed_steps: Every step whose row was rewritten.
        previous_status: Workflow status before the transition.
        events: Notification events to publish after commit.
    """

    workflow: Workflow
    step: ApprovalStep
    changed_steps: list[ApprovalStep] = field(default_factory=list)
    previous_status: WorkflowStatus | None = None
    events: list[WorkflowEvent] = field(default_factory=list)

    @property
    def workflow_status_changed(self) -> bool:
        """Whether the workflow status differs from before the transition."""
        return self.previous_status != self.workflow.status


class WorkflowOrchestrator:
    """
    Applies validated step transitions atomically.

    Example:
        Approving the current step::

            orchestrator = WorkflowOrchestrator(db, repository, registry, validator, locks)
            outcome = orchestrator.update_step_status(
                workflow_id, step_id, StatusUpdate(StepStatus.APPROVED), "u1"
            )
    """

    def __init__(
        self,
        database: Database,
        repository: WorkflowRepository,
        registry: StepRegistry,
        validator: TransitionValidator,
        locks: KeyedLocks,
        clear_overdue_on_reset: bool = True,
        clock: Callable[[], datetime] = utc_now,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            database: Database providing transactions.
            repository: Repository for workflow and step rows.
            registry: Registry loading workflows with ordered steps.
            validator: Validator run before every mutation.
            locks: Per-workflow locks shared with other writers.
            clear_overdue_on_reset: Clear ``is_overdue`` when a step is reopened.
            clock: Source of the current time.
            logger: Logger to use instead of the module logger.
        """
        self._database = database
        self._repository = repository
        self._registry = registry
        self._validator = validator
        self._locks = locks
        self._clear_overdue = clear_overdue_on_reset
        self._clock = clock
        self._logger = logger or logging.getLogger("signoff.workflows.orchestrator")

    def update_step_status(
        self,
        workflow_id: str,
        step_id: str,
        update: StatusUpdate,
        actor_id: str,
    ) -> TransitionOutcome:
        """
        Validate and apply a status change to one step.

        The workflow is loaded, validated, mutated and written back
        inside one ``BEGIN IMMEDIATE`` transaction held under the
        workflow's lock.

        Raises:
            NotFoundError: If the workflow or step does not exist.
            WorkflowError: If validation refuses the transition.
            StorageError: If persistence fails; nothing is written.
        """
        with self._locks.hold(workflow_id):
            with self._database.transaction(immediate=True) as conn:
                workflow = self._registry.load(workflow_id, conn)
                step = self._registry.find_step(workflow, step_id)
                result = self._validator.validate(workflow, step, actor_id, update)
                transition = result.raise_for_failure()
                outcome = self.apply(workflow, transition)
                self._persist(outcome, conn)

        self._logger.info(
            f"Step {step_id} of workflow {workflow_id} set to {transition.status.value} "
            f"by {actor_id}; workflow is {outcome.workflow.status.value}"
        )
        return outcome

    def apply(self, workflow: Workflow, transition: ValidatedTransition) -> TransitionOutcome:
        """
        Apply a validated transition to a loaded workflow in memory.

        Args:
            workflow: The workflow with its ordered steps; mutated in place.
            transition: A transition produced by the validator for this workflow.

        Returns:
            The outcome listing changed steps and events.
        """
        now = self._clock()
        step = self._step_of(workflow, transition.step_id)
        outcome = TransitionOutcome(
            workflow=workflow,
            step=step,
            previous_status=workflow.status,
        )

        step.status = transition.status
        step.comment = transition.comment
        step.completed_at = now
        if transition.status in (StepStatus.REJECTED, StepStatus.RETURNED):
            step.rejection_reason = transition.rejection_reason
        else:
            step.rejection_reason = None
        if transition.status == StepStatus.RETURNED:
            step.return_to_step_id = transition.return_to_step_id
        if transition.status == StepStatus.RESUBMITTED:
            step.resubmission_explanation = transition.resubmission_explanation
            step.next_step_id = transition.next_step_id
        self._touch(outcome, step, now)

        if transition.status == StepStatus.APPROVED:
            self._apply_approved(outcome, now)
        elif transition.status == StepStatus.REJECTED:
            self._apply_rejected(outcome, now)
        elif transition.status == StepStatus.RETURNED:
            self._apply_returned(outcome, transition, now)
        elif transition.status == StepStatus.RESUBMITTED:
            self._apply_resubmitted(outcome, transition, now)

        if outcome.workflow_status_changed:
            workflow.updated_at = now
        return outcome

    def _apply_approved(self, outcome: TransitionOutcome, now: datetime) -> None:
        workflow, step = outcome.workflow, outcome.step
        self._release_returners(outcome, now)

        if workflow.is_sequential:
            has_next = any(s.order == step.order + 1 for s in workflow.steps)
            if not has_next:
                workflow.status = WorkflowStatus.COMPLETED
            return

        # a RESUBMITTED step is its approver's corrected sign-off after a return;
        # resubmitting released the returners pointing at it (_release_returners)
        if all(
            s.status in (StepStatus.APPROVED, StepStatus.RESUBMITTED)
            for s in workflow.steps
        ):
            workflow.status = WorkflowStatus.COMPLETED

    def _apply_rejected(self, outcome: TransitionOutcome, now: datetime) -> None:
        outcome.workflow.status = WorkflowStatus.REJECTED

    def _apply_returned(
        self,
        outcome: TransitionOutcome,
        transition: ValidatedTransition,
        now: datetime,
    ) -> None:
        workflow, step = outcome.workflow, outcome.step
        target = self._step_of(workflow, transition.return_to_step_id)
        reason = step.rejection_reason or step.comment or ""

        target.reopen(self._clear_overdue)
        target.is_resubmitted = True
        self._touch(outcome, target, now)

        for other in workflow.steps:
            if other.id in (step.id, target.id):
                continue
            if other.order > target.order and not other.is_pending:
                other.reopen(self._clear_overdue)
                self._touch(outcome, other, now)

        # the returning step is reopened too; its return pointer stays as lineage
        step.reopen(self._clear_overdue, keep_return=True)
        self._touch(outcome, step, now)

        workflow.status = WorkflowStatus.IN_PROGRESS
        outcome.events.append(
            WorkflowEvent(
                event_type=WorkflowEventType.STEP_RETURNED,
                workflow_id=workflow.id,
                document_id=workflow.document_id,
                recipient_id=target.approver_id,
                step_id=target.id,
                actor_id=transition.actor_id,
                details={
                    "reason": reason,
                    "returned_by_step_id": step.id,
                },
                timestamp=now,
            )
        )

    def _apply_resubmitted(
        self,
        outcome: TransitionOutcome,
        transition: ValidatedTransition,
        now: datetime,
    ) -> None:
        workflow, step = outcome.workflow, outcome.step
        self._release_returners(outcome, now)

        target = self._step_of(workflow, transition.next_step_id)
        target.reopen(self._clear_overdue)
        self._touch(outcome, target, now)

        workflow.status = WorkflowStatus.IN_PROGRESS
        outcome.events.append(
            WorkflowEvent(
                event_type=WorkflowEventType.STEP_RESUBMITTED,
                workflow_id=workflow.id,
                document_id=workflow.document_id,
                recipient_id=target.approver_id,
                step_id=target.id,
                actor_id=transition.actor_id,
                details={
                    "explanation": step.resubmission_explanation or "",
                    "resubmitted_by_step_id": step.id,
                },
                timestamp=now,
            )
        )

    def _release_returners(self, outcome: TransitionOutcome, now: datetime) -> None:
        """
        Resolve the returns that sent the document to the decided step.

        Returners were reopened by the return itself, so only the return
        pointer is dropped. A returner that has decided again since keeps
        its new decision.
        """
        for returner in returners_of(outcome.workflow, outcome.step):
            returner.return_to_step_id = None
            if returner.is_pending:
                returner.rejection_reason = None
            self._touch(outcome, returner, now)

    def _step_of(self, workflow: Workflow, step_id: str | None) -> ApprovalStep:
        step = workflow.get_step(step_id) if step_id else None
        if step is None:
            raise SignoffError(
                f"Step {step_id} is not part of workflow {workflow.id}",
                details={"workflow_id": workflow.id, "step_id": step_id},
            )
        return step

    def _touch(self, outcome: TransitionOutcome, step: ApprovalStep, now: datetime) -> None:
        step.updated_at = now
        if all(s.id != step.id for s in outcome.changed_steps):
            outcome.changed_steps.append(step)

    def _persist(self, outcome: TransitionOutcome, conn: sqlite3.Connection) -> None:
        for step in outcome.changed_steps:
            self._repository.update_step(step.id, self._registry.step_values(step), conn)
        if outcome.workflow_status_changed:
            self._repository.update_workflow(
                outcome.workflow.id,
                {
                    "status": outcome.workflow.status.value,
                    "updated_at": format_timestamp(outcome.workflow.updated_at),
                },
                conn,
            )
