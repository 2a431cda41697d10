"""
Step registry for signoff.

The registry loads a workflow together with its ordered steps and
answers the ordering questions the rest of the engine asks: which
step is current, and whether a given step is it.
"""

import logging
import sqlite3
from typing import Any, Sequence

from signoff.exceptions import NotFoundError
from signoff.models.base import format_timestamp, parse_datetime, utc_now
from signoff.storage.repositories import WorkflowRepository
from signoff.workflows.models import (
    ApprovalStep,
    StepStatus,
    Workflow,
    WorkflowStatus,
    WorkflowType,
)


def current_pending_step(steps: Sequence[ApprovalStep]) -> ApprovalStep | None:
    """
    Return the first step in order that is still PENDING.

    Args:
        steps: Steps ordered by ascending order.

    Returns:
        The current step, or None if no step is pending.
    """
    for step in steps:
        if step.status == StepStatus.PENDING:
            return step
    return None


def is_current(step_id: str, steps: Sequence[ApprovalStep]) -> bool:
    """
    Check whether a step is the current step.

    True when no step is pending at all, or when the pending step with
    the lowest order is the given one.
    """
    current = current_pending_step(steps)
    return current is None or current.id == step_id


class StepRegistry:
    """
    Loads workflows and their ordered steps.

    The registry converts repository rows into Workflow and
    ApprovalStep objects, and converts mutated steps back into row
    values for persistence.
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        logger: logging.Logger | None = None,
    ) -> None:
        self._repository = repository
        self._logger = logger or logging.getLogger("signoff.workflows.registry")

    def steps_of(
        self,
        workflow_id: str,
        conn: sqlite3.Connection | None = None,
    ) -> list[ApprovalStep]:
        """
        Get the steps of a workflow ordered by ascending order.

        Raises:
            NotFoundError: If the workflow does not exist.
        """
        return self.load(workflow_id, conn).steps

    def load(
        self,
        workflow_id: str,
        conn: sqlite3.Connection | None = None,
    ) -> Workflow:
        """
        Load a workflow with its ordered steps.

        Raises:
            NotFoundError: If the workflow does not exist.
        """
        row = self._repository.get_workflow(workflow_id, conn)
        if row is None:
            self._logger.debug(f"Workflow {workflow_id} does not exist")
            raise NotFoundError(
                f"Approval workflow with ID {workflow_id} not found",
                details={"workflow_id": workflow_id},
            )
        steps = self._repository.get_steps(workflow_id, conn)
        return self.build_workflow(row, steps)

    def find_step(self, workflow: Workflow, step_id: str) -> ApprovalStep:
        """
        Look up a step inside a loaded workflow.

        Raises:
            NotFoundError: If the step does not belong to the workflow.
        """
        step = workflow.get_step(step_id)
        if step is None:
            raise NotFoundError(
                f"Approval step with ID {step_id} not found in workflow {workflow.id}",
                details={"workflow_id": workflow.id, "step_id": step_id},
            )
        return step

    def list_for_user(self, user_id: str) -> list[Workflow]:
        """Load every workflow a user initiated or approves, newest first."""
        rows = self._repository.list_for_user(user_id)
        steps = self._repository.get_steps_for_workflows(r["id"] for r in rows)
        return [self.build_workflow(row, steps.get(row["id"], [])) for row in rows]

    def build_workflow(
        self,
        row: dict[str, Any],
        step_rows: list[dict[str, Any]],
    ) -> Workflow:
        """Convert repository rows into a Workflow."""
        return Workflow(
            id=row["id"],
            document_id=row["document_id"],
            workflow_type=WorkflowType(row["type"]),
            status=WorkflowStatus(row["status"]),
            initiator_id=row["initiator_id"],
            deadline=parse_datetime(row["deadline"]),
            overdue_notified_at=parse_datetime(row.get("overdue_notified_at")),
            created_at=parse_datetime(row["created_at"]) or utc_now(),
            updated_at=parse_datetime(row["updated_at"]) or utc_now(),
            steps=[self.build_step(s) for s in step_rows],
        )

    def build_step(self, row: dict[str, Any]) -> ApprovalStep:
        """Convert a repository row into an ApprovalStep."""
        return ApprovalStep(
            id=row["id"],
            workflow_id=row["workflow_id"],
            approver_id=row["approver_id"],
            order=row["step_order"],
            status=StepStatus(row["status"]),
            deadline=parse_datetime(row["deadline"]),
            comment=row["comment"],
            rejection_reason=row["rejection_reason"],
            resubmission_explanation=row["resubmission_explanation"],
            return_to_step_id=row["return_to_step_id"],
            next_step_id=row["next_step_id"],
            is_resubmitted=bool(row["is_resubmitted"]),
            is_overdue=bool(row["is_overdue"]),
            is_read=bool(row["is_read"]),
            completed_at=parse_datetime(row["completed_at"]),
            created_at=parse_datetime(row["created_at"]) or utc_now(),
            updated_at=parse_datetime(row["updated_at"]) or utc_now(),
        )

    def step_values(self, step: ApprovalStep) -> dict[str, Any]:
        """Convert the mutable fields of a step into row values."""
        return {
            "status": step.status.value,
            "comment": step.comment,
            "rejection_reason": step.rejection_reason,
            "resubmission_explanation": step.resubmission_explanation,
            "return_to_step_id": step.return_to_step_id,
            "next_step_id": step.next_step_id,
            "is_resubmitted": int(step.is_resubmitted),
            "is_overdue": int(step.is_overdue),
            "is_read": int(step.is_read),
            "completed_at": format_timestamp(step.completed_at),
            "updated_at": format_timestamp(step.updated_at),
        }


def is_later_approver(workflow: Workflow, step: ApprovalStep, user_id: str) -> bool:
    """
    Check whether a user approves a step ordered after ``step``.

    Only meaningful for SEQUENTIAL workflows, where a later approver
    may return or resubmit an earlier step.
    """
    return any(
        s.approver_id == user_id and s.order > step.order for s in workflow.steps
    )


def can_act_on(workflow: Workflow, step: ApprovalStep, user_id: str) -> bool:
    """
    Check whether a user may act on a step at all.

    The step's own approver always may. For SEQUENTIAL workflows, so
    may the approver of any later step.
    """
    if step.approver_id == user_id:
        return True
    return workflow.is_sequential and is_later_approver(workflow, step, user_id)
