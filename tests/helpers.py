"""
Test utilities and helpers for signoff tests.

This module provides:
- Factory functions for in-memory workflows
- An in-memory user directory
- Shortcuts for driving the service in scenario tests
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable

from signoff.directory.models import UserRecord
from signoff.workflows.models import (
    ApprovalStep,
    StatusUpdate,
    StepStatus,
    Workflow,
    WorkflowStatus,
    WorkflowType,
)
from signoff.workflows.service import ApprovalWorkflowService


FIXED_NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    """Clock that always returns FIXED_NOW."""
    return FIXED_NOW


# =============================================================================
# Factory Functions - Workflow Objects
# =============================================================================


class WorkflowFactory:
    """Factory for building workflows in memory, without storage."""

    @staticmethod
    def build(
        approvers: list[str],
        workflow_type: WorkflowType = WorkflowType.SEQUENTIAL,
        status: WorkflowStatus = WorkflowStatus.IN_PROGRESS,
        statuses: list[StepStatus] | None = None,
        workflow_id: str = "wf-1",
    ) -> Workflow:
        """
        Build a workflow with one step per approver.

        Step ids are ``s1``, ``s2``, ... in approver order. SEQUENTIAL
        steps are ordered 1..N, PARALLEL steps all have order 1.

        Args:
            approvers: Approver id of each step.
            workflow_type: SEQUENTIAL or PARALLEL.
            status: Workflow status.
            statuses: Optional status of each step; PENDING by default.
            workflow_id: Id of the workflow.
        """
        statuses = statuses or [StepStatus.PENDING] * len(approvers)
        steps = []
        for index, (approver, step_status) in enumerate(zip(approvers, statuses), start=1):
            steps.append(
                ApprovalStep(
                    id=f"s{index}",
                    workflow_id=workflow_id,
                    approver_id=approver,
                    order=index if workflow_type == WorkflowType.SEQUENTIAL else 1,
                    status=step_status,
                )
            )
        return Workflow(
            id=workflow_id,
            document_id="doc-1",
            workflow_type=workflow_type,
            status=status,
            initiator_id="owner",
            steps=steps,
        )


class StaticUserDirectory:
    """In-memory UserDirectory holding a fixed set of users."""

    def __init__(self, user_ids: Iterable[str]) -> None:
        self._users = {
            uid: UserRecord(
                id=uid,
                username=uid,
                email=f"{uid}@example.com",
                display_name=uid.title(),
            )
            for uid in user_ids
        }

    def get_user(self, user_id: str) -> UserRecord | None:
        return self._users.get(user_id)

    def get_users(self, user_ids: Iterable[str]) -> dict[str, UserRecord]:
        return {uid: self._users[uid] for uid in user_ids if uid in self._users}


# =============================================================================
# Service Shortcuts
# =============================================================================


def step_of(workflow: Workflow, approver_id: str) -> ApprovalStep:
    """Return the first step of ``workflow`` assigned to ``approver_id``."""
    steps = workflow.steps_for(approver_id)
    assert steps, f"{approver_id} approves no step of workflow {workflow.id}"
    return steps[0]


def create_workflow(
    service: ApprovalWorkflowService,
    document_id: str,
    approvers: list[str],
    workflow_type: str = "SEQUENTIAL",
    initiator_id: str = "owner",
    deadline: datetime | str | None = None,
    step_deadline: datetime | str | None = None,
) -> Workflow:
    """Create a workflow with one step per approver, ordered as given."""
    steps: list[dict[str, Any]] = []
    for index, approver in enumerate(approvers, start=1):
        spec: dict[str, Any] = {
            "approver_id": approver,
            "order": index if workflow_type == "SEQUENTIAL" else 1,
        }
        if step_deadline is not None:
            spec["deadline"] = step_deadline
        steps.append(spec)
    return service.create_workflow(
        document_id=document_id,
        workflow_type=workflow_type,
        steps=steps,
        initiator_id=initiator_id,
        deadline=deadline,
    )


def decide(
    service: ApprovalWorkflowService,
    workflow: Workflow,
    approver_id: str,
    status: str,
    step_owner: str | None = None,
    **fields: Any,
) -> ApprovalStep:
    """
    Decide a step through the service.

    Args:
        service: The service under test.
        workflow: The workflow; only its step ids are used.
        approver_id: The acting user.
        status: The requested status.
        step_owner: Approver whose step is decided; defaults to the actor.
        **fields: Payload fields such as ``rejection_reason``.
    """
    step = step_of(workflow, step_owner or approver_id)
    payload = {"status": status, **fields}
    return service.update_step_status(workflow.id, step.id, payload, approver_id)


def statuses_of(service: ApprovalWorkflowService, workflow_id: str) -> list[StepStatus]:
    """Return the stored status of each step, in order."""
    return [s.status for s in service.registry.load(workflow_id).steps]


def update(status: StepStatus, **fields: Any) -> StatusUpdate:
    """Build a StatusUpdate."""
    return StatusUpdate(status=status, **fields)
