"""
Return and resubmission routing for signoff.

The router computes which steps a document may be sent back to and
answers the "who sent this back to me" and return history queries.
Identities of approvers are resolved through the user directory and
attached to flat projections.
"""

import logging
from typing import Any, Iterable

from signoff.directory.interfaces import UserDirectory
from signoff.exceptions import ForbiddenError, NotFoundError
from signoff.workflows.models import (
    ApprovalStep,
    HistoryEntry,
    ReturnTarget,
    StepStatus,
    Workflow,
)
from signoff.workflows.registry import can_act_on


def eligible_return_steps(workflow: Workflow, step: ApprovalStep) -> list[ApprovalStep]:
    """
    Compute the steps a document may be returned to from ``step``.

    SEQUENTIAL workflows allow every step ordered before ``step``.
    PARALLEL workflows allow every other step.
    """
    if workflow.is_sequential:
        return [s for s in workflow.steps if s.order < step.order]
    return [s for s in workflow.steps if s.id != step.id]


def returners_of(workflow: Workflow, step: ApprovalStep) -> list[ApprovalStep]:
    """Return the steps whose unresolved return points at ``step``."""
    return [s for s in workflow.steps if s.return_to_step_id == step.id]


class ReturnRouter:
    """
    Answers routing queries about returned and resubmitted steps.

    Example:
        Listing return targets::

            router = ReturnRouter(user_directory)
            targets = router.eligible_return_targets(workflow, step, user_id)
    """

    def __init__(
        self,
        users: UserDirectory,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the router.

        Args:
            users: Directory used to resolve approver identities.
            logger: Logger to use instead of the module logger.
        """
        self._users = users
        self._logger = logger or logging.getLogger("signoff.workflows.router")

    def eligible_return_targets(
        self,
        workflow: Workflow,
        step: ApprovalStep,
        user_id: str,
    ) -> list[ReturnTarget]:
        """
        List the steps the caller may return ``step`` to.

        Raises:
            ForbiddenError: If the caller may not act on the step.
        """
        if not can_act_on(workflow, step, user_id):
            raise ForbiddenError(
                "You are not the approver for this step",
                details={"workflow_id": workflow.id, "step_id": step.id},
            )
        steps = eligible_return_steps(workflow, step)
        identities = self._identities(s.approver_id for s in steps)
        return [
            ReturnTarget(
                step_id=s.id,
                approver_id=s.approver_id,
                order=s.order,
                approver=identities.get(s.approver_id),
            )
            for s in steps
        ]

    def resubmission_target(
        self,
        workflow: Workflow,
        step: ApprovalStep,
        user_id: str,
    ) -> dict[str, Any]:
        """
        Find who returned ``step`` to its approver.

        Returns:
            The returning approver's identity, with the returning step's
            id and order.

        Raises:
            ForbiddenError: If the caller is not the step's approver.
            NotFoundError: If the step was never returned or the
                returning step no longer points at it.
        """
        if step.approver_id != user_id:
            raise ForbiddenError(
                "You are not the approver for this step",
                details={"workflow_id": workflow.id, "step_id": step.id},
            )
        if not (step.is_resubmitted or step.status == StepStatus.RETURNED):
            raise NotFoundError(
                "This step has not been returned",
                details={"step_id": step.id},
            )
        returners = returners_of(workflow, step)
        if not returners:
            raise NotFoundError(
                "No step returned the document to this step",
                details={"step_id": step.id},
            )
        returner = returners[-1]
        identity = self._identity(returner.approver_id)
        identity["step_id"] = returner.id
        identity["order"] = returner.order
        return identity

    def return_history(self, workflow: Workflow, user_id: str) -> list[HistoryEntry]:
        """
        List the returned and resubmitted steps of a workflow.

        A returning step is reopened by its own return, so it is listed
        as RETURNED for as long as its return is unresolved.

        Raises:
            ForbiddenError: If the caller approves no step of the workflow.
        """
        if not workflow.is_approver(user_id):
            raise ForbiddenError(
                "You do not have permission to view the return history of this workflow",
                details={"workflow_id": workflow.id},
            )
        entries = [
            s
            for s in workflow.steps
            if s.has_open_return
            or s.status in (StepStatus.RETURNED, StepStatus.RESUBMITTED)
        ]
        referenced: list[str] = []
        for s in entries:
            referenced.append(s.approver_id)
            for target_id in (s.return_to_step_id, s.next_step_id):
                target = workflow.get_step(target_id) if target_id else None
                if target is not None:
                    referenced.append(target.approver_id)
        identities = self._identities(referenced)

        def identity_of(step_id: str | None) -> dict[str, Any] | None:
            target = workflow.get_step(step_id) if step_id else None
            if target is None:
                return None
            return identities.get(target.approver_id, {"id": target.approver_id})

        return [
            HistoryEntry(
                step_id=s.id,
                order=s.order,
                status=(
                    StepStatus.RESUBMITTED
                    if s.status == StepStatus.RESUBMITTED
                    else StepStatus.RETURNED
                ),
                approver_id=s.approver_id,
                approver=identities.get(s.approver_id),
                return_to_step_id=s.return_to_step_id,
                return_to=identity_of(s.return_to_step_id),
                next_step_id=s.next_step_id,
                resubmit_to=identity_of(s.next_step_id),
                rejection_reason=s.rejection_reason,
                resubmission_explanation=s.resubmission_explanation,
                comment=s.comment,
                completed_at=s.completed_at,
            )
            for s in entries
        ]

    def _identities(self, user_ids: Iterable[str]) -> dict[str, dict[str, Any]]:
        records = self._users.get_users(user_ids)
        return {uid: record.identity() for uid, record in records.items()}

    def _identity(self, user_id: str) -> dict[str, Any]:
        record = self._users.get_user(user_id)
        if record is None:
            self._logger.warning(f"Approver {user_id} is missing from the user directory")
            return {"id": user_id}
        return record.identity()
