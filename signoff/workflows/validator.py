"""
Transition validation for signoff.

The validator decides whether a requested step status change is legal
before anything is mutated. It performs no I/O and raises nothing: the
outcome is a TransitionResult holding either a ValidatedTransition or a
TransitionFailure with a typed ErrorKind.

Rules are evaluated in order and the first failure wins:

1. Authorization: the step's approver, or for SEQUENTIAL workflows the
   approver of a later step.
2. Terminal workflows accept no transitions.
3. A direct approver cannot decide a step twice.
4. In SEQUENTIAL workflows the direct approver may only act on the
   current step.
5. Payload completeness for the requested status.
6. A later approver may only return or resubmit.
7. Return target validity.
8. Resubmission target validity.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from signoff.exceptions import ErrorKind, SignoffError, WorkflowError, error_for_kind
from signoff.workflows.models import (
    ApprovalStep,
    DECISION_STATUSES,
    StatusUpdate,
    StepStatus,
    Workflow,
    WorkflowStatus,
)
from signoff.workflows.registry import current_pending_step, is_later_approver
from signoff.workflows.router import eligible_return_steps


@dataclass(frozen=True)
class ValidatedTransition:
    """
    A transition that passed validation, with its targets resolved.

    Attributes:
        workflow_id: The workflow being changed.
        step_id: The step being decided.
        actor_id: The user making the request.
        status: The requested step status.
        by_later_approver: True if the actor approves a later step
            rather than this one.
        comment: Comment to record with the decision.
        rejection_reason: Reason for a rejection or return.
        resubmission_explanation: Explanation for a resubmission.
        return_to_step_id: Resolved return target.
        next_step_id: Resolved resubmission target.
    """

    workflow_id: str
    step_id: str
    actor_id: str
    status: StepStatus
    by_later_approver: bool = False
    comment: str | None = None
    rejection_reason: str | None = None
    resubmission_explanation: str | None = None
    return_to_step_id: str | None = None
    next_step_id: str | None = None


@dataclass(frozen=True)
class TransitionFailure:
    """A typed reason why a transition was refused."""

    kind: ErrorKind
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_error(self) -> WorkflowError:
        """Build the matching WorkflowError."""
        return error_for_kind(self.kind, self.message, dict(self.details))


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of validating one transition request."""

    transition: ValidatedTransition | None = None
    failure: TransitionFailure | None = None

    @property
    def ok(self) -> bool:
        """Whether the transition is allowed."""
        return self.failure is None

    def raise_for_failure(self) -> ValidatedTransition:
        """
        Return the validated transition or raise the typed failure.

        Raises:
            WorkflowError: The subclass matching the failure kind.
        """
        if self.failure is not None:
            raise self.failure.to_error()
        if self.transition is None:
            raise SignoffError("Transition result holds neither a transition nor a failure")
        return self.transition


def _filled(value: str | None) -> bool:
    return value is not None and str(value).strip() != ""


class TransitionValidator:
    """
    Pure decision logic for step status changes.

    Example:
        Validating a request::

            validator = TransitionValidator()
            result = validator.validate(workflow, step, "u2", update)
            if not result.ok:
                print(result.failure.kind, result.failure.message)
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("signoff.workflows.validator")

    def validate(
        self,
        workflow: Workflow,
        step: ApprovalStep,
        actor_id: str,
        update: StatusUpdate,
    ) -> TransitionResult:
        """
        Decide whether ``actor_id`` may apply ``update`` to ``step``.

        Args:
            workflow: The workflow with its ordered steps.
            step: The step being decided; must belong to ``workflow``.
            actor_id: The user making the request.
            update: The requested status and its payload.

        Returns:
            A TransitionResult with either the transition or the failure.
        """
        result = self._check(workflow, step, actor_id, update)
        if result.failure is not None:
            self._logger.debug(
                f"Refused {update.status.value} on step {step.id} by {actor_id}: "
                f"{result.failure.message}"
            )
        return result

    def _check(
        self,
        workflow: Workflow,
        step: ApprovalStep,
        actor_id: str,
        update: StatusUpdate,
    ) -> TransitionResult:
        details = {"workflow_id": workflow.id, "step_id": step.id}
        direct = step.approver_id == actor_id
        later = (
            not direct
            and workflow.is_sequential
            and is_later_approver(workflow, step, actor_id)
        )

        if not direct and not later:
            return self._fail(ErrorKind.FORBIDDEN, "You are not the approver for this step", details)

        if workflow.status in (WorkflowStatus.COMPLETED, WorkflowStatus.REJECTED):
            return self._fail(
                ErrorKind.BAD_REQUEST,
                f"This approval workflow has already been {workflow.status.value.lower()}",
                details,
            )

        if direct and not step.is_pending:
            return self._fail(
                ErrorKind.BAD_REQUEST,
                f"This step has already been {step.status.value.lower()}",
                details,
            )

        if direct and workflow.is_sequential:
            current = current_pending_step(workflow.steps)
            if current is None or current.id != step.id:
                return self._fail(
                    ErrorKind.BAD_REQUEST,
                    "This step is not currently active in the sequential workflow",
                    details,
                )

        failure = self._check_payload(update, details)
        if failure is not None:
            return TransitionResult(failure=failure)

        if later and update.status not in (StepStatus.RETURNED, StepStatus.RESUBMITTED):
            return self._fail(
                ErrorKind.FORBIDDEN,
                "A later approver may only return or resubmit an earlier step",
                details,
            )

        return_to_step_id = None
        next_step_id = None
        if update.status == StepStatus.RETURNED:
            target_or_failure = self._resolve_return_target(workflow, step, update.return_to_user_id or "")
            if isinstance(target_or_failure, TransitionFailure):
                return TransitionResult(failure=target_or_failure)
            return_to_step_id = target_or_failure.id
        elif update.status == StepStatus.RESUBMITTED:
            target_or_failure = self._resolve_resubmit_target(workflow, step, update.resubmit_to_user_id or "")
            if isinstance(target_or_failure, TransitionFailure):
                return TransitionResult(failure=target_or_failure)
            next_step_id = target_or_failure.id

        return TransitionResult(
            transition=ValidatedTransition(
                workflow_id=workflow.id,
                step_id=step.id,
                actor_id=actor_id,
                status=update.status,
                by_later_approver=later,
                comment=update.comment,
                rejection_reason=update.rejection_reason,
                resubmission_explanation=update.resubmission_explanation,
                return_to_step_id=return_to_step_id,
                next_step_id=next_step_id,
            )
        )

    def _check_payload(
        self,
        update: StatusUpdate,
        details: dict[str, Any],
    ) -> TransitionFailure | None:
        status = update.status
        if status not in DECISION_STATUSES:
            valid = ", ".join(s.value for s in DECISION_STATUSES)
            return TransitionFailure(ErrorKind.BAD_REQUEST, f"Status must be one of: {valid}", details)
        if status == StepStatus.REJECTED and not _filled(update.rejection_reason):
            return TransitionFailure(
                ErrorKind.BAD_REQUEST,
                "Rejection reason is required when rejecting a step",
                details,
            )
        if status == StepStatus.RETURNED and not _filled(update.return_to_user_id):
            return TransitionFailure(
                ErrorKind.BAD_REQUEST,
                "Return to user is required when returning a step",
                details,
            )
        if status == StepStatus.RESUBMITTED:
            if not _filled(update.resubmission_explanation):
                return TransitionFailure(
                    ErrorKind.BAD_REQUEST,
                    "Resubmission explanation is required when resubmitting a step",
                    details,
                )
            if not _filled(update.resubmit_to_user_id):
                return TransitionFailure(
                    ErrorKind.BAD_REQUEST,
                    "Resubmit to user is required when resubmitting a step",
                    details,
                )
        return None

    def _resolve_return_target(
        self,
        workflow: Workflow,
        step: ApprovalStep,
        user_id: str,
    ) -> ApprovalStep | TransitionFailure:
        details = {"workflow_id": workflow.id, "step_id": step.id, "return_to_user_id": user_id}
        candidates = workflow.steps_for(user_id)
        if not candidates:
            return TransitionFailure(
                ErrorKind.BAD_REQUEST,
                f"Return step for user {user_id} not found in workflow",
                details,
            )
        if workflow.is_sequential:
            candidates = [c for c in candidates if c.order < step.order]
            if not candidates:
                return TransitionFailure(
                    ErrorKind.BAD_REQUEST,
                    "Cannot return to a step with the same or higher order",
                    details,
                )
        else:
            candidates = [c for c in candidates if c.id != step.id]
            if not candidates:
                return TransitionFailure(
                    ErrorKind.BAD_REQUEST,
                    "Cannot return a step to itself",
                    details,
                )
        eligible = {s.id for s in eligible_return_steps(workflow, step)}
        candidates = [c for c in candidates if c.id in eligible]
        if not candidates:
            return TransitionFailure(
                ErrorKind.BAD_REQUEST,
                f"User {user_id} is not a returnable user for this step",
                details,
            )
        # nearest earlier step for SEQUENTIAL, first match for PARALLEL
        return candidates[-1] if workflow.is_sequential else candidates[0]

    def _resolve_resubmit_target(
        self,
        workflow: Workflow,
        step: ApprovalStep,
        user_id: str,
    ) -> ApprovalStep | TransitionFailure:
        details = {"workflow_id": workflow.id, "step_id": step.id, "resubmit_to_user_id": user_id}
        candidates = workflow.steps_for(user_id)
        if not candidates:
            return TransitionFailure(
                ErrorKind.BAD_REQUEST,
                f"Resubmission step for user {user_id} not found in workflow",
                details,
            )
        candidates = [c for c in candidates if c.id != step.id]
        if not candidates:
            return TransitionFailure(
                ErrorKind.BAD_REQUEST,
                "Cannot resubmit a step to itself",
                details,
            )
        if workflow.is_sequential:
            candidates = [c for c in candidates if c.order > step.order]
            if not candidates:
                return TransitionFailure(
                    ErrorKind.BAD_REQUEST,
                    "Cannot resubmit to a step with the same or lower order",
                    details,
                )
        return candidates[0]

    def _fail(
        self,
        kind: ErrorKind,
        message: str,
        details: dict[str, Any],
    ) -> TransitionResult:
        return TransitionResult(failure=TransitionFailure(kind, message, details))
