"""
Approval workflow data models for signoff.

This module defines the workflow and step records manipulated by the
state machine, the request payloads accepted by the service, and the
flat projections returned by its queries.

Steps reference each other by id only (``return_to_step_id`` and
``next_step_id``). Every operation resolves those ids against the
ordered step list it fetched once, so the pointer graph never holds
live object references.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from signoff.models.base import generate_uuid, parse_datetime, utc_now


class WorkflowType(Enum):
    """How approvers act within a workflow."""

    SEQUENTIAL = "SEQUENTIAL"
    """Approvers act one at a time in ascending step order."""

    PARALLEL = "PARALLEL"
    """Approvers act independently; all of them must approve."""


class WorkflowStatus(Enum):
    """
    Status values for the workflow lifecycle.

    A workflow is created PENDING and moves to IN_PROGRESS within the
    creating transaction. COMPLETED and REJECTED are terminal.
    """

    PENDING = "PENDING"
    """Workflow rows exist but the first step is not live yet."""

    IN_PROGRESS = "IN_PROGRESS"
    """At least one step is awaiting a decision."""

    COMPLETED = "COMPLETED"
    """Every required approval was given."""

    REJECTED = "REJECTED"
    """A step was rejected; the workflow accepts no further transitions."""

    @property
    def is_active(self) -> bool:
        """Whether the workflow still counts as the document's active workflow."""
        return self in (WorkflowStatus.PENDING, WorkflowStatus.IN_PROGRESS)


class StepStatus(Enum):
    """Status values for a single approval step."""

    PENDING = "PENDING"
    """Awaiting the approver's decision."""

    APPROVED = "APPROVED"
    """The approver signed off."""

    REJECTED = "REJECTED"
    """The approver rejected the document, ending the workflow."""

    RETURNED = "RETURNED"
    """The approver sent the document back to another step for correction."""

    RESUBMITTED = "RESUBMITTED"
    """The corrected step was forwarded to a named approver."""


DECISION_STATUSES = (
    StepStatus.APPROVED,
    StepStatus.REJECTED,
    StepStatus.RETURNED,
    StepStatus.RESUBMITTED,
)


@dataclass
class ApprovalStep:
    """
    A single approver's decision point within a workflow.

    Attributes:
        id: Unique identifier for the step.
        workflow_id: The owning workflow.
        approver_id: User expected to decide this step.
        order: Position of the step; 1..N for SEQUENTIAL, always 1 for PARALLEL.
        status: Current decision status.
        deadline: Optional time by which a decision is expected.
        comment: Free-form comment left with the decision.
        rejection_reason: Reason given when rejecting or returning.
        resubmission_explanation: Explanation given when resubmitting.
        return_to_step_id: Step this one returned the document to. Kept
            after the step is reopened, until the step it points at is
            approved or resubmitted.
        next_step_id: Step this one resubmitted the document to.
        is_resubmitted: True when the document was returned to this step.
        is_overdue: True once the deadline sweeper flagged the step.
        is_read: True once the approver opened the step.
        completed_at: When the current decision was recorded.
        created_at: When the step was created.
        updated_at: When the step was last modified.
    """

    id: str = field(default_factory=generate_uuid)
    workflow_id: str = ""
    approver_id: str = ""
    order: int = 1
    status: StepStatus = StepStatus.PENDING
    deadline: datetime | None = None
    comment: str | None = None
    rejection_reason: str | None = None
    resubmission_explanation: str | None = None
    return_to_step_id: str | None = None
    next_step_id: str | None = None
    is_resubmitted: bool = False
    is_overdue: bool = False
    is_read: bool = False
    completed_at: datetime | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_pending(self) -> bool:
        """Whether the step is still awaiting a decision."""
        return self.status == StepStatus.PENDING

    @property
    def has_open_return(self) -> bool:
        """Whether the step returned the document and that return is unresolved."""
        return self.return_to_step_id is not None

    def reopen(self, clear_overdue: bool = True, keep_return: bool = False) -> None:
        """
        Reset the step to PENDING and discard its prior decision.

        Args:
            clear_overdue: Also clear the overdue flag, so a lapsed
                deadline from before the reset is not reported again.
            keep_return: Keep ``return_to_step_id`` and the return reason,
                so the step still records whom it sent the document back to.
        """
        self.status = StepStatus.PENDING
        self.comment = None
        self.resubmission_explanation = None
        self.next_step_id = None
        if not keep_return:
            self.rejection_reason = None
            self.return_to_step_id = None
        self.is_resubmitted = False
        self.completed_at = None
        if clear_overdue:
            self.is_overdue = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "approver_id": self.approver_id,
            "order": self.order,
            "status": self.status.value,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "comment": self.comment,
            "rejection_reason": self.rejection_reason,
            "resubmission_explanation": self.resubmission_explanation,
            "return_to_step_id": self.return_to_step_id,
            "next_step_id": self.next_step_id,
            "is_resubmitted": self.is_resubmitted,
            "is_overdue": self.is_overdue,
            "is_read": self.is_read,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class Workflow:
    """
    The approval process attached to one document.

    Attributes:
        id: Unique identifier for the workflow.
        document_id: The document being approved.
        workflow_type: SEQUENTIAL or PARALLEL.
        status: Current lifecycle status.
        initiator_id: User who started the workflow.
        deadline: Optional overall deadline.
        overdue_notified_at: When the sweeper last reported the workflow overdue.
        created_at: When the workflow was created.
        updated_at: When the workflow was last modified.
        steps: Steps ordered by ascending order.
    """

    id: str = field(default_factory=generate_uuid)
    document_id: str = ""
    workflow_type: WorkflowType = WorkflowType.SEQUENTIAL
    status: WorkflowStatus = WorkflowStatus.PENDING
    initiator_id: str = ""
    deadline: datetime | None = None
    overdue_notified_at: datetime | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    steps: list[ApprovalStep] = field(default_factory=list)

    @property
    def is_sequential(self) -> bool:
        """Whether approvers act in a fixed order."""
        return self.workflow_type == WorkflowType.SEQUENTIAL

    def get_step(self, step_id: str) -> ApprovalStep | None:
        """Find a step of this workflow by id."""
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def steps_for(self, user_id: str) -> list[ApprovalStep]:
        """Return the steps assigned to a user, in order."""
        return [s for s in self.steps if s.approver_id == user_id]

    def is_approver(self, user_id: str) -> bool:
        """Whether the user is the approver of any step."""
        return any(s.approver_id == user_id for s in self.steps)

    def to_dict(self, include_steps: bool = True) -> dict[str, Any]:
        """Convert to dictionary."""
        result: dict[str, Any] = {
            "id": self.id,
            "document_id": self.document_id,
            "type": self.workflow_type.value,
            "status": self.status.value,
            "initiator_id": self.initiator_id,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "overdue_notified_at": (
                self.overdue_notified_at.isoformat()
                if self.overdue_notified_at
                else None
            ),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
        if include_steps:
            result["steps"] = [s.to_dict() for s in self.steps]
        return result


@dataclass
class StepSpec:
    """
    A step requested at workflow creation.

    Attributes:
        approver_id: User who must decide the step.
        order: Requested position of the step.
        deadline: Optional step deadline.
    """

    approver_id: str
    order: int
    deadline: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StepSpec":
        """
        Build a step spec from a request payload.

        Raises:
            ValueError: If a field has the wrong type.
        """
        if not isinstance(data, dict):
            raise ValueError("Each step must be an object")
        approver_id = data.get("approver_id")
        if not approver_id:
            raise ValueError("Each step requires an approver_id")
        try:
            order = int(data.get("order", 0))
        except (TypeError, ValueError):
            raise ValueError("Step order must be an integer")
        try:
            deadline = parse_datetime(data.get("deadline"))
        except (TypeError, ValueError):
            raise ValueError(f"Invalid step deadline '{data.get('deadline')}'")
        return cls(approver_id=str(approver_id), order=order, deadline=deadline)


@dataclass
class StatusUpdate:
    """
    A requested status change for one step.

    Only the fields relevant to ``status`` are read: REJECTED uses
    ``rejection_reason``, RETURNED uses ``return_to_user_id`` and
    RESUBMITTED uses ``resubmission_explanation`` and
    ``resubmit_to_user_id``.
    """

    status: StepStatus
    comment: str | None = None
    rejection_reason: str | None = None
    return_to_user_id: str | None = None
    resubmission_explanation: str | None = None
    resubmit_to_user_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StatusUpdate":
        """
        Build a status update from a request payload.

        Raises:
            ValueError: If the status is missing or unknown.
        """
        raw_status = data.get("status")
        if not raw_status:
            raise ValueError("Field 'status' is required")
        try:
            status = StepStatus(str(raw_status).upper())
        except ValueError:
            valid = ", ".join(s.value for s in DECISION_STATUSES)
            raise ValueError(f"Invalid status '{raw_status}'. Must be one of: {valid}")
        return cls(
            status=status,
            comment=data.get("comment"),
            rejection_reason=data.get("rejection_reason"),
            return_to_user_id=data.get("return_to_user_id"),
            resubmission_explanation=data.get("resubmission_explanation"),
            resubmit_to_user_id=data.get("resubmit_to_user_id"),
        )


@dataclass
class AssignedStep:
    """
    A step projected together with its workflow and document summary.

    Returned by the pending-approvals and returned-steps queries.
    """

    step: ApprovalStep
    workflow_type: WorkflowType
    workflow_status: WorkflowStatus
    document_id: str
    document_title: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result = self.step.to_dict()
        result["workflow"] = {
            "id": self.step.workflow_id,
            "type": self.workflow_type.value,
            "status": self.workflow_status.value,
            "document_id": self.document_id,
            "document_title": self.document_title,
        }
        return result


@dataclass
class ReturnTarget:
    """A step the document may be returned to."""

    step_id: str
    approver_id: str
    order: int
    approver: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "step_id": self.step_id,
            "approver_id": self.approver_id,
            "order": self.order,
            "approver": self.approver,
        }


@dataclass
class HistoryEntry:
    """
    A returned or resubmitted step with its resolved routing targets.

    Attributes:
        step_id: The step that returned or resubmitted.
        order: Order of that step.
        status: RESUBMITTED, or RETURNED for a step whose return is
            unresolved.
        approver_id: Approver of the step.
        approver: Identity of the approver, if resolvable.
        return_to_step_id: Target of a return.
        return_to: Identity of the return target's approver.
        next_step_id: Target of a resubmission.
        resubmit_to: Identity of the resubmission target's approver.
        rejection_reason: Reason given with a return.
        resubmission_explanation: Explanation given with a resubmission.
        comment: Comment left with the decision.
        completed_at: When the decision was recorded.
    """

    step_id: str
    order: int
    status: StepStatus
    approver_id: str
    approver: dict[str, Any] | None = None
    return_to_step_id: str | None = None
    return_to: dict[str, Any] | None = None
    next_step_id: str | None = None
    resubmit_to: dict[str, Any] | None = None
    rejection_reason: str | None = None
    resubmission_explanation: str | None = None
    comment: str | None = None
    completed_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "step_id": self.step_id,
            "order": self.order,
            "status": self.status.value,
            "approver_id": self.approver_id,
            "approver": self.approver,
            "return_to_step_id": self.return_to_step_id,
            "return_to": self.return_to,
            "next_step_id": self.next_step_id,
            "resubmit_to": self.resubmit_to,
            "rejection_reason": self.rejection_reason,
            "resubmission_explanation": self.resubmission_explanation,
            "comment": self.comment,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
