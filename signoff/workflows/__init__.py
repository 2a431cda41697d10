"""
Approval workflow engine for signoff.

This package holds the workflow state machine: the step registry, the
transition validator, the orchestrator applying validated transitions,
the return and resubmission router, and the deadline sweeper. The
ApprovalWorkflowService ties them together.
"""

from signoff.workflows.events import (
    CollectingSink,
    EventPublisher,
    NotificationSink,
    WorkflowEvent,
    WorkflowEventType,
)
from signoff.workflows.locks import KeyedLocks
from signoff.workflows.models import (
    ApprovalStep,
    AssignedStep,
    HistoryEntry,
    ReturnTarget,
    StatusUpdate,
    StepSpec,
    StepStatus,
    Workflow,
    WorkflowStatus,
    WorkflowType,
)
from signoff.workflows.orchestrator import TransitionOutcome, WorkflowOrchestrator
from signoff.workflows.registry import StepRegistry, current_pending_step, is_current
from signoff.workflows.router import ReturnRouter
from signoff.workflows.service import ApprovalWorkflowService
from signoff.workflows.statistics import WorkflowStatistics
from signoff.workflows.sweeper import DeadlineSweeper, SweepResult
from signoff.workflows.validator import (
    TransitionFailure,
    TransitionResult,
    TransitionValidator,
    ValidatedTransition,
)

__all__ = [
    "ApprovalStep",
    "ApprovalWorkflowService",
    "AssignedStep",
    "CollectingSink",
    "DeadlineSweeper",
    "EventPublisher",
    "HistoryEntry",
    "KeyedLocks",
    "NotificationSink",
    "ReturnRouter",
    "ReturnTarget",
    "StatusUpdate",
    "StepRegistry",
    "StepSpec",
    "StepStatus",
    "SweepResult",
    "TransitionFailure",
    "TransitionOutcome",
    "TransitionResult",
    "TransitionValidator",
    "ValidatedTransition",
    "Workflow",
    "WorkflowEvent",
    "WorkflowEventType",
    "WorkflowOrchestrator",
    "WorkflowStatistics",
    "WorkflowStatus",
    "WorkflowType",
    "current_pending_step",
    "is_current",
]
