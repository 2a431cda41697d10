"""
Workflow statistics for signoff.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from signoff.models.base import utc_now
from signoff.workflows.models import StepStatus, WorkflowStatus, WorkflowType


@dataclass
class WorkflowStatistics:
    """
    Aggregate counts over every workflow and step.

    Attributes:
        total_workflows: Number of workflows.
        total_steps: Number of steps.
        workflows_by_status: Workflow count per WorkflowStatus value.
        workflows_by_type: Workflow count per WorkflowType value.
        steps_by_status: Step count per StepStatus value.
        overdue_steps: Steps flagged overdue.
        read_steps: Steps their approver has opened.
        unread_steps: Steps their approver has not opened.
        generated_at: When the counts were taken.
    """

    total_workflows: int = 0
    total_steps: int = 0
    workflows_by_status: dict[str, int] = field(default_factory=dict)
    workflows_by_type: dict[str, int] = field(default_factory=dict)
    steps_by_status: dict[str, int] = field(default_factory=dict)
    overdue_steps: int = 0
    read_steps: int = 0
    unread_steps: int = 0
    generated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_workflows": self.total_workflows,
            "total_steps": self.total_steps,
            "workflows_by_status": dict(self.workflows_by_status),
            "workflows_by_type": dict(self.workflows_by_type),
            "steps_by_status": dict(self.steps_by_status),
            "overdue_steps": self.overdue_steps,
            "read_steps": self.read_steps,
            "unread_steps": self.unread_steps,
            "generated_at": self.generated_at.isoformat(),
        }


def build_statistics(raw: dict[str, Any], now: datetime | None = None) -> WorkflowStatistics:
    """
    Build statistics from the raw counts of WorkflowRepository.get_statistics.

    Every enum value appears in the breakdowns, with zero when absent.
    """
    by_status = {s.value: int(raw["workflows_by_status"].get(s.value, 0)) for s in WorkflowStatus}
    by_type = {t.value: int(raw["workflows_by_type"].get(t.value, 0)) for t in WorkflowType}
    steps = {s.value: int(raw["steps_by_status"].get(s.value, 0)) for s in StepStatus}
    return WorkflowStatistics(
        total_workflows=sum(by_status.values()),
        total_steps=sum(steps.values()),
        workflows_by_status=by_status,
        workflows_by_type=by_type,
        steps_by_status=steps,
        overdue_steps=int(raw.get("overdue_steps", 0)),
        read_steps=int(raw.get("read_steps", 0)),
        unread_steps=int(raw.get("unread_steps", 0)),
        generated_at=now or utc_now(),
    )
