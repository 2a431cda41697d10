"""
Tests for the signoff step registry.

Covers the ordering helpers (current pending step, is_current, later
approvers) and loading workflows from storage.
"""

import pytest

from signoff.exceptions import NotFoundError
from signoff.storage.database import Database
from signoff.storage.repositories import WorkflowRepository
from signoff.workflows.models import StepStatus, WorkflowStatus, WorkflowType
from signoff.workflows.registry import (
    StepRegistry,
    can_act_on,
    current_pending_step,
    is_current,
    is_later_approver,
)
from signoff.workflows.service import ApprovalWorkflowService

from tests.helpers import WorkflowFactory, create_workflow


class TestCurrentPendingStep:
    """Tests for current_pending_step and is_current."""

    def test_first_pending_step_is_current(self) -> None:
        """Test that the lowest ordered PENDING step is current."""
        workflow = WorkflowFactory.build(
            ["alice", "bob", "carol"],
            statuses=[StepStatus.APPROVED, StepStatus.PENDING, StepStatus.PENDING],
        )

        current = current_pending_step(workflow.steps)

        assert current is not None
        assert current.id == "s2"
        assert is_current("s2", workflow.steps)
        assert not is_current("s3", workflow.steps)
        assert not is_current("s1", workflow.steps)

    def test_no_pending_step(self) -> None:
        """Test that every step counts as current when none is pending."""
        workflow = WorkflowFactory.build(
            ["alice", "bob"],
            statuses=[StepStatus.APPROVED, StepStatus.APPROVED],
        )

        assert current_pending_step(workflow.steps) is None
        assert is_current("s1", workflow.steps)
        assert is_current("s2", workflow.steps)

    def test_returned_step_is_skipped(self) -> None:
        """Test that a RETURNED step is not considered pending."""
        workflow = WorkflowFactory.build(
            ["alice", "bob", "carol"],
            statuses=[StepStatus.PENDING, StepStatus.RETURNED, StepStatus.PENDING],
        )

        current = current_pending_step(workflow.steps)

        assert current is not None
        assert current.id == "s1"


class TestLaterApprovers:
    """Tests for is_later_approver and can_act_on."""

    def test_later_approver_in_sequential_workflow(self) -> None:
        """Test that an approver of a later step may act on an earlier one."""
        workflow = WorkflowFactory.build(["alice", "bob", "carol"])
        first = workflow.steps[0]

        assert is_later_approver(workflow, first, "carol")
        assert can_act_on(workflow, first, "carol")
        assert not is_later_approver(workflow, workflow.steps[2], "alice")
        assert not can_act_on(workflow, workflow.steps[2], "alice")

    def test_direct_approver_can_act(self) -> None:
        """Test that the step's own approver may act on it."""
        workflow = WorkflowFactory.build(["alice", "bob"])

        assert can_act_on(workflow, workflow.steps[1], "bob")

    def test_parallel_workflow_has_no_later_approvers(self) -> None:
        """Test that PARALLEL approvers may only act on their own step."""
        workflow = WorkflowFactory.build(
            ["alice", "bob"], workflow_type=WorkflowType.PARALLEL
        )

        assert not can_act_on(workflow, workflow.steps[0], "bob")
        assert can_act_on(workflow, workflow.steps[0], "alice")

    def test_stranger_cannot_act(self) -> None:
        """Test that a user with no step cannot act."""
        workflow = WorkflowFactory.build(["alice", "bob"])

        assert not can_act_on(workflow, workflow.steps[0], "mallory")


class TestStepRegistry:
    """Tests for loading workflows through the StepRegistry."""

    def test_load_orders_steps(self, service: ApprovalWorkflowService) -> None:
        """Test that steps are loaded in ascending order."""
        created = service.create_workflow(
            document_id="doc-1",
            workflow_type="SEQUENTIAL",
            steps=[
                {"approver_id": "carol", "order": 3},
                {"approver_id": "alice", "order": 1},
                {"approver_id": "bob", "order": 2},
            ],
            initiator_id="owner",
        )

        steps = service.registry.steps_of(created.id)

        assert [s.order for s in steps] == [1, 2, 3]
        assert [s.approver_id for s in steps] == ["alice", "bob", "carol"]

    def test_load_converts_rows(self, service: ApprovalWorkflowService) -> None:
        """Test that enum and flag columns are converted."""
        created = create_workflow(service, "doc-1", ["alice"], workflow_type="PARALLEL")

        workflow = service.registry.load(created.id)

        assert workflow.workflow_type == WorkflowType.PARALLEL
        assert workflow.status == WorkflowStatus.IN_PROGRESS
        assert workflow.steps[0].status == StepStatus.PENDING
        assert workflow.steps[0].is_read is False
        assert workflow.steps[0].is_overdue is False

    def test_load_missing_workflow(self, temp_db: Database) -> None:
        """Test that loading an unknown workflow raises NotFoundError."""
        registry = StepRegistry(WorkflowRepository(temp_db))

        with pytest.raises(NotFoundError) as exc_info:
            registry.load("missing")

        assert "missing" in exc_info.value.message

    def test_find_step_missing(self, service: ApprovalWorkflowService) -> None:
        """Test that an unknown step id raises NotFoundError."""
        created = create_workflow(service, "doc-1", ["alice"])

        with pytest.raises(NotFoundError):
            service.registry.find_step(created, "missing")

    def test_list_for_user(self, service: ApprovalWorkflowService) -> None:
        """Test listing workflows by initiator or approver."""
        first = create_workflow(service, "doc-1", ["alice", "bob"])
        second = create_workflow(service, "doc-2", ["carol"])

        assert {w.id for w in service.registry.list_for_user("owner")} == {first.id, second.id}
        assert [w.id for w in service.registry.list_for_user("bob")] == [first.id]
        assert service.registry.list_for_user("dave") == []
