"""
Tests for signoff return and resubmission routing.
"""

import pytest

from signoff.exceptions import ForbiddenError, NotFoundError
from signoff.workflows.models import StepStatus, Workflow, WorkflowType
from signoff.workflows.router import ReturnRouter, eligible_return_steps, returners_of

from tests.helpers import StaticUserDirectory, WorkflowFactory


@pytest.fixture
def router() -> ReturnRouter:
    return ReturnRouter(StaticUserDirectory(["owner", "alice", "bob", "carol"]))


def returned_workflow() -> Workflow:
    """Three step workflow where carol returned the document to alice."""
    workflow = WorkflowFactory.build(["alice", "bob", "carol"])
    workflow.steps[0].is_resubmitted = True
    workflow.steps[2].return_to_step_id = "s1"
    workflow.steps[2].rejection_reason = "dates"
    return workflow


class TestEligibleSteps:
    """Tests for eligible_return_steps and returners_of."""

    def test_sequential_earlier_steps(self) -> None:
        """Test that SEQUENTIAL steps return to any earlier step."""
        workflow = WorkflowFactory.build(["alice", "bob", "carol"])

        assert [s.id for s in eligible_return_steps(workflow, workflow.steps[2])] == ["s1", "s2"]
        assert eligible_return_steps(workflow, workflow.steps[0]) == []

    def test_parallel_other_steps(self) -> None:
        """Test that PARALLEL steps return to every other step."""
        workflow = WorkflowFactory.build(
            ["alice", "bob", "carol"], workflow_type=WorkflowType.PARALLEL
        )

        assert [s.id for s in eligible_return_steps(workflow, workflow.steps[1])] == ["s1", "s3"]

    def test_returners_of(self) -> None:
        """Test finding the steps whose return points at a step."""
        workflow = returned_workflow()

        assert [s.id for s in returners_of(workflow, workflow.steps[0])] == ["s3"]
        assert returners_of(workflow, workflow.steps[1]) == []


class TestReturnTargets:
    """Tests for ReturnRouter.eligible_return_targets."""

    def test_targets_carry_identity(self, router: ReturnRouter) -> None:
        """Test that targets include the approver identity."""
        workflow = WorkflowFactory.build(["alice", "bob", "carol"])

        targets = router.eligible_return_targets(workflow, workflow.steps[2], "carol")

        assert [t.step_id for t in targets] == ["s1", "s2"]
        assert targets[0].approver_id == "alice"
        assert targets[0].order == 1
        assert targets[0].approver["email"] == "alice@example.com"
        assert targets[1].to_dict()["approver"]["display_name"] == "Bob"

    def test_later_approver_may_list(self, router: ReturnRouter) -> None:
        """Test that a later approver may list targets of an earlier step."""
        workflow = WorkflowFactory.build(["alice", "bob", "carol"])

        targets = router.eligible_return_targets(workflow, workflow.steps[1], "carol")

        assert [t.approver_id for t in targets] == ["alice"]

    def test_stranger_is_forbidden(self, router: ReturnRouter) -> None:
        """Test that a user who cannot act on the step is refused."""
        workflow = WorkflowFactory.build(["alice", "bob"])

        with pytest.raises(ForbiddenError):
            router.eligible_return_targets(workflow, workflow.steps[1], "alice")


class TestResubmissionTarget:
    """Tests for ReturnRouter.resubmission_target."""

    def test_finds_returning_approver(self, router: ReturnRouter) -> None:
        """Test that the returning approver is resolved."""
        workflow = returned_workflow()

        target = router.resubmission_target(workflow, workflow.steps[0], "alice")

        assert target["id"] == "carol"
        assert target["username"] == "carol"
        assert target["step_id"] == "s3"
        assert target["order"] == 3

    def test_requires_direct_approver(self, router: ReturnRouter) -> None:
        """Test that only the step's approver may ask."""
        workflow = returned_workflow()

        with pytest.raises(ForbiddenError):
            router.resubmission_target(workflow, workflow.steps[0], "carol")

    def test_step_never_returned(self, router: ReturnRouter) -> None:
        """Test that a step that was never returned has no target."""
        workflow = WorkflowFactory.build(["alice", "bob"])

        with pytest.raises(NotFoundError) as exc_info:
            router.resubmission_target(workflow, workflow.steps[0], "alice")

        assert exc_info.value.message == "This step has not been returned"

    def test_returner_released(self, router: ReturnRouter) -> None:
        """Test that a lost back-reference is reported as NotFound."""
        workflow = returned_workflow()
        workflow.steps[2].return_to_step_id = None

        with pytest.raises(NotFoundError) as exc_info:
            router.resubmission_target(workflow, workflow.steps[0], "alice")

        assert exc_info.value.message == "No step returned the document to this step"

    def test_unknown_returner_identity(self) -> None:
        """Test that a returner missing from the directory yields its id."""
        router = ReturnRouter(StaticUserDirectory(["alice"]))
        workflow = returned_workflow()

        target = router.resubmission_target(workflow, workflow.steps[0], "alice")

        assert target == {"id": "carol", "step_id": "s3", "order": 3}


class TestReturnHistory:
    """Tests for ReturnRouter.return_history."""

    def test_history_entries(self, router: ReturnRouter) -> None:
        """Test that RETURNED and RESUBMITTED steps are listed with targets."""
        workflow = WorkflowFactory.build(
            ["alice", "bob", "carol"],
            statuses=[StepStatus.RESUBMITTED, StepStatus.APPROVED, StepStatus.RETURNED],
        )
        workflow.steps[0].next_step_id = "s3"
        workflow.steps[0].resubmission_explanation = "fixed"
        workflow.steps[2].return_to_step_id = "s1"

        history = router.return_history(workflow, "bob")

        assert [entry.step_id for entry in history] == ["s1", "s3"]
        resubmitted, returned = history
        assert resubmitted.status == StepStatus.RESUBMITTED
        assert resubmitted.resubmit_to["id"] == "carol"
        assert resubmitted.return_to is None
        assert returned.return_to["id"] == "alice"
        assert returned.to_dict()["status"] == "RETURNED"

    def test_reopened_returner_listed_as_returned(self, router: ReturnRouter) -> None:
        """Test that a pending step with an unresolved return is listed as RETURNED."""
        workflow = returned_workflow()

        history = router.return_history(workflow, "alice")

        assert len(history) == 1
        entry = history[0]
        assert entry.step_id == "s3"
        assert entry.status == StepStatus.RETURNED
        assert entry.rejection_reason == "dates"
        assert entry.return_to["id"] == "alice"

    def test_empty_history(self, router: ReturnRouter) -> None:
        """Test that a workflow without returns has no history."""
        workflow = WorkflowFactory.build(["alice", "bob"])

        assert router.return_history(workflow, "alice") == []

    def test_non_approver_is_forbidden(self, router: ReturnRouter) -> None:
        """Test that only approvers may read the history."""
        workflow = WorkflowFactory.build(["alice", "bob"])

        with pytest.raises(ForbiddenError):
            router.return_history(workflow, "owner")
