"""
Tests for the signoff deadline sweeper.
"""

from datetime import timedelta

import pytest

from signoff.config.defaults import get_test_config
from signoff.models.base import utc_now
from signoff.storage.database import Database
from signoff.workflows.events import CollectingSink, WorkflowEventType
from signoff.workflows.service import ApprovalWorkflowService

from tests.helpers import create_workflow, decide, step_of


class TestStepSweep:
    """Tests for flagging overdue steps."""

    def test_flags_overdue_step_once(
        self, service: ApprovalWorkflowService, sink: CollectingSink
    ) -> None:
        """Test that a second sweep finds nothing new."""
        past = utc_now() - timedelta(minutes=5)
        workflow = create_workflow(service, "doc-1", ["alice"], step_deadline=past)

        first = service.sweep_overdue()
        second = service.sweep_overdue()

        assert len(first.overdue_steps) == 1
        assert first.overdue_steps[0].is_overdue is True
        assert second.overdue_steps == []

        events = sink.of_type(WorkflowEventType.STEP_OVERDUE)
        assert len(events) == 1
        assert events[0].recipient_id == "alice"
        assert events[0].step_id == workflow.steps[0].id
        assert events[0].details["document_title"] == "Quarterly Report"

    def test_future_deadline_not_flagged(self, service: ApprovalWorkflowService) -> None:
        """Test that steps before their deadline are left alone."""
        future = utc_now() + timedelta(days=1)
        create_workflow(service, "doc-1", ["alice"], step_deadline=future)

        result = service.sweep_overdue()

        assert result.overdue_steps == []

    def test_reference_time(self, service: ApprovalWorkflowService) -> None:
        """Test that the sweep honours an explicit reference time."""
        deadline = utc_now() + timedelta(days=1)
        create_workflow(service, "doc-1", ["alice"], step_deadline=deadline)

        result = service.sweep_overdue(now=deadline + timedelta(seconds=1))

        assert len(result.overdue_steps) == 1
        assert result.swept_at == deadline + timedelta(seconds=1)

    def test_decided_steps_not_flagged(self, service: ApprovalWorkflowService) -> None:
        """Test that only PENDING steps are flagged."""
        past = utc_now() - timedelta(minutes=5)
        workflow = create_workflow(service, "doc-1", ["alice", "bob"], step_deadline=past)
        decide(service, workflow, "alice", "APPROVED")

        result = service.sweep_overdue()

        assert [s.approver_id for s in result.overdue_steps] == ["bob"]

    def test_reset_step_can_be_flagged_again(self, service: ApprovalWorkflowService) -> None:
        """Test that a reopened step loses its flag and is reported again."""
        past = utc_now() - timedelta(minutes=5)
        workflow = create_workflow(service, "doc-1", ["alice", "bob"], step_deadline=past)
        service.sweep_overdue()
        decide(service, workflow, "alice", "APPROVED")
        decide(service, workflow, "bob", "RETURNED", return_to_user_id="alice")

        steps = service.get_workflow(workflow.id, "alice").steps
        assert [s.is_overdue for s in steps] == [False, False]

        # the returning step is reopened along with its target
        result = service.sweep_overdue()
        assert {s.id for s in result.overdue_steps} == {
            step_of(workflow, "alice").id,
            step_of(workflow, "bob").id,
        }


class TestWorkflowSweep:
    """Tests for reporting overdue workflows."""

    def test_workflow_reported_once(
        self, service: ApprovalWorkflowService, sink: CollectingSink
    ) -> None:
        """Test that an overdue workflow is reported to its initiator once."""
        past = utc_now() - timedelta(hours=1)
        workflow = create_workflow(service, "doc-1", ["alice"], deadline=past)

        first = service.sweep_overdue()
        second = service.sweep_overdue()

        assert [w.id for w in first.overdue_workflows] == [workflow.id]
        assert second.overdue_workflows == []
        events = sink.of_type(WorkflowEventType.WORKFLOW_OVERDUE)
        assert [e.recipient_id for e in events] == ["owner"]

    def test_deadline_change_rearms_report(self, service: ApprovalWorkflowService) -> None:
        """Test that a new deadline lets the workflow be reported again."""
        past = utc_now() - timedelta(hours=1)
        workflow = create_workflow(service, "doc-1", ["alice"], deadline=past)
        service.sweep_overdue()

        service.update_workflow_deadline(workflow.id, utc_now() - timedelta(minutes=1), "owner")
        result = service.sweep_overdue()

        assert [w.id for w in result.overdue_workflows] == [workflow.id]

    def test_finished_workflow_not_reported(self, service: ApprovalWorkflowService) -> None:
        """Test that completed workflows are never overdue."""
        past = utc_now() - timedelta(hours=1)
        workflow = create_workflow(service, "doc-1", ["alice"], deadline=past)
        decide(service, workflow, "alice", "APPROVED")

        assert service.sweep_overdue().overdue_workflows == []

    def test_repeated_reports_when_configured(self, seeded_db: Database) -> None:
        """Test reporting on every sweep when notify-once is disabled."""
        config = get_test_config()
        config.workflow.notify_overdue_workflows_once = False
        sink = CollectingSink()
        service = ApprovalWorkflowService.from_database(seeded_db, config, sink=sink)
        create_workflow(service, "doc-1", ["alice"], deadline=utc_now() - timedelta(hours=1))

        service.sweep_overdue()
        service.sweep_overdue()

        assert len(sink.of_type(WorkflowEventType.WORKFLOW_OVERDUE)) == 2


class TestSweepResult:
    """Tests for the sweep result and the sweeper status."""

    def test_to_dict(self, service: ApprovalWorkflowService) -> None:
        """Test the serialized sweep result."""
        past = utc_now() - timedelta(hours=1)
        create_workflow(service, "doc-1", ["alice"], deadline=past, step_deadline=past)

        data = service.sweep_overdue().to_dict()

        assert set(data) == {"swept_at", "overdue_steps", "overdue_workflows"}
        assert data["overdue_steps"][0]["approver_id"] == "alice"
        assert "steps" not in data["overdue_workflows"][0]

    def test_status_counts_runs(self, service: ApprovalWorkflowService) -> None:
        """Test that the sweeper status reflects the last run."""
        create_workflow(service, "doc-1", ["alice"], step_deadline=utc_now() - timedelta(hours=1))

        service.sweep_overdue()
        status = service.sweeper.get_status()

        assert status["runs"] == 1
        assert status["running"] is False
        assert status["last_overdue_steps"] == 1


class TestSweeperTimer:
    """Tests for the background sweep thread."""

    def test_start_and_stop(self, service: ApprovalWorkflowService) -> None:
        """Test starting and stopping the timer thread."""
        sweeper = service.sweeper

        sweeper.start(interval_seconds=60)
        try:
            assert sweeper.is_running()
        finally:
            sweeper.stop()

        assert not sweeper.is_running()

    def test_invalid_interval(self, service: ApprovalWorkflowService) -> None:
        """Test that a non-positive interval is refused."""
        with pytest.raises(ValueError):
            service.sweeper.start(interval_seconds=0)
