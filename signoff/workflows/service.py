"""
Approval workflow service for signoff.

ApprovalWorkflowService is the internal API of the approval engine. It
wires the step registry, transition validator, orchestrator, router
and deadline sweeper together, checks creation and access rules, and
publishes committed events to the notification sink.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Iterable

from signoff.config.schema import SignoffConfig, WorkflowConfig
from signoff.directory.interfaces import DocumentDirectory, UserDirectory
from signoff.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
)
from signoff.models.base import format_timestamp, parse_datetime, utc_now
from signoff.storage.database import Database
from signoff.storage.repositories import (
    DocumentRepository,
    UserRepository,
    WorkflowRepository,
)
from signoff.workflows.events import CollectingSink, EventPublisher, NotificationSink
from signoff.workflows.locks import KeyedLocks
from signoff.workflows.models import (
    ApprovalStep,
    AssignedStep,
    HistoryEntry,
    ReturnTarget,
    StatusUpdate,
    StepSpec,
    Workflow,
    WorkflowStatus,
    WorkflowType,
)
from signoff.workflows.orchestrator import WorkflowOrchestrator
from signoff.workflows.registry import StepRegistry, is_current
from signoff.workflows.router import ReturnRouter
from signoff.workflows.statistics import WorkflowStatistics, build_statistics
from signoff.workflows.sweeper import DeadlineSweeper, SweepResult
from signoff.workflows.validator import TransitionValidator


class ApprovalWorkflowService:
    """
    Service API for creating and deciding approval workflows.

    All mutations of one workflow run under that workflow's lock and
    inside one ``BEGIN IMMEDIATE`` transaction. Events are published
    only after the transaction has committed.

    Example:
        Creating and approving a sequential workflow::

            service = ApprovalWorkflowService.from_database(db)
            workflow = service.create_workflow(
                document_id="doc-1",
                workflow_type="SEQUENTIAL",
                steps=[{"approver_id": "u1", "order": 1}, {"approver_id": "u2", "order": 2}],
                initiator_id="owner",
            )
            service.update_step_status(
                workflow.id, workflow.steps[0].id, {"status": "APPROVED"}, "u1"
            )
    """

    def __init__(
        self,
        database: Database,
        workflows: WorkflowRepository,
        documents: DocumentDirectory,
        users: UserDirectory,
        sink: NotificationSink | None = None,
        settings: WorkflowConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the service.

        Args:
            database: Database providing transactions.
            workflows: Repository for workflow and step rows.
            documents: Directory resolving document existence and ownership.
            users: Directory resolving approver existence and identity.
            sink: Receiver of committed workflow events. Defaults to an
                in-memory CollectingSink.
            settings: Workflow engine options.
            clock: Source of the current time.
            logger: Logger to use instead of the module logger.
        """
        self._database = database
        self._workflows = workflows
        self._documents = documents
        self._users = users
        self._settings = settings or WorkflowConfig()
        self._clock = clock
        self._logger = logger or logging.getLogger("signoff.workflows.service")
        self._sink: NotificationSink = sink if sink is not None else CollectingSink()

        self._locks = KeyedLocks()
        self._registry = StepRegistry(workflows)
        self._validator = TransitionValidator()
        self._router = ReturnRouter(users)
        self._publisher = EventPublisher(self._sink, documents)
        self._orchestrator = WorkflowOrchestrator(
            database,
            workflows,
            self._registry,
            self._validator,
            self._locks,
            clear_overdue_on_reset=self._settings.clear_overdue_on_reset,
            clock=clock,
        )
        self._sweeper = DeadlineSweeper(
            database,
            workflows,
            self._registry,
            publisher=self._publisher,
            notify_workflows_once=self._settings.notify_overdue_workflows_once,
            clock=clock,
        )

    @classmethod
    def from_database(
        cls,
        database: Database,
        config: SignoffConfig | None = None,
        sink: NotificationSink | None = None,
    ) -> "ApprovalWorkflowService":
        """
        Build a service backed by the sqlite directories of ``database``.

        Args:
            database: An initialized Database.
            config: Configuration supplying the workflow options.
            sink: Receiver of committed workflow events.
        """
        return cls(
            database,
            WorkflowRepository(database),
            DocumentRepository(database),
            UserRepository(database),
            sink=sink,
            settings=config.workflow if config else None,
        )

    @property
    def sink(self) -> NotificationSink:
        """The receiver of committed workflow events."""
        return self._sink

    @property
    def sweeper(self) -> DeadlineSweeper:
        """The deadline sweeper, for on-demand runs or the background timer."""
        return self._sweeper

    @property
    def registry(self) -> StepRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Creation and access
    # ------------------------------------------------------------------

    def create_workflow(
        self,
        document_id: str,
        workflow_type: WorkflowType | str,
        steps: Iterable[StepSpec | dict[str, Any]],
        initiator_id: str,
        deadline: datetime | str | None = None,
    ) -> Workflow:
        """
        Create a workflow with its steps and start it.

        The workflow is inserted PENDING with its steps and moved to
        IN_PROGRESS in the same transaction.

        Args:
            document_id: The document to route for approval.
            workflow_type: SEQUENTIAL or PARALLEL.
            steps: Step specs or request dicts with approver_id, order
                and an optional deadline.
            initiator_id: The caller; must own the document.
            deadline: Optional overall deadline.

        Returns:
            The created workflow with its ordered steps.

        Raises:
            BadRequestError: If the type, the step list or a deadline is invalid.
            NotFoundError: If the document or an approver does not exist.
            ForbiddenError: If the caller does not own the document.
            ConflictError: If the document already has an active workflow.
        """
        wtype = self._parse_type(workflow_type)
        specs = self._parse_steps(steps)
        self._check_orders(wtype, specs)
        deadline_at = self._parse_deadline(deadline)

        document = self._documents.get_document(document_id)
        if document is None:
            raise NotFoundError(
                f"Document with ID {document_id} not found",
                details={"document_id": document_id},
            )
        if document.owner_id != initiator_id:
            raise ForbiddenError(
                "You do not have permission to create an approval workflow for this document",
                details={"document_id": document_id},
            )

        approver_ids = {spec.approver_id for spec in specs}
        known = self._users.get_users(approver_ids)
        missing = sorted(approver_ids - set(known))
        if missing:
            raise NotFoundError(
                "One or more approvers do not exist",
                details={"approver_ids": missing},
            )

        with self._locks.hold(f"document:{document_id}"):
            with self._database.transaction(immediate=True) as conn:
                if self._workflows.find_active_for_document(document_id, conn) is not None:
                    raise ConflictError(
                        f"There is already an active approval workflow for document with ID {document_id}",
                        details={"document_id": document_id},
                    )
                workflow_id = self._workflows.create_workflow(
                    document_id,
                    wtype.value,
                    initiator_id,
                    deadline=deadline_at,
                    status=WorkflowStatus.PENDING.value,
                    conn=conn,
                )
                for spec in sorted(specs, key=lambda s: s.order):
                    self._workflows.add_step(
                        workflow_id, spec.approver_id, spec.order, spec.deadline, conn
                    )
                self._workflows.update_workflow(
                    workflow_id, {"status": WorkflowStatus.IN_PROGRESS.value}, conn
                )
                workflow = self._registry.load(workflow_id, conn)

        self._logger.info(
            f"Created {wtype.value} workflow {workflow.id} for document {document_id} "
            f"with {len(workflow.steps)} step(s)"
        )
        return workflow

    def list_workflows(self, user_id: str) -> list[Workflow]:
        """List workflows the user initiated or approves, newest first."""
        return self._registry.list_for_user(user_id)

    def get_workflow(self, workflow_id: str, user_id: str) -> Workflow:
        """
        Get a workflow the caller may view.

        The initiator, any approver and the document owner may view it.

        Raises:
            NotFoundError: If the workflow does not exist.
            ForbiddenError: If the caller may not view it.
        """
        workflow = self._registry.load(workflow_id)
        if workflow.initiator_id == user_id or workflow.is_approver(user_id):
            return workflow
        document = self._documents.get_document(workflow.document_id)
        if document is not None and document.owner_id == user_id:
            return workflow
        raise ForbiddenError(
            "You do not have permission to view this approval workflow",
            details={"workflow_id": workflow_id},
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def update_step_status(
        self,
        workflow_id: str,
        step_id: str,
        update: StatusUpdate | dict[str, Any],
        user_id: str,
    ) -> ApprovalStep:
        """
        Decide a step: approve, reject, return or resubmit it.

        Returns:
            The decided step after the transition. A returning step comes
            back reopened as PENDING, with ``return_to_step_id`` and the
            return reason kept.

        Raises:
            NotFoundError: If the workflow or step does not exist.
            BadRequestError: If the request breaks a transition rule.
            ForbiddenError: If the caller may not act on the step.
        """
        if not isinstance(update, StatusUpdate):
            try:
                update = StatusUpdate.from_dict(update)
            except ValueError as e:
                raise BadRequestError(str(e), details={"step_id": step_id}) from e

        outcome = self._orchestrator.update_step_status(workflow_id, step_id, update, user_id)
        self._publisher.publish_all(outcome.events)
        return outcome.step

    def mark_step_as_read(self, workflow_id: str, step_id: str, user_id: str) -> ApprovalStep:
        """
        Record that the approver opened a step.

        Raises:
            NotFoundError: If the workflow or step does not exist.
            ForbiddenError: If the caller is not the step's approver.
        """
        with self._locks.hold(workflow_id):
            with self._database.transaction(immediate=True) as conn:
                workflow = self._registry.load(workflow_id, conn)
                step = self._registry.find_step(workflow, step_id)
                if step.approver_id != user_id:
                    raise ForbiddenError(
                        "You are not the approver for this step",
                        details={"workflow_id": workflow_id, "step_id": step_id},
                    )
                if not step.is_read:
                    step.is_read = True
                    step.updated_at = self._clock()
                    self._workflows.update_step(
                        step.id,
                        {"is_read": 1, "updated_at": format_timestamp(step.updated_at)},
                        conn,
                    )
        return step

    def update_workflow_deadline(
        self,
        workflow_id: str,
        deadline: datetime | str | None,
        user_id: str,
    ) -> Workflow:
        """
        Change or clear the overall deadline of an active workflow.

        A new deadline clears the overdue marker, so the workflow can be
        reported overdue again.

        Raises:
            NotFoundError: If the workflow does not exist.
            ForbiddenError: If the caller is not the initiator.
            BadRequestError: If the workflow is finished or the deadline is invalid.
        """
        deadline_at = self._parse_deadline(deadline)
        with self._locks.hold(workflow_id):
            with self._database.transaction(immediate=True) as conn:
                workflow = self._registry.load(workflow_id, conn)
                if workflow.initiator_id != user_id:
                    raise ForbiddenError(
                        "Only the initiator can change the workflow deadline",
                        details={"workflow_id": workflow_id},
                    )
                if not workflow.status.is_active:
                    raise BadRequestError(
                        f"This approval workflow has already been {workflow.status.value.lower()}",
                        details={"workflow_id": workflow_id},
                    )
                self._workflows.update_workflow(
                    workflow_id,
                    {
                        "deadline": format_timestamp(deadline_at),
                        "overdue_notified_at": None,
                        "updated_at": format_timestamp(self._clock()),
                    },
                    conn,
                )
                workflow = self._registry.load(workflow_id, conn)

        self._logger.info(
            f"Deadline of workflow {workflow_id} set to "
            f"{deadline_at.isoformat() if deadline_at else 'none'} by {user_id}"
        )
        return workflow

    # ------------------------------------------------------------------
    # Approver queries
    # ------------------------------------------------------------------

    def list_pending_approvals(self, user_id: str) -> list[AssignedStep]:
        """
        List the steps awaiting the user's decision.

        Only steps of IN_PROGRESS workflows are included, and for
        SEQUENTIAL workflows only the current step.
        """
        rows = self._workflows.list_assigned_steps(user_id, require_in_progress=True)
        sequential_ids = [
            row["workflow_id"]
            for row in rows
            if row["workflow_type"] == WorkflowType.SEQUENTIAL.value
        ]
        siblings = self._workflows.get_steps_for_workflows(sequential_ids)
        ordered = {
            wid: [self._registry.build_step(r) for r in step_rows]
            for wid, step_rows in siblings.items()
        }

        pending = []
        for row in rows:
            if row["workflow_id"] in ordered and not is_current(row["id"], ordered[row["workflow_id"]]):
                continue
            pending.append(row)
        return self._assemble(pending)

    def list_returned_steps(self, user_id: str) -> list[AssignedStep]:
        """List the pending steps the document was returned to for this user."""
        rows = self._workflows.list_assigned_steps(user_id, resubmitted_only=True)
        return self._assemble(rows)

    def get_returnable_users(
        self,
        workflow_id: str,
        step_id: str,
        user_id: str,
    ) -> list[ReturnTarget]:
        """
        List the steps the caller may return a step to.

        Raises:
            NotFoundError: If the workflow or step does not exist.
            ForbiddenError: If the caller may not act on the step.
        """
        workflow = self._registry.load(workflow_id)
        step = self._registry.find_step(workflow, step_id)
        return self._router.eligible_return_targets(workflow, step, user_id)

    def get_resubmission_target(
        self,
        workflow_id: str,
        step_id: str,
        user_id: str,
    ) -> dict[str, Any]:
        """
        Find the approver who returned a step to the caller.

        Raises:
            NotFoundError: If the workflow or step does not exist, or the
                step was never returned.
            ForbiddenError: If the caller is not the step's approver.
        """
        workflow = self._registry.load(workflow_id)
        step = self._registry.find_step(workflow, step_id)
        return self._router.resubmission_target(workflow, step, user_id)

    def get_return_history(self, workflow_id: str, user_id: str) -> list[HistoryEntry]:
        """
        List the returned and resubmitted steps of a workflow.

        Raises:
            NotFoundError: If the workflow does not exist.
            ForbiddenError: If the caller approves no step of the workflow.
        """
        workflow = self._registry.load(workflow_id)
        return self._router.return_history(workflow, user_id)

    # ------------------------------------------------------------------
    # Deadlines and statistics
    # ------------------------------------------------------------------

    def sweep_overdue(self, now: datetime | None = None) -> SweepResult:
        """Flag overdue steps and workflows once and publish overdue events."""
        return self._sweeper.sweep(now)

    def get_statistics(self) -> WorkflowStatistics:
        """Count workflows and steps by type and status."""
        return build_statistics(self._workflows.get_statistics(), self._clock())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _assemble(self, rows: list[dict[str, Any]]) -> list[AssignedStep]:
        titles: dict[str, str | None] = {}
        result = []
        for row in rows:
            document_id = row["document_id"]
            if document_id not in titles:
                document = self._documents.get_document(document_id)
                titles[document_id] = document.title if document else None
            result.append(
                AssignedStep(
                    step=self._registry.build_step(row),
                    workflow_type=WorkflowType(row["workflow_type"]),
                    workflow_status=WorkflowStatus(row["workflow_status"]),
                    document_id=document_id,
                    document_title=titles[document_id],
                )
            )
        return result

    def _parse_type(self, workflow_type: WorkflowType | str) -> WorkflowType:
        if isinstance(workflow_type, WorkflowType):
            return workflow_type
        try:
            return WorkflowType(str(workflow_type).upper())
        except ValueError as e:
            valid = ", ".join(t.value for t in WorkflowType)
            raise BadRequestError(
                f"Invalid workflow type '{workflow_type}'. Must be one of: {valid}",
                details={"type": workflow_type},
            ) from e

    def _parse_steps(self, steps: Iterable[StepSpec | dict[str, Any]] | None) -> list[StepSpec]:
        specs = []
        for item in steps or []:
            if isinstance(item, StepSpec):
                specs.append(item)
                continue
            try:
                specs.append(StepSpec.from_dict(item))
            except ValueError as e:
                raise BadRequestError(str(e)) from e
        if not specs:
            raise BadRequestError("At least one approval step is required")
        return specs

    def _check_orders(self, workflow_type: WorkflowType, specs: list[StepSpec]) -> None:
        orders = [spec.order for spec in specs]
        if any(order < 1 for order in orders):
            raise BadRequestError(
                "Step order must be at least 1",
                details={"orders": orders},
            )
        if workflow_type == WorkflowType.SEQUENTIAL:
            if sorted(orders) != list(range(1, len(orders) + 1)):
                raise BadRequestError(
                    "For sequential workflows, step orders must be sequential starting from 1",
                    details={"orders": orders},
                )
        elif any(order != 1 for order in orders):
            raise BadRequestError(
                "For parallel workflows, all step orders must be 1",
                details={"orders": orders},
            )

    def _parse_deadline(self, deadline: datetime | str | None) -> datetime | None:
        try:
            return parse_datetime(deadline)
        except (ValueError, TypeError) as e:
            raise BadRequestError(
                f"Invalid deadline '{deadline}'",
                details={"deadline": str(deadline)},
            ) from e
