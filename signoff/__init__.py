"""
signoff: document approval workflows.

signoff routes a document through a multi-party sign-off process. Each
document may have at most one active approval workflow, which is either
SEQUENTIAL (approvers act in a fixed order) or PARALLEL (approvers act
independently and all must approve). Approvers can approve, reject,
return a step to an earlier approver for correction, or resubmit a
corrected step forward. A deadline sweeper flags steps and workflows
that missed their deadline.

Example:
    Basic usage of signoff::

        from signoff.config import load_config
        from signoff.storage import Database
        from signoff.workflows import ApprovalWorkflowService, StepSpec, WorkflowType

        config = load_config()
        db = Database(config.database.path)
        db.initialize()

        service = ApprovalWorkflowService.from_database(db, config)
        workflow = service.create_workflow(
            document_id="doc-1",
            workflow_type=WorkflowType.SEQUENTIAL,
            steps=[StepSpec(approver_id="u1", order=1), StepSpec(approver_id="u2", order=2)],
            initiator_id="owner",
        )

Public API:
    Version:
        __version__: The package version string

    Exceptions:
        SignoffError: Base exception for all signoff errors
        ConfigurationError: Configuration-related errors
        StorageError: Storage layer errors
        NotificationError: Notification delivery errors
        WorkflowError: Base for typed workflow failures
        NotFoundError, BadRequestError, ForbiddenError, ConflictError
"""

from signoff.exceptions import (
    BadRequestError,
    ConfigurationError,
    ConflictError,
    ErrorKind,
    ForbiddenError,
    NotFoundError,
    NotificationError,
    SignoffError,
    StorageError,
    WorkflowError,
)
from signoff.version import __version__

__all__ = [
    # Version
    "__version__",
    # Exceptions
    "SignoffError",
    "ConfigurationError",
    "StorageError",
    "NotificationError",
    "ErrorKind",
    "WorkflowError",
    "NotFoundError",
    "BadRequestError",
    "ForbiddenError",
    "ConflictError",
]
