"""
Exception classes for signoff.

This module defines the exception hierarchy used throughout signoff.
All custom exceptions inherit from SignoffError to allow for easy
catching of any signoff-specific exception.

Business failures raised by the workflow service are WorkflowError
subclasses and carry an ErrorKind, which the HTTP and CLI layers map
to status codes and exit codes.
"""

from enum import Enum
from typing import Any


class ErrorKind(Enum):
    """Kinds of typed workflow failures."""

    NOT_FOUND = "not_found"
    """A workflow, step, document, approver or return lineage is missing."""

    BAD_REQUEST = "bad_request"
    """A structural rule was violated by the request."""

    FORBIDDEN = "forbidden"
    """The caller is not an authorized approver, initiator or owner."""

    CONFLICT = "conflict"
    """An active workflow already exists for the document."""


class SignoffError(Exception):
    """
    Base exception for all signoff errors.

    All custom exceptions in signoff inherit from this class,
    allowing callers to catch any signoff-specific exception
    with a single except clause.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary containing additional error context.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """
        Initialize the exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary containing additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return f"{self.__class__.__name__}(message={self.message!r}, details={self.details!r})"


class ConfigurationError(SignoffError):
    """
    Raised when there is an error in signoff configuration.

    Examples:
        - Invalid YAML syntax in configuration
        - Configuration value out of allowed range
        - Webhook channel selected without a webhook URL
    """

    pass


class StorageError(SignoffError):
    """
    Raised when there is an error in the storage layer.

    This exception is raised when database operations fail, such as
    connection errors, query failures, or data integrity issues. It is
    an infrastructure fault, never a business decision.

    Examples:
        - Database connection failed
        - Query execution error
        - Migration failed
    """

    pass


class NotificationError(SignoffError):
    """
    Raised when a notification cannot be delivered.

    Delivery failures are recorded on the notification and logged; they
    never undo the workflow mutation that produced the event.
    """

    pass


class WorkflowError(SignoffError):
    """
    Base class for typed approval workflow failures.

    Subclasses fix the ``kind`` attribute. Callers that only care about
    the category can branch on ``error.kind`` instead of the class.
    """

    kind: ErrorKind = ErrorKind.BAD_REQUEST


class NotFoundError(WorkflowError):
    """
    Raised when a referenced entity does not exist.

    Examples:
        - Workflow not found
        - Step not found in workflow
        - Document or approver not found
        - Step was never returned
    """

    kind = ErrorKind.NOT_FOUND


class BadRequestError(WorkflowError):
    """
    Raised when a request violates a structural workflow rule.

    Examples:
        - Step orders are not sequential starting from 1
        - Rejection reason missing
        - Step is not currently active
        - Step has already been approved
    """

    kind = ErrorKind.BAD_REQUEST


class ForbiddenError(WorkflowError):
    """
    Raised when the caller may not act on or view a workflow.

    Examples:
        - Caller is not the approver for the step
        - Caller does not own the document
    """

    kind = ErrorKind.FORBIDDEN


class ConflictError(WorkflowError):
    """Raised when an active workflow already exists for a document."""

    kind = ErrorKind.CONFLICT


_ERRORS_BY_KIND: dict[ErrorKind, type[WorkflowError]] = {
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.BAD_REQUEST: BadRequestError,
    ErrorKind.FORBIDDEN: ForbiddenError,
    ErrorKind.CONFLICT: ConflictError,
}


def error_for_kind(
    kind: ErrorKind,
    message: str,
    details: dict[str, Any] | None = None,
) -> WorkflowError:
    """
    Build the WorkflowError subclass matching an error kind.

    Args:
        kind: The failure category.
        message: Human-readable error description.
        details: Optional additional context.

    Returns:
        An exception instance ready to raise.
    """
    return _ERRORS_BY_KIND[kind](message, details)
