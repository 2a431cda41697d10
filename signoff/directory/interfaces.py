"""
Collaborator interfaces consumed by the workflow engine.

The engine depends on these protocols only. The storage package
provides sqlite-backed implementations; tests and embedders may pass
anything with the same shape.
"""

from typing import Iterable, Protocol

from signoff.directory.models import DocumentRecord, UserRecord


class DocumentDirectory(Protocol):
    """Protocol for reading document existence and ownership."""

    def get_document(self, document_id: str) -> DocumentRecord | None:
        """
        Look up a document.

        Args:
            document_id: The document identifier.

        Returns:
            The document record, or None if it does not exist.
        """
        ...


class UserDirectory(Protocol):
    """Protocol for resolving user existence and identity."""

    def get_user(self, user_id: str) -> UserRecord | None:
        """
        Look up a single user.

        Args:
            user_id: The user identifier.

        Returns:
            The user record, or None if it does not exist.
        """
        ...

    def get_users(self, user_ids: Iterable[str]) -> dict[str, UserRecord]:
        """
        Look up several users at once.

        Args:
            user_ids: Identifiers to resolve.

        Returns:
            Mapping of identifier to record for the users that exist.
        """
        ...
