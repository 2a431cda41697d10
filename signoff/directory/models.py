"""
Directory records for signoff.

Documents and users are owned by external systems. signoff only reads
the few attributes it needs: document existence, title and owner, and
user existence and identity.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from signoff.models.base import model_to_dict, utc_now


@dataclass(frozen=True)
class UserRecord:
    """
    Identity of a user known to the directory.

    Attributes:
        id: Unique user identifier referenced by workflow steps.
        username: Login name shown in listings.
        email: Contact address, if known.
        display_name: Human-friendly name.
        created_at: When the user was registered.
    """

    id: str
    username: str
    email: str = ""
    display_name: str = ""
    created_at: datetime = field(default_factory=utc_now)

    def identity(self) -> dict[str, Any]:
        """Return the public identity projection of the user."""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "display_name": self.display_name or self.username,
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return model_to_dict(self)


@dataclass(frozen=True)
class DocumentRecord:
    """
    Metadata of a document that can be routed for approval.

    Attributes:
        id: Unique document identifier.
        title: Document title used in notification messages.
        owner_id: User who created the document.
        file_url: Location of the stored file, if any.
        created_at: When the document was registered.
    """

    id: str
    title: str
    owner_id: str
    file_url: str = ""
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return model_to_dict(self)
