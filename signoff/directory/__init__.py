"""
Document and user directory collaborators for signoff.

The approval engine never manages documents or credentials; it reads
them through the interfaces defined here.
"""

from signoff.directory.interfaces import DocumentDirectory, UserDirectory
from signoff.directory.models import DocumentRecord, UserRecord

__all__ = [
    "DocumentDirectory",
    "DocumentRecord",
    "UserDirectory",
    "UserRecord",
]
