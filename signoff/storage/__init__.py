"""
Storage layer for signoff.

This module provides database connectivity, schema management, and
repository classes for persisting approval workflows.
"""

from signoff.storage.database import Database
from signoff.storage.migrations import MigrationManager
from signoff.storage.repositories import (
    DocumentRepository,
    NotificationRepository,
    UserRepository,
    WorkflowRepository,
)

__all__ = [
    "Database",
    "MigrationManager",
    "WorkflowRepository",
    "UserRepository",
    "DocumentRepository",
    "NotificationRepository",
]
