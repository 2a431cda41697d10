"""
Pytest configuration and shared fixtures for signoff tests.

This module provides:
- Database fixtures (in-memory and file backed)
- Seeded users and documents
- Configuration fixtures
- The workflow service with an event collecting sink
"""

from __future__ import annotations

from pathlib import Path
from typing import Generator

import pytest

from signoff.config.defaults import get_test_config
from signoff.config.schema import SignoffConfig
from signoff.storage.database import Database
from signoff.storage.repositories import (
    DocumentRepository,
    NotificationRepository,
    UserRepository,
    WorkflowRepository,
)
from signoff.workflows.events import CollectingSink
from signoff.workflows.service import ApprovalWorkflowService

USER_IDS = ("owner", "alice", "bob", "carol", "dave")


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def temp_db() -> Generator[Database, None, None]:
    """Create a temporary in-memory database for testing.

    Yields:
        Initialized Database instance.
    """
    db = Database(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def file_db(tmp_path: Path) -> Generator[Database, None, None]:
    """Create a file-backed database for tests that need real locking.

    Yields:
        Initialized Database instance.
    """
    db = Database(tmp_path / "signoff.db", pool_size=10, timeout=10.0)
    db.initialize()
    yield db
    db.close()


def seed(db: Database) -> None:
    """Register the standard users and two documents owned by ``owner``."""
    users = UserRepository(db)
    for user_id in USER_IDS:
        users.create(
            user_id,
            email=f"{user_id}@example.com",
            display_name=user_id.title(),
            user_id=user_id,
        )
    documents = DocumentRepository(db)
    documents.create("Quarterly Report", "owner", document_id="doc-1")
    documents.create("Budget Proposal", "owner", document_id="doc-2")


@pytest.fixture
def seeded_db(temp_db: Database) -> Database:
    """Create a database seeded with users and documents.

    Args:
        temp_db: Base temporary database.

    Returns:
        Database with seeded test data.
    """
    seed(temp_db)
    return temp_db


# =============================================================================
# Repository Fixtures
# =============================================================================


@pytest.fixture
def workflow_repo(temp_db: Database) -> WorkflowRepository:
    return WorkflowRepository(temp_db)


@pytest.fixture
def user_repo(temp_db: Database) -> UserRepository:
    return UserRepository(temp_db)


@pytest.fixture
def document_repo(temp_db: Database) -> DocumentRepository:
    return DocumentRepository(temp_db)


@pytest.fixture
def notification_repo(temp_db: Database) -> NotificationRepository:
    return NotificationRepository(temp_db)


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def test_config() -> SignoffConfig:
    """Create a SignoffConfig configured for testing.

    Returns:
        SignoffConfig with an in-memory database and no sweeper timer.
    """
    return get_test_config()


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def sink() -> CollectingSink:
    """Sink collecting every published workflow event."""
    return CollectingSink()


@pytest.fixture
def service(
    seeded_db: Database,
    test_config: SignoffConfig,
    sink: CollectingSink,
) -> ApprovalWorkflowService:
    """Create a workflow service over the seeded database.

    Returns:
        ApprovalWorkflowService publishing to ``sink``.
    """
    return ApprovalWorkflowService.from_database(seeded_db, test_config, sink=sink)
