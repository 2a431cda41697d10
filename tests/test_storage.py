"""
Tests for signoff storage: the database manager, migrations and
repositories.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from signoff.exceptions import ConflictError, StorageError
from signoff.models.base import parse_datetime, utc_now
from signoff.storage.database import Database
from signoff.storage.migrations import MigrationManager
from signoff.storage.repositories import (
    DocumentRepository,
    NotificationRepository,
    UserRepository,
    WorkflowRepository,
)
from signoff.storage.schema import SCHEMA_VERSION, TABLES


class TestDatabase:
    """Tests for the Database connection manager."""

    def test_initialize_creates_tables(self, temp_db: Database) -> None:
        """Test that every table exists after initialization."""
        rows = temp_db.execute("SELECT name FROM sqlite_master WHERE type='table'")
        names = {row["name"] for row in rows}

        assert set(TABLES) <= names

    def test_validate_connection(self, temp_db: Database) -> None:
        """Test the diagnostic information of a healthy database."""
        info = temp_db.validate_connection()

        assert info["initialized"] is True
        assert info["healthy"] is True
        assert info["foreign_keys_enabled"] is True
        assert info["schema_version"] == SCHEMA_VERSION
        assert info["table_count"] >= len(TABLES)
        assert temp_db.health_check()

    def test_memory_databases_are_isolated(self) -> None:
        """Test that two in-memory databases do not share data."""
        with Database(":memory:") as first, Database(":memory:") as second:
            first.initialize()
            second.initialize()
            UserRepository(first).create("alice", user_id="alice")

            assert UserRepository(first).get_user("alice") is not None
            assert UserRepository(second).get_user("alice") is None

    def test_file_database_uses_wal(self, file_db: Database) -> None:
        """Test that file databases run in WAL mode."""
        assert file_db.validate_connection()["journal_mode"] == "wal"
        assert not file_db.is_memory

    def test_transaction_rolls_back(self, temp_db: Database) -> None:
        """Test that a failed transaction leaves no rows behind."""
        with pytest.raises(RuntimeError):
            with temp_db.transaction(immediate=True) as conn:
                conn.execute(
                    "INSERT INTO users (id, username, created_at) VALUES (?, ?, ?)",
                    ("u1", "u1", utc_now().isoformat()),
                )
                raise RuntimeError("boom")

        assert UserRepository(temp_db).get_user("u1") is None

    def test_sql_errors_become_storage_errors(self, temp_db: Database) -> None:
        """Test that sqlite errors are wrapped."""
        with pytest.raises(StorageError):
            temp_db.execute("SELECT * FROM no_such_table")

    def test_reopen_file_database(self, tmp_path: Path) -> None:
        """Test that reopening a file database keeps its data and version."""
        path = tmp_path / "reopen.db"
        with Database(path) as db:
            db.initialize()
            UserRepository(db).create("alice", user_id="alice")

        with Database(path) as db:
            db.initialize()
            assert UserRepository(db).get_user("alice") is not None
            assert MigrationManager(db).get_current_version() == SCHEMA_VERSION


class TestMigrations:
    """Tests for the MigrationManager."""

    def test_fresh_database_is_current(self, temp_db: Database) -> None:
        """Test that a new database needs no migrations."""
        status = MigrationManager(temp_db).check_schema()

        assert status["is_current"] is True
        assert status["pending_count"] == 0
        assert status["current_version"] == SCHEMA_VERSION

    def test_upgrade_from_v1(self, tmp_path: Path) -> None:
        """Test that a version 1 database gains the v2 columns."""
        import sqlite3

        path = tmp_path / "legacy.db"
        conn = sqlite3.connect(str(path))
        conn.executescript(
            """
            CREATE TABLE schema_version (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                version INTEGER NOT NULL,
                applied_at TEXT NOT NULL DEFAULT (datetime('now')),
                description TEXT
            );
            INSERT INTO schema_version (version, description) VALUES (1, 'Initial schema');
            CREATE TABLE approval_workflows (
                id TEXT PRIMARY KEY,
                document_id TEXT NOT NULL,
                type TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'PENDING',
                initiator_id TEXT NOT NULL,
                deadline TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            CREATE TABLE approval_steps (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                approver_id TEXT NOT NULL,
                step_order INTEGER NOT NULL,
                status TEXT NOT NULL DEFAULT 'PENDING',
                deadline TEXT,
                comment TEXT,
                rejection_reason TEXT,
                resubmission_explanation TEXT,
                return_to_step_id TEXT,
                next_step_id TEXT,
                is_resubmitted INTEGER NOT NULL DEFAULT 0,
                is_overdue INTEGER NOT NULL DEFAULT 0,
                completed_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            """
        )
        conn.commit()
        conn.close()

        with Database(path) as db:
            db.initialize()

            columns = {row["name"] for row in db.execute("PRAGMA table_info(approval_steps)")}
            assert "is_read" in columns
            history = MigrationManager(db).get_migration_history()
            assert [row["version"] for row in history] == [1, 2]


class TestWorkflowRepository:
    """Tests for workflow and step rows."""

    def test_create_and_read(self, workflow_repo: WorkflowRepository) -> None:
        """Test creating a workflow with steps."""
        workflow_id = workflow_repo.create_workflow("doc-1", "SEQUENTIAL", "owner")
        workflow_repo.add_step(workflow_id, "bob", 2)
        workflow_repo.add_step(workflow_id, "alice", 1)

        row = workflow_repo.get_workflow(workflow_id)
        steps = workflow_repo.get_steps(workflow_id)

        assert row["status"] == "PENDING"
        assert [s["approver_id"] for s in steps] == ["alice", "bob"]
        assert [s["step_order"] for s in steps] == [1, 2]

    def test_one_active_workflow_per_document(self, workflow_repo: WorkflowRepository) -> None:
        """Test that the partial unique index refuses a second active workflow."""
        workflow_repo.create_workflow("doc-1", "SEQUENTIAL", "owner")

        with pytest.raises(ConflictError):
            workflow_repo.create_workflow("doc-1", "PARALLEL", "owner")

    def test_finished_workflows_do_not_conflict(self, workflow_repo: WorkflowRepository) -> None:
        """Test that only active workflows are unique per document."""
        first = workflow_repo.create_workflow("doc-1", "SEQUENTIAL", "owner")
        workflow_repo.update_workflow(first, {"status": "COMPLETED"})

        second = workflow_repo.create_workflow("doc-1", "SEQUENTIAL", "owner")

        assert workflow_repo.find_active_for_document("doc-1")["id"] == second

    def test_update_refuses_unknown_columns(self, workflow_repo: WorkflowRepository) -> None:
        """Test that only whitelisted columns can be updated."""
        workflow_id = workflow_repo.create_workflow("doc-1", "SEQUENTIAL", "owner")

        with pytest.raises(StorageError):
            workflow_repo.update_workflow(workflow_id, {"document_id": "doc-2"})

    def test_mark_step_overdue_is_conditional(self, workflow_repo: WorkflowRepository) -> None:
        """Test that a step is flagged at most once."""
        workflow_id = workflow_repo.create_workflow("doc-1", "SEQUENTIAL", "owner")
        step_id = workflow_repo.add_step(
            workflow_id, "alice", 1, deadline=utc_now() - timedelta(hours=1)
        )

        assert len(workflow_repo.find_overdue_steps(utc_now())) == 1
        assert workflow_repo.mark_step_overdue(step_id) is True
        assert workflow_repo.mark_step_overdue(step_id) is False
        assert workflow_repo.find_overdue_steps(utc_now()) == []

    def test_mark_workflow_notified_is_conditional(
        self, workflow_repo: WorkflowRepository
    ) -> None:
        """Test that a workflow is stamped at most once."""
        workflow_id = workflow_repo.create_workflow(
            "doc-1", "SEQUENTIAL", "owner", deadline=utc_now() - timedelta(hours=1)
        )
        now = utc_now()

        assert [r["id"] for r in workflow_repo.find_overdue_workflows(now)] == [workflow_id]
        assert workflow_repo.mark_workflow_overdue_notified(workflow_id, now) is True
        assert workflow_repo.mark_workflow_overdue_notified(workflow_id, now) is False
        assert workflow_repo.find_overdue_workflows(now) == []
        assert len(workflow_repo.find_overdue_workflows(now, unnotified_only=False)) == 1

    def test_list_assigned_steps(self, workflow_repo: WorkflowRepository) -> None:
        """Test listing pending steps with workflow columns."""
        workflow_id = workflow_repo.create_workflow(
            "doc-1", "PARALLEL", "owner", status="IN_PROGRESS"
        )
        workflow_repo.add_step(workflow_id, "alice", 1)

        rows = workflow_repo.list_assigned_steps("alice", require_in_progress=True)

        assert len(rows) == 1
        assert rows[0]["workflow_type"] == "PARALLEL"
        assert rows[0]["document_id"] == "doc-1"
        assert workflow_repo.list_assigned_steps("alice", resubmitted_only=True) == []


class TestDirectoryRepositories:
    """Tests for the user and document directories."""

    def test_users(self, user_repo: UserRepository) -> None:
        """Test registering and resolving users."""
        user_repo.create("alice", email="alice@example.com", display_name="Alice", user_id="u1")
        user_repo.create("bob", user_id="u2")

        alice = user_repo.get_user("u1")
        assert alice is not None
        assert alice.identity() == {
            "id": "u1",
            "username": "alice",
            "email": "alice@example.com",
            "display_name": "Alice",
        }
        assert user_repo.get_user("u2").identity()["display_name"] == "bob"
        assert set(user_repo.get_users(["u1", "u2", "u3"])) == {"u1", "u2"}
        assert [row["username"] for row in user_repo.list_all()] == ["alice", "bob"]

    def test_duplicate_username(self, user_repo: UserRepository) -> None:
        """Test that usernames are unique."""
        user_repo.create("alice")

        with pytest.raises(StorageError):
            user_repo.create("alice")

    def test_documents(self, document_repo: DocumentRepository) -> None:
        """Test registering and resolving documents."""
        document_id = document_repo.create("Policy", "owner", file_url="s3://bucket/policy.pdf")

        document = document_repo.get_document(document_id)

        assert document is not None
        assert document.title == "Policy"
        assert document.owner_id == "owner"
        assert document_repo.get_document("missing") is None


class TestNotificationRepository:
    """Tests for the in-app inbox."""

    def test_inbox(self, notification_repo: NotificationRepository) -> None:
        """Test storing, listing and reading notifications."""
        first = notification_repo.create(
            "alice", "overdue_step", "Overdue", "Late", metadata={"workflow_id": "wf-1"}
        )
        notification_repo.create("alice", "workflow_returned", "Returned", "Back")
        notification_repo.create("bob", "overdue_step", "Overdue", "Late")

        rows = notification_repo.list_for_user("alice")
        assert len(rows) == 2
        assert all(row["is_read"] is False for row in rows)
        assert notification_repo.count_unread("alice") == 2

        assert notification_repo.mark_read(first, "alice") is True
        assert notification_repo.mark_read(first, "bob") is False
        assert notification_repo.count_unread("alice") == 1

        unread = notification_repo.list_for_user("alice", unread_only=True)
        assert [row["type"] for row in unread] == ["workflow_returned"]

        read = [row for row in notification_repo.list_for_user("alice") if row["id"] == first]
        assert read[0]["metadata"] == {"workflow_id": "wf-1"}

    def test_mark_all_read(self, notification_repo: NotificationRepository) -> None:
        """Test marking every unread notification of a user as read."""
        notification_repo.create("alice", "overdue_step", "Overdue", "Late")
        notification_repo.create("alice", "workflow_returned", "Returned", "Back")
        notification_repo.create("bob", "overdue_step", "Overdue", "Late")

        assert notification_repo.mark_all_read("alice") == 2
        assert notification_repo.count_unread("alice") == 0
        assert notification_repo.count_unread("bob") == 1
        assert notification_repo.mark_all_read("alice") == 0


class TestTimestamps:
    """Tests for parsing stored and submitted timestamps."""

    def test_parse_zulu_suffix(self) -> None:
        """Test that a trailing Z is read as UTC."""
        parsed = parse_datetime("2030-01-02T03:04:05Z")

        assert parsed == datetime(2030, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_parse_empty(self) -> None:
        """Test that None and the empty string parse to None."""
        assert parse_datetime(None) is None
        assert parse_datetime("") is None

    def test_parse_non_string(self) -> None:
        """Test that a number is refused with a TypeError."""
        with pytest.raises(TypeError):
            parse_datetime(5)  # type: ignore[arg-type]

    def test_parse_garbage(self) -> None:
        """Test that an invalid string is refused with a ValueError."""
        with pytest.raises(ValueError):
            parse_datetime("tomorrow")
