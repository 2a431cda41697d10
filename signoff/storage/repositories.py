"""
Repository classes for signoff data access.

This module provides repository classes following the repository pattern
for the approval workflow tables, the user and document directories and
the notification inbox.

Repositories return plain dictionaries. Methods that take part in a
workflow transition accept an optional ``conn`` so that every read and
write of one transition runs on the same transaction.
"""

import json
import sqlite3
from datetime import datetime
from typing import Any, Iterable

from signoff.directory.models import DocumentRecord, UserRecord
from signoff.exceptions import ConflictError, StorageError
from signoff.models.base import (
    format_timestamp,
    generate_uuid,
    parse_datetime,
    utc_now,
)
from signoff.storage.database import Database


class BaseRepository:
    """
    Base class for all repositories.

    Provides common functionality for database operations.
    """

    def __init__(self, db: Database) -> None:
        """
        Initialize the repository.

        Args:
            db: The Database instance to use for operations.
        """
        self.db = db

    def _serialize_json(self, value: Any) -> str | None:
        """Serialize a value to JSON string."""
        if value is None:
            return None
        return json.dumps(value)

    def _deserialize_json(self, value: str | None) -> Any:
        """Deserialize a JSON string to a Python object."""
        if value is None:
            return None
        return json.loads(value)

    def _format_datetime(self, dt: datetime | None) -> str | None:
        """Format a datetime as a sortable UTC ISO string."""
        return format_timestamp(dt)

    def _parse_datetime(self, value: str | None) -> datetime | None:
        """Parse an ISO datetime string."""
        return parse_datetime(value)

    def _now(self) -> str:
        return utc_now().isoformat(timespec="microseconds")

    def _fetch_all(
        self,
        sql: str,
        params: tuple[Any, ...] = (),
        conn: sqlite3.Connection | None = None,
    ) -> list[dict[str, Any]]:
        """Run a query on ``conn`` if given, otherwise on a pooled connection."""
        if conn is None:
            return self.db.execute(sql, params)
        try:
            return [dict(row) for row in conn.execute(sql, params).fetchall()]
        except sqlite3.Error as e:
            raise StorageError(
                f"Query execution failed: {e}",
                details={"sql": sql[:100]},
            ) from e

    def _fetch_one(
        self,
        sql: str,
        params: tuple[Any, ...] = (),
        conn: sqlite3.Connection | None = None,
    ) -> dict[str, Any] | None:
        rows = self._fetch_all(sql, params, conn)
        return rows[0] if rows else None

    def _write(
        self,
        sql: str,
        params: tuple[Any, ...] = (),
        conn: sqlite3.Connection | None = None,
    ) -> int:
        """Run a write on ``conn`` if given, otherwise in its own transaction."""
        if conn is None:
            return self.db.execute_write(sql, params)
        try:
            return conn.execute(sql, params).rowcount
        except sqlite3.Error as e:
            raise StorageError(
                f"Write query failed: {e}",
                details={"sql": sql[:100]},
            ) from e


class WorkflowRepository(BaseRepository):
    """
    Repository for approval workflows and their steps.

    Workflow rows keep the column names of the ``approval_workflows``
    table. Step rows keep the ``approval_steps`` columns, so the step
    position is returned as ``step_order``.
    """

    WORKFLOW_FIELDS = ("status", "deadline", "overdue_notified_at", "updated_at")

    STEP_FIELDS = (
        "status",
        "comment",
        "rejection_reason",
        "resubmission_explanation",
        "return_to_step_id",
        "next_step_id",
        "is_resubmitted",
        "is_overdue",
        "is_read",
        "completed_at",
        "updated_at",
    )

    def create_workflow(
        self,
        document_id: str,
        workflow_type: str,
        initiator_id: str,
        deadline: datetime | None = None,
        status: str = "PENDING",
        conn: sqlite3.Connection | None = None,
    ) -> str:
        """
        Create a workflow row.

        Returns:
            The ID of the created workflow.

        Raises:
            ConflictError: If the document already has an active workflow.
            StorageError: If creation fails.
        """
        workflow_id = generate_uuid()
        now = self._now()
        try:
            self._write(
                """
                INSERT INTO approval_workflows (id, document_id, type, status,
                                                initiator_id, deadline, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    workflow_id,
                    document_id,
                    workflow_type,
                    status,
                    initiator_id,
                    self._format_datetime(deadline),
                    now,
                    now,
                ),
                conn,
            )
        except StorageError as e:
            if isinstance(e.__cause__, sqlite3.IntegrityError):
                raise ConflictError(
                    f"There is already an active approval workflow for document with ID {document_id}",
                    details={"document_id": document_id},
                ) from e
            raise
        return workflow_id

    def add_step(
        self,
        workflow_id: str,
        approver_id: str,
        order: int,
        deadline: datetime | None = None,
        conn: sqlite3.Connection | None = None,
    ) -> str:
        """
        Create a PENDING step for a workflow.

        Returns:
            The ID of the created step.
        """
        step_id = generate_uuid()
        now = self._now()
        self._write(
            """
            INSERT INTO approval_steps (id, workflow_id, approver_id, step_order,
                                        status, deadline, created_at, updated_at)
            VALUES (?, ?, ?, ?, 'PENDING', ?, ?, ?)
            """,
            (
                step_id,
                workflow_id,
                approver_id,
                order,
                self._format_datetime(deadline),
                now,
                now,
            ),
            conn,
        )
        return step_id

    def get_workflow(
        self,
        workflow_id: str,
        conn: sqlite3.Connection | None = None,
    ) -> dict[str, Any] | None:
        """Get a workflow row by ID."""
        return self._fetch_one(
            "SELECT * FROM approval_workflows WHERE id = ?", (workflow_id,), conn
        )

    def get_steps(
        self,
        workflow_id: str,
        conn: sqlite3.Connection | None = None,
    ) -> list[dict[str, Any]]:
        """Get the steps of a workflow ordered by step order."""
        return self._fetch_all(
            """
            SELECT * FROM approval_steps
            WHERE workflow_id = ?
            ORDER BY step_order ASC, rowid ASC
            """,
            (workflow_id,),
            conn,
        )

    def get_steps_for_workflows(
        self,
        workflow_ids: Iterable[str],
    ) -> dict[str, list[dict[str, Any]]]:
        """
        Get the steps of several workflows at once.

        Returns:
            Mapping of workflow ID to its ordered step rows.
        """
        ids = list(dict.fromkeys(workflow_ids))
        grouped: dict[str, list[dict[str, Any]]] = {wid: [] for wid in ids}
        if not ids:
            return grouped
        placeholders = ", ".join("?" for _ in ids)
        rows = self._fetch_all(
            f"""
            SELECT * FROM approval_steps
            WHERE workflow_id IN ({placeholders})
            ORDER BY workflow_id, step_order ASC, rowid ASC
            """,
            tuple(ids),
        )
        for row in rows:
            grouped[row["workflow_id"]].append(row)
        return grouped

    def find_active_for_document(
        self,
        document_id: str,
        conn: sqlite3.Connection | None = None,
    ) -> dict[str, Any] | None:
        """Get the PENDING or IN_PROGRESS workflow of a document, if any."""
        return self._fetch_one(
            """
            SELECT * FROM approval_workflows
            WHERE document_id = ? AND status IN ('PENDING', 'IN_PROGRESS')
            """,
            (document_id,),
            conn,
        )

    def list_for_user(self, user_id: str) -> list[dict[str, Any]]:
        """
        List workflows a user initiated or approves, newest first.
        """
        return self._fetch_all(
            """
            SELECT w.* FROM approval_workflows w
            WHERE w.initiator_id = ?
               OR EXISTS (
                    SELECT 1 FROM approval_steps s
                    WHERE s.workflow_id = w.id AND s.approver_id = ?
               )
            ORDER BY w.created_at DESC
            """,
            (user_id, user_id),
        )

    def list_assigned_steps(
        self,
        approver_id: str,
        require_in_progress: bool = False,
        resubmitted_only: bool = False,
    ) -> list[dict[str, Any]]:
        """
        List PENDING steps assigned to an approver with workflow columns.

        Each row carries the step columns plus ``workflow_type``,
        ``workflow_status`` and ``document_id``.

        Args:
            approver_id: The approver.
            require_in_progress: Only include steps of IN_PROGRESS workflows.
            resubmitted_only: Only include steps the document was returned to.
        """
        sql = """
            SELECT s.*, w.type AS workflow_type, w.status AS workflow_status,
                   w.document_id AS document_id
            FROM approval_steps s
            JOIN approval_workflows w ON w.id = s.workflow_id
            WHERE s.approver_id = ? AND s.status = 'PENDING'
        """
        if require_in_progress:
            sql += " AND w.status = 'IN_PROGRESS'"
        if resubmitted_only:
            sql += " AND s.is_resubmitted = 1"
        sql += " ORDER BY w.created_at DESC, s.step_order ASC"
        return self._fetch_all(sql, (approver_id,))

    def update_workflow(
        self,
        workflow_id: str,
        values: dict[str, Any],
        conn: sqlite3.Connection | None = None,
    ) -> int:
        """
        Update selected workflow columns.

        Raises:
            StorageError: If an unknown column is given.
        """
        return self._update("approval_workflows", self.WORKFLOW_FIELDS, workflow_id, values, conn)

    def update_step(
        self,
        step_id: str,
        values: dict[str, Any],
        conn: sqlite3.Connection | None = None,
    ) -> int:
        """
        Update selected step columns.

        Raises:
            StorageError: If an unknown column is given.
        """
        return self._update("approval_steps", self.STEP_FIELDS, step_id, values, conn)

    def _update(
        self,
        table: str,
        allowed: tuple[str, ...],
        row_id: str,
        values: dict[str, Any],
        conn: sqlite3.Connection | None,
    ) -> int:
        unknown = set(values) - set(allowed)
        if unknown:
            raise StorageError(
                f"Cannot update columns {sorted(unknown)} of {table}",
                details={"table": table},
            )
        values = dict(values)
        values.setdefault("updated_at", self._now())
        assignments = ", ".join(f"{column} = ?" for column in values)
        return self._write(
            f"UPDATE {table} SET {assignments} WHERE id = ?",
            (*values.values(), row_id),
            conn,
        )

    def find_overdue_steps(
        self,
        now: datetime,
        conn: sqlite3.Connection | None = None,
    ) -> list[dict[str, Any]]:
        """
        Find PENDING steps past their deadline that are not yet flagged.

        Rows carry the step columns plus the workflow's ``document_id``.
        """
        return self._fetch_all(
            """
            SELECT s.*, w.document_id AS document_id
            FROM approval_steps s
            JOIN approval_workflows w ON w.id = s.workflow_id
            WHERE s.status = 'PENDING'
              AND s.deadline IS NOT NULL
              AND s.deadline < ?
              AND s.is_overdue = 0
            ORDER BY s.deadline ASC
            """,
            (self._format_datetime(now),),
            conn,
        )

    def mark_step_overdue(
        self,
        step_id: str,
        conn: sqlite3.Connection | None = None,
    ) -> bool:
        """
        Flag a step as overdue if it is not flagged already.

        Returns:
            True if this call set the flag.
        """
        count = self._write(
            """
            UPDATE approval_steps SET is_overdue = 1, updated_at = ?
            WHERE id = ? AND is_overdue = 0
            """,
            (self._now(), step_id),
            conn,
        )
        return count == 1

    def find_overdue_workflows(
        self,
        now: datetime,
        unnotified_only: bool = True,
        conn: sqlite3.Connection | None = None,
    ) -> list[dict[str, Any]]:
        """Find active workflows past their deadline."""
        sql = """
            SELECT * FROM approval_workflows
            WHERE status IN ('PENDING', 'IN_PROGRESS')
              AND deadline IS NOT NULL
              AND deadline < ?
        """
        if unnotified_only:
            sql += " AND overdue_notified_at IS NULL"
        sql += " ORDER BY deadline ASC"
        return self._fetch_all(sql, (self._format_datetime(now),), conn)

    def mark_workflow_overdue_notified(
        self,
        workflow_id: str,
        now: datetime,
        conn: sqlite3.Connection | None = None,
    ) -> bool:
        """
        Stamp a workflow as reported overdue if it is not stamped already.

        Returns:
            True if this call set the stamp.
        """
        count = self._write(
            """
            UPDATE approval_workflows SET overdue_notified_at = ?, updated_at = ?
            WHERE id = ? AND overdue_notified_at IS NULL
            """,
            (self._format_datetime(now), self._now(), workflow_id),
            conn,
        )
        return count == 1

    def get_statistics(self) -> dict[str, Any]:
        """
        Count workflows and steps by type and status.

        Returns:
            Dictionary of raw counts.
        """
        workflows_by_status = {
            row["status"]: row["count"]
            for row in self._fetch_all(
                "SELECT status, COUNT(*) AS count FROM approval_workflows GROUP BY status"
            )
        }
        workflows_by_type = {
            row["type"]: row["count"]
            for row in self._fetch_all(
                "SELECT type, COUNT(*) AS count FROM approval_workflows GROUP BY type"
            )
        }
        steps_by_status = {
            row["status"]: row["count"]
            for row in self._fetch_all(
                "SELECT status, COUNT(*) AS count FROM approval_steps GROUP BY status"
            )
        }
        flags = self._fetch_one(
            """
            SELECT COALESCE(SUM(is_read), 0) AS read_count,
                   COALESCE(SUM(CASE WHEN is_read = 0 THEN 1 ELSE 0 END), 0) AS unread_count,
                   COALESCE(SUM(is_overdue), 0) AS overdue_count
            FROM approval_steps
            """
        ) or {}
        return {
            "workflows_by_status": workflows_by_status,
            "workflows_by_type": workflows_by_type,
            "steps_by_status": steps_by_status,
            "read_steps": flags.get("read_count", 0),
            "unread_steps": flags.get("unread_count", 0),
            "overdue_steps": flags.get("overdue_count", 0),
        }


class UserRepository(BaseRepository):
    """
    Repository for the user directory.

    Implements the UserDirectory interface consumed by the workflow engine.
    """

    def create(
        self,
        username: str,
        email: str = "",
        display_name: str = "",
        user_id: str | None = None,
    ) -> str:
        """
        Register a user.

        Returns:
            The ID of the created user.

        Raises:
            StorageError: If the username or ID is already taken.
        """
        user_id = user_id or generate_uuid()
        self.db.execute_write(
            """
            INSERT INTO users (id, username, email, display_name, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (user_id, username, email, display_name, self._now()),
        )
        return user_id

    def get_by_id(self, user_id: str) -> dict[str, Any] | None:
        """Get a user row by ID."""
        return self.db.execute_one("SELECT * FROM users WHERE id = ?", (user_id,))

    def list_all(self) -> list[dict[str, Any]]:
        """List all users ordered by username."""
        return self.db.execute("SELECT * FROM users ORDER BY username")

    def get_user(self, user_id: str) -> UserRecord | None:
        row = self.get_by_id(user_id)
        return self._to_record(row) if row else None

    def get_users(self, user_ids: Iterable[str]) -> dict[str, UserRecord]:
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        rows = self.db.execute(
            f"SELECT * FROM users WHERE id IN ({placeholders})", tuple(ids)
        )
        return {row["id"]: self._to_record(row) for row in rows}

    def _to_record(self, row: dict[str, Any]) -> UserRecord:
        return UserRecord(
            id=row["id"],
            username=row["username"],
            email=row["email"] or "",
            display_name=row["display_name"] or "",
            created_at=self._parse_datetime(row["created_at"]) or utc_now(),
        )


class DocumentRepository(BaseRepository):
    """
    Repository for document metadata.

    Implements the DocumentDirectory interface consumed by the workflow engine.
    """

    def create(
        self,
        title: str,
        owner_id: str,
        file_url: str = "",
        document_id: str | None = None,
    ) -> str:
        """
        Register a document.

        Returns:
            The ID of the created document.
        """
        document_id = document_id or generate_uuid()
        self.db.execute_write(
            """
            INSERT INTO documents (id, title, owner_id, file_url, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (document_id, title, owner_id, file_url, self._now()),
        )
        return document_id

    def get_by_id(self, document_id: str) -> dict[str, Any] | None:
        """Get a document row by ID."""
        return self.db.execute_one("SELECT * FROM documents WHERE id = ?", (document_id,))

    def get_document(self, document_id: str) -> DocumentRecord | None:
        row = self.get_by_id(document_id)
        if row is None:
            return None
        return DocumentRecord(
            id=row["id"],
            title=row["title"],
            owner_id=row["owner_id"],
            file_url=row["file_url"] or "",
            created_at=self._parse_datetime(row["created_at"]) or utc_now(),
        )


class NotificationRepository(BaseRepository):
    """Repository for the in-app notification inbox."""

    def create(
        self,
        user_id: str,
        notification_type: str,
        title: str,
        message: str,
        metadata: dict[str, Any] | None = None,
        notification_id: str | None = None,
    ) -> str:
        """
        Store a notification for a user.

        Returns:
            The ID of the stored notification.
        """
        notification_id = notification_id or generate_uuid()
        self.db.execute_write(
            """
            INSERT INTO notifications (id, user_id, type, title, message,
                                       is_read, metadata, created_at)
            VALUES (?, ?, ?, ?, ?, 0, ?, ?)
            """,
            (
                notification_id,
                user_id,
                notification_type,
                title,
                message,
                self._serialize_json(metadata),
                self._now(),
            ),
        )
        return notification_id

    def list_for_user(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """List a user's notifications, newest first."""
        sql = "SELECT * FROM notifications WHERE user_id = ?"
        if unread_only:
            sql += " AND is_read = 0"
        sql += " ORDER BY created_at DESC LIMIT ?"
        rows = self.db.execute(sql, (user_id, limit))
        for row in rows:
            row["is_read"] = bool(row["is_read"])
            row["metadata"] = self._deserialize_json(row["metadata"]) or {}
        return rows

    def mark_read(self, notification_id: str, user_id: str) -> bool:
        """
        Mark one of the user's notifications as read.

        Returns:
            True if the notification exists and belongs to the user.
        """
        count = self.db.execute_write(
            "UPDATE notifications SET is_read = 1 WHERE id = ? AND user_id = ?",
            (notification_id, user_id),
        )
        return count == 1

    def mark_all_read(self, user_id: str) -> int:
        """Mark every unread notification of a user as read; returns the count."""
        return self.db.execute_write(
            "UPDATE notifications SET is_read = 1 WHERE user_id = ? AND is_read = 0",
            (user_id,),
        )

    def count_unread(self, user_id: str) -> int:
        """Count a user's unread notifications."""
        row = self.db.execute_one(
            "SELECT COUNT(*) AS count FROM notifications WHERE user_id = ? AND is_read = 0",
            (user_id,),
        )
        return row["count"] if row else 0
