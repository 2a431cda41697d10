"""
Database migration system for signoff.

This module provides a simple migration system that can upgrade
the database schema between versions. Migrations are defined as
Python functions that receive a database connection.
"""

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable

from signoff.exceptions import StorageError
from signoff.storage.schema import SCHEMA_VERSION

if TYPE_CHECKING:
    from signoff.storage.database import Database


@dataclass
class Migration:
    """
    Represents a database migration.

    Attributes:
        version: The schema version this migration upgrades to.
        description: Human-readable description of the migration.
        up: Function to apply the migration.
    """

    version: int
    description: str
    up: Callable[[sqlite3.Connection], None]


def _column_names(conn: sqlite3.Connection, table: str) -> set[str]:
    return {row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}


class MigrationManager:
    """
    Manages database schema migrations.

    The migration manager tracks schema versions and applies
    migrations to upgrade the database to the current version.

    Example:
        Basic usage::

            from signoff.storage import Database, MigrationManager

            db = Database("signoff.db")
            migrator = MigrationManager(db)
            migrator.migrate()
    """

    def __init__(self, db: "Database") -> None:
        """
        Initialize the migration manager.

        Args:
            db: The Database instance to manage migrations for.
        """
        self.db = db
        self._migrations: list[Migration] = [
            Migration(
                version=1,
                description="Initial schema",
                up=self._migration_v1_up,
            ),
            Migration(
                version=2,
                description="Add step read tracking and workflow overdue marker",
                up=self._migration_v2_up,
            ),
        ]

    def _migration_v1_up(self, conn: sqlite3.Connection) -> None:
        """Initial schema is applied by Database.initialize()."""
        pass

    def _migration_v2_up(self, conn: sqlite3.Connection) -> None:
        """Add columns introduced in schema v2 to a v1 database."""
        if "is_read" not in _column_names(conn, "approval_steps"):
            conn.execute(
                "ALTER TABLE approval_steps ADD COLUMN is_read INTEGER NOT NULL DEFAULT 0"
            )
        if "overdue_notified_at" not in _column_names(conn, "approval_workflows"):
            conn.execute(
                "ALTER TABLE approval_workflows ADD COLUMN overdue_notified_at TEXT"
            )

    def get_current_version(self) -> int:
        """
        Get the current schema version from the database.

        Returns:
            The current schema version, or 0 if no version is recorded.
        """
        try:
            result = self.db.execute_one("SELECT MAX(version) AS version FROM schema_version")
            return result["version"] if result and result["version"] else 0
        except StorageError:
            return 0

    def get_target_version(self) -> int:
        """Get the schema version defined in schema.py."""
        return SCHEMA_VERSION

    def get_pending_migrations(self) -> list[Migration]:
        """
        Get list of migrations that need to be applied.

        Returns:
            List of Migration objects that haven't been applied yet.
        """
        current = self.get_current_version()
        return [m for m in self._migrations if m.version > current]

    def get_migration_history(self) -> list[dict[str, Any]]:
        """
        Get the migration history from the database.

        Returns:
            List of migration records with version, applied_at, and description.
        """
        return self.db.execute(
            "SELECT version, applied_at, description FROM schema_version ORDER BY version"
        )

    def migrate(self, target_version: int | None = None) -> list[int]:
        """
        Apply pending migrations up to the target version.

        Args:
            target_version: The version to migrate to. If None, migrates
                to the latest version.

        Returns:
            List of migration versions that were applied.

        Raises:
            StorageError: If migration fails.
        """
        if target_version is None:
            target_version = self.get_target_version()

        current = self.get_current_version()
        applied: list[int] = []

        if current >= target_version:
            return applied

        pending = [m for m in self._migrations if current < m.version <= target_version]

        for migration in pending:
            try:
                self._apply_migration(migration)
            except sqlite3.Error as e:
                raise StorageError(
                    f"Migration to v{migration.version} failed: {e}",
                    details={
                        "version": migration.version,
                        "description": migration.description,
                    },
                ) from e
            applied.append(migration.version)

        return applied

    def _apply_migration(self, migration: Migration) -> None:
        """Apply a single migration and record it."""
        with self.db.transaction() as conn:
            migration.up(conn)
            now = datetime.now(timezone.utc).isoformat()
            conn.execute(
                "INSERT INTO schema_version (version, applied_at, description) "
                "VALUES (?, ?, ?)",
                (migration.version, now, migration.description),
            )

    def check_schema(self) -> dict[str, Any]:
        """
        Check the current schema status.

        Returns:
            Dictionary with schema status information.
        """
        current = self.get_current_version()
        target = self.get_target_version()
        pending = self.get_pending_migrations()

        return {
            "current_version": current,
            "target_version": target,
            "is_current": current >= target,
            "pending_count": len(pending),
            "pending_versions": [m.version for m in pending],
        }

    def ensure_current(self) -> list[int]:
        """
        Apply any pending migrations if the schema is out of date.

        Returns:
            Versions that were applied.
        """
        if self.check_schema()["is_current"]:
            return []
        return self.migrate()
