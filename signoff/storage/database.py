"""
Database connection and management for signoff.

This module provides the Database class for managing SQLite database
connections with connection pooling, WAL mode, and thread safety.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from signoff.exceptions import StorageError
from signoff.models.base import generate_uuid

logger = logging.getLogger("signoff.storage.database")

MEMORY_PATH = ":memory:"


class Database:
    """
    SQLite database connection manager with connection pooling.

    Provides thread-safe database access with automatic connection
    management, WAL mode for better concurrent read performance,
    and parameterized query support.

    ``":memory:"`` is mapped to a uniquely named shared-cache in-memory
    database, so every pooled connection of one Database instance sees
    the same data while separate instances stay isolated.

    Attributes:
        path: Path to the SQLite database file.
        pool_size: Maximum number of connections in the pool.
        timeout: Connection timeout in seconds.

    Example:
        Basic usage::

            db = Database("signoff.db")
            db.initialize()

            with db.transaction(immediate=True) as conn:
                conn.execute("UPDATE approval_steps SET ...")
    """

    def __init__(
        self,
        path: str | Path = "signoff.db",
        pool_size: int = 5,
        timeout: float = 30.0,
    ) -> None:
        """
        Initialize the database manager.

        Args:
            path: Path to the SQLite database file. Use ":memory:" for
                an in-memory database (useful for testing).
            pool_size: Maximum number of connections to maintain in the pool.
            timeout: Timeout in seconds for acquiring a database lock.
        """
        self.path = Path(path) if str(path) != MEMORY_PATH else MEMORY_PATH
        self.pool_size = pool_size
        self.timeout = timeout

        self._memory_uri = (
            f"file:signoff-{generate_uuid()}?mode=memory&cache=shared"
            if self.is_memory
            else None
        )
        self._pool: list[sqlite3.Connection] = []
        self._pool_lock = threading.Lock()
        self._initialized = False

    @property
    def is_memory(self) -> bool:
        """Whether this is an in-memory database."""
        return self.path == MEMORY_PATH

    def initialize(self) -> None:
        """
        Initialize the database, apply the schema and pending migrations.

        Raises:
            StorageError: If initialization fails.
        """
        try:
            with self.connection() as conn:
                if not self.is_memory:
                    conn.execute("PRAGMA journal_mode=WAL")

                from signoff.storage.schema import SCHEMA_SQL

                conn.executescript(SCHEMA_SQL)
                conn.commit()
        except sqlite3.Error as e:
            raise StorageError(
                f"Failed to initialize database: {e}",
                details={"path": str(self.path)},
            ) from e

        from signoff.storage.migrations import MigrationManager

        applied = MigrationManager(self).ensure_current()
        if applied:
            logger.info(f"Applied schema migrations: {applied}")
        self._initialized = True

    def _create_connection(self) -> sqlite3.Connection:
        """
        Create a new database connection with proper settings.

        Raises:
            StorageError: If connection creation fails.
        """
        try:
            if self._memory_uri is not None:
                conn = sqlite3.connect(
                    self._memory_uri,
                    timeout=self.timeout,
                    check_same_thread=False,
                    uri=True,
                )
            else:
                conn = sqlite3.connect(
                    str(self.path),
                    timeout=self.timeout,
                    check_same_thread=False,
                )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys=ON")
            conn.execute(f"PRAGMA busy_timeout={int(self.timeout * 1000)}")
            return conn
        except sqlite3.Error as e:
            raise StorageError(
                f"Failed to create database connection: {e}",
                details={"path": str(self.path)},
            ) from e

    def _get_connection(self) -> sqlite3.Connection:
        """Get a connection from the pool or create a new one."""
        with self._pool_lock:
            if self._pool:
                return self._pool.pop()

        return self._create_connection()

    def _return_connection(self, conn: sqlite3.Connection) -> None:
        """Return a connection to the pool, closing it if the pool is full."""
        with self._pool_lock:
            if len(self._pool) < self.pool_size:
                self._pool.append(conn)
                return
        conn.close()

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """
        Get a database connection from the pool.

        The connection is returned to the pool when the context exits.
        If an exception occurs, any open transaction is rolled back.

        Yields:
            A database connection.
        """
        conn = self._get_connection()
        try:
            yield conn
        except Exception:
            conn.rollback()
            raise
        finally:
            self._return_connection(conn)

    @contextmanager
    def transaction(self, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        """
        Get a connection with automatic commit on success.

        This context manager commits the transaction if no exception
        occurs, or rolls back on error.

        Args:
            immediate: Start with ``BEGIN IMMEDIATE`` so the write lock is
                taken before any read. Use it for read-modify-write units
                such as workflow transitions.

        Yields:
            A database connection.

        Raises:
            StorageError: If the transaction cannot be started or committed.
        """
        conn = self._get_connection()
        try:
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(f"Transaction failed: {e}") from e
        except BaseException:
            conn.rollback()
            raise
        finally:
            self._return_connection(conn)

    def execute(
        self,
        sql: str,
        params: tuple[Any, ...] | dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Execute a SQL query and return all results as dictionaries.

        Args:
            sql: The SQL query to execute. Must use parameterized placeholders.
            params: Query parameters as a tuple (for ? placeholders) or
                dict (for :name placeholders).

        Returns:
            List of result rows as dictionaries.

        Raises:
            StorageError: If query execution fails.
        """
        try:
            with self.connection() as conn:
                cursor = conn.execute(sql, params or ())
                return [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise StorageError(
                f"Query execution failed: {e}",
                details={"sql": sql[:100]},
            ) from e

    def execute_one(
        self,
        sql: str,
        params: tuple[Any, ...] | dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """
        Execute a SQL query and return the first result.

        Returns:
            The first result row as a dictionary, or None if no results.
        """
        results = self.execute(sql, params)
        return results[0] if results else None

    def execute_write(
        self,
        sql: str,
        params: tuple[Any, ...] | dict[str, Any] | None = None,
    ) -> int:
        """
        Execute a write query (INSERT, UPDATE, DELETE) and return affected rows.

        Raises:
            StorageError: If query execution fails.
        """
        try:
            with self.transaction() as conn:
                cursor = conn.execute(sql, params or ())
                return cursor.rowcount
        except sqlite3.Error as e:
            raise StorageError(
                f"Write query failed: {e}",
                details={"sql": sql[:100]},
            ) from e

    def health_check(self) -> bool:
        """
        Check if the database is healthy and accessible.

        Returns:
            True if the database is accessible, False otherwise.
        """
        try:
            with self.connection() as conn:
                conn.execute("SELECT 1")
            return True
        except (sqlite3.Error, StorageError) as e:
            logger.warning(f"Database health check failed: {e}")
            return False

    def validate_connection(self) -> dict[str, Any]:
        """
        Validate the database connection and return diagnostic information.

        Returns:
            Dictionary with path, journal mode, foreign key status,
            schema version and table count.

        Raises:
            StorageError: If validation fails.
        """
        try:
            with self.connection() as conn:
                journal = conn.execute("PRAGMA journal_mode").fetchone()
                foreign_keys = conn.execute("PRAGMA foreign_keys").fetchone()
                version = conn.execute(
                    "SELECT MAX(version) FROM schema_version"
                ).fetchone()
                tables = conn.execute(
                    "SELECT COUNT(*) FROM sqlite_master WHERE type='table'"
                ).fetchone()

                return {
                    "path": str(self.path),
                    "initialized": self._initialized,
                    "healthy": True,
                    "journal_mode": journal[0] if journal else "unknown",
                    "foreign_keys_enabled": bool(foreign_keys[0]) if foreign_keys else False,
                    "schema_version": (version[0] or 0) if version else 0,
                    "table_count": tables[0] if tables else 0,
                    "pool_size": self.pool_size,
                    "pool_available": len(self._pool),
                }
        except sqlite3.Error as e:
            raise StorageError(
                f"Database validation failed: {e}",
                details={"path": str(self.path)},
            ) from e

    def close(self) -> None:
        """
        Close all connections in the pool.

        For in-memory databases this discards the data.
        """
        with self._pool_lock:
            for conn in self._pool:
                try:
                    conn.close()
                except sqlite3.Error as e:
                    logger.debug(f"Error closing connection: {e}")
            self._pool.clear()

    def __enter__(self) -> "Database":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit - close all connections."""
        self.close()

    def __repr__(self) -> str:
        """Return string representation."""
        return f"Database(path={self.path!r}, pool_size={self.pool_size})"
