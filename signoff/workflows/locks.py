"""
Per-workflow mutual exclusion for signoff.

Mutations of one workflow run under a lock keyed by its id; mutations
of different workflows never wait on each other. The database
transaction (``BEGIN IMMEDIATE``) provides the same boundary across
processes.
"""

import threading
from contextlib import contextmanager
from typing import Iterator


class KeyedLocks:
    """
    A set of re-entrant locks created on demand per key.

    Locks are reference counted and dropped once no thread holds or
    waits for them, so the table does not grow with every workflow
    ever touched.

    Example:
        Serializing mutations of one workflow::

            locks = KeyedLocks()
            with locks.hold(workflow_id):
                ...
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}
        self._users: dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """
        Hold the lock for ``key`` for the duration of the block.

        Args:
            key: The lock key, usually a workflow or document id.
        """
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            self._users[key] = self._users.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[key] -= 1
                if self._users[key] == 0:
                    del self._users[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
