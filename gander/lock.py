"""Session-level database locks that keep concurrent migration runs apart."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable

# A crc64 (ECMA) checksum of the tool's name, so the lock does not collide with others.
DEFAULT_LOCK_ID = 5887940537704921958

_LOCK_QUERY = "SELECT pg_try_advisory_lock(%s)"
_UNLOCK_QUERY = "SELECT pg_advisory_unlock(%s)"


class LockNotImplementedError(NotImplementedError):
    """The database does not support locking."""

    def __init__(self, message: str = "lock not implemented") -> None:
        super().__init__(message)


class UnlockNotImplementedError(NotImplementedError):
    """The database does not support unlocking."""

    def __init__(self, message: str = "unlock not implemented") -> None:
        super().__init__(message)


class LockError(RuntimeError):
    """A lock could not be acquired or released."""


class SessionLocker(ABC):
    """Locks the database for the lifetime of one connection.

    Both methods must be called with the same connection.
    """

    @abstractmethod
    def session_lock(self, conn) -> None:
        """Acquire the lock on ``conn``."""

    @abstractmethod
    def session_unlock(self, conn) -> None:
        """Release the lock held by ``conn``."""


def _check_probe(period: int, failure_threshold: int) -> None:
    if period < 1:
        raise ValueError("period must be greater than 0, minimum is 1")
    if failure_threshold < 1:
        raise ValueError("failure threshold must be greater than 0, minimum is 1")


class PostgresSessionLocker(SessionLocker):
    """A locker built on PostgreSQL's exclusive session-level advisory locks.

    Acquiring is retried every ``lock_period`` seconds up to
    ``lock_failure_threshold`` times (five minutes by default); releasing is
    retried every ``unlock_period`` seconds up to ``unlock_failure_threshold``
    times (one minute by default). ``conn`` is a DB-API connection using the
    ``%s`` parameter style.
    """

    def __init__(
        self,
        lock_id: int = DEFAULT_LOCK_ID,
        lock_period: int = 5,
        lock_failure_threshold: int = 60,
        unlock_period: int = 2,
        unlock_failure_threshold: int = 30,
        sleep: Callable[[float], object] = time.sleep,
    ) -> None:
        _check_probe(lock_period, lock_failure_threshold)
        _check_probe(unlock_period, unlock_failure_threshold)
        self.lock_id = lock_id
        self.lock_period = lock_period
        self.lock_failure_threshold = lock_failure_threshold
        self.unlock_period = unlock_period
        self.unlock_failure_threshold = unlock_failure_threshold
        self._sleep = sleep

    def _query_bool(self, conn, query: str, what: str) -> bool:
        try:
            cursor = conn.cursor()
            try:
                cursor.execute(query, (self.lock_id,))
                row = cursor.fetchone()
            finally:
                cursor.close()
        except Exception as exc:
            raise LockError(f"failed to execute {what}: {exc}") from exc
        if row is None:
            raise LockError(f"failed to execute {what}: no rows in result set")
        return bool(row[0])

    def _retry(
        self, conn, query: str, what: str, period: int, retries: int, failure: str
    ) -> None:
        for attempt in range(retries + 1):
            if attempt:
                self._sleep(period)
            if self._query_bool(conn, query, what):
                return
        raise LockError(failure)

    def session_lock(self, conn) -> None:
        """Acquire the advisory lock, retrying while another session holds it."""
        self._retry(
            conn,
            _LOCK_QUERY,
            "pg_try_advisory_lock",
            self.lock_period,
            self.lock_failure_threshold,
            "failed to acquire lock",
        )

    def session_unlock(self, conn) -> None:
        """Release the advisory lock, retrying while the release is refused."""
        self._retry(
            conn,
            _UNLOCK_QUERY,
            "pg_advisory_unlock",
            self.unlock_period,
            self.unlock_failure_threshold,
            "failed to unlock session",
        )