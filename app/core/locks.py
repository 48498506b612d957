"""
Per-audit mutation locks.

Mutations of one audit (stage changes, evaluation updates, visits, findings,
report finalization) are serialized through an exclusive lock keyed on the
audit id. Acquisition waits at most ``AUDIT_LOCK_TIMEOUT_SECONDS``.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from app.core.config import settings
from app.core.exceptions import LockTimeoutError

logger = logging.getLogger(__name__)


class AuditLockRegistry:
    """Registry of one ``threading.Lock`` per audit id."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.Lock] = {}

    def _lock_for(self, audit_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(audit_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[audit_id] = lock
            return lock

    @contextmanager
    def hold(self, audit_id: int, timeout: Optional[float] = None) -> Iterator[None]:
        """
        Hold the exclusive lock for ``audit_id``.

        Raises:
            LockTimeoutError: if the lock could not be acquired in time
        """
        if timeout is None:
            timeout = settings.AUDIT_LOCK_TIMEOUT_SECONDS
        lock = self._lock_for(audit_id)
        if not lock.acquire(timeout=timeout):
            logger.warning(f"Lock timeout on audit {audit_id} after {timeout}s")
            raise LockTimeoutError(audit_id, timeout)
        try:
            yield
        finally:
            lock.release()

    def is_locked(self, audit_id: int) -> bool:
        return self._lock_for(audit_id).locked()


audit_locks = AuditLockRegistry()
