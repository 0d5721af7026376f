"""
In-process keyed locks

One lock per key (work cell id, order id). Combined with row locks
(SELECT ... FOR UPDATE) for cross-process safety on databases that
support them.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, Optional

from mesflow.core.settings import settings
from mesflow.exceptions import ConcurrencyError


class KeyedLocks:
    """Registry handing out one re-entrant lock per key."""

    def __init__(self, name: str = "lock"):
        self.name = name
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.RLock] = {}

    def get(self, key: Hashable) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable, timeout: Optional[float] = None) -> Iterator[None]:
        """
        Hold the lock for ``key`` for the duration of the block.

        Raises:
            ConcurrencyError: another thread kept the lock past ``timeout``
                seconds (LOCK_TIMEOUT_SECONDS by default)
        """
        timeout = settings.LOCK_TIMEOUT_SECONDS if timeout is None else timeout
        lock = self.get(key)
        if not lock.acquire(timeout=timeout):
            raise ConcurrencyError(
                f"Timed out after {timeout}s waiting for {self.name} {key}",
                details={"lock": self.name, "key": str(key), "timeout": timeout},
            )
        try:
            yield
        finally:
            lock.release()


work_cell_locks = KeyedLocks("work cell")
order_locks = KeyedLocks("order")
