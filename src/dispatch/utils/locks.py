"""Keyed locks — per-entity mutual exclusion for dispatch-critical sections.

Each order, courier, verification code and payee gets its own lock, so work on
one entity never waits on another. Acquisition is bounded: when a lock cannot
be taken within the timeout, ``LockBusy`` is raised and the caller reports a
typed failure instead of waiting indefinitely.

Locks are held around the whole command (``serialized_process``) so the unit
of work commits before another caller can read the entity.
"""

import threading
from collections.abc import Iterable
from contextlib import ExitStack, contextmanager

import structlog
from protean.utils.globals import current_domain

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0

# Lower rank is acquired first. Every caller takes locks in the same order.
_NAMESPACE_RANK = {"order": 0, "courier": 1, "code": 2, "payee": 3}


class LockBusy(Exception):
    """A keyed lock could not be acquired within its timeout."""

    def __init__(self, key: str):
        super().__init__(f"Lock {key} is busy")
        self.key = key


class KeyedLocks:
    """A registry of re-entrant locks created on demand, one per key."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.timeout = timeout
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def _lock_for(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: str, timeout: float | None = None):
        lock = self._lock_for(key)
        if not lock.acquire(timeout=self.timeout if timeout is None else timeout):
            logger.warning("Lock acquisition timed out", key=key)
            raise LockBusy(key)
        try:
            yield
        finally:
            lock.release()

    @contextmanager
    def hold_all(self, keys: Iterable[str], timeout: float | None = None):
        """Acquire several keys in canonical order, releasing all on exit."""
        with ExitStack() as stack:
            for key in sort_keys(keys):
                stack.enter_context(self.hold(key, timeout=timeout))
            yield


def sort_keys(keys: Iterable[str]) -> list[str]:
    unique = {k for k in keys if k}
    return sorted(unique, key=lambda k: (_NAMESPACE_RANK.get(k.split(":", 1)[0], 99), k))


def order_key(order_id) -> str:
    return f"order:{order_id}"


def courier_key(courier_id) -> str:
    return f"courier:{courier_id}"


def code_key(delivery_id, step: str) -> str:
    return f"code:{delivery_id}:{step}"


def payee_key(payee_id) -> str:
    return f"payee:{payee_id}"


locks = KeyedLocks()


def serialized_process(command, *keys: str):
    """Process a command synchronously while holding the given keyed locks.

    Returns the handler's result. Raises ``LockBusy`` if any lock is contended
    past its timeout.
    """
    with locks.hold_all(keys):
        return current_domain.process(command, asynchronous=False)
