"""Per-key mutual exclusion for read-modify-write sequences.

Loyalty accounts and group orders are single rows that several requests may
update at once. Every mutation runs under a lock keyed on the row
(``loyalty:<user_id>``, ``group:<group_id>``) and commits inside the lock.
The version columns on those tables catch anything the lock cannot see
(another process without Redis), in which case the whole operation is retried.

In-process locks are used by default. When ``REDIS_URL`` is configured the
lock is taken in Redis instead so that several workers share it.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, TypeVar

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.core.exceptions import ConcurrencyConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class KeyedLock:
    """Registry of named locks, created on demand and dropped when unused."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}
        self._redis = None

    def initialize(self, redis_url: str | None = None):
        if redis_url:
            try:
                import redis
                self._redis = redis.from_url(redis_url, socket_connect_timeout=2)
                self._redis.ping()
                logger.info("Redis lock backend connected")
            except Exception as e:
                logger.warning(f"Redis unavailable, using in-process locks: {e}")
                self._redis = None

    @property
    def backend(self) -> str:
        return "redis" if self._redis is not None else "memory"

    def active_keys(self) -> list[str]:
        with self._guard:
            return list(self._locks)

    @contextmanager
    def hold(self, key: str, timeout: Optional[float] = None) -> Iterator[None]:
        """Hold the lock for ``key``; give up after ``timeout`` seconds."""
        if timeout is None:
            timeout = settings.lock_timeout_seconds

        if self._redis is not None:
            with self._hold_redis(key, timeout):
                yield
            return

        with self._guard:
            entry = self._locks.setdefault(key, [threading.RLock(), 0])
            entry[1] += 1

        acquired = entry[0].acquire(timeout=timeout)
        try:
            if not acquired:
                raise ConcurrencyConflictError(
                    f"Timed out waiting for lock on {key}", key=key
                )
            yield
        finally:
            if acquired:
                entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    @contextmanager
    def _hold_redis(self, key: str, timeout: float) -> Iterator[None]:
        from redis.exceptions import LockError

        # Lease outlives the wait so a slow holder is not cut off mid-write.
        lock = self._redis.lock(
            f"lock:{key}", timeout=max(timeout * 6, 30), blocking_timeout=timeout
        )
        if not lock.acquire():
            raise ConcurrencyConflictError(
                f"Timed out waiting for lock on {key}", key=key
            )
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError as e:
                logger.warning(f"Redis lock {key} expired before release: {e}")


keyed_locks = KeyedLock()


def run_serialized(
    db: Session,
    key: str,
    operation: Callable[[], T],
    attempts: Optional[int] = None,
) -> T:
    """Run ``operation`` and commit it while holding the lock for ``key``.

    A ``StaleDataError`` from the version check rolls back and reruns the whole
    operation, so ``operation`` must reload whatever it mutates. Any other
    exception rolls back and propagates. Returns the operation's result.
    """
    attempts = attempts or settings.conflict_retry_attempts

    for attempt in range(1, attempts + 1):
        with keyed_locks.hold(key):
            try:
                result = operation()
                db.commit()
                return result
            except StaleDataError:
                db.rollback()
                logger.warning(
                    f"Version conflict on {key} (attempt {attempt}/{attempts}), retrying"
                )
            except Exception:
                db.rollback()
                raise

    raise ConcurrencyConflictError(
        f"Concurrent modification of {key}, please retry", key=key
    )
