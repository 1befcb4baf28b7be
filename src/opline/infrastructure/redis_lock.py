"""Redis-backed mutex provider with a bounded, jittered retry loop.

Acquisition and release are delegated to redis-py's :class:`redis.lock.Lock`
(``SET NX PX`` with a per-attempt token, Lua compare-and-delete on release).
This module only adds the retry budget, the slow-attempt cutoff and the
mapping onto opline's lock errors.

The TTL is a safety net against crashed holders; nothing interrupts a holder
whose TTL runs out.
"""

from __future__ import annotations

import logging
import random
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from redis.exceptions import LockNotOwnedError, RedisError
from redis.lock import Lock

from opline.errors import LockAcquisitionError, LockError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockHandle:
    """Release token returned by a successful acquisition."""

    resource: str
    value: str
    validity_ms: int


@runtime_checkable
class LockProvider(Protocol):
    """Contract consumed by the pipeline's lock coordinator."""

    def lock(self, resource: str, ttl_ms: int) -> LockHandle | None: ...

    def unlock(self, handle: LockHandle) -> None: ...


class RedisLockClient:
    """Mutex client over a single redis-py connection.

    The client object is shared read-only across threads; redis-py's
    connection pool handles concurrent command dispatch.
    """

    def __init__(
        self,
        redis: Any,
        *,
        retry_count: int = 6,
        retry_delay_ms: int = 500,
        retry_jitter_ms: int = 50,
        timeout_s: float = 0.1,
    ) -> None:
        self._redis = redis
        self.retry_count = retry_count
        self.retry_delay_ms = retry_delay_ms
        self.retry_jitter_ms = retry_jitter_ms
        self.timeout_s = timeout_s

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def lock(self, resource: str, ttl_ms: int) -> LockHandle | None:
        """Try to acquire *resource*; return None once retries are exhausted.

        Raises:
            LockAcquisitionError: Every attempt failed with a Redis error.
        """
        attempts = self.retry_count + 1
        failures: list[Exception] = []

        for attempt in range(attempts):
            if attempt:
                time.sleep(self._retry_delay_s())
            try:
                handle = self._attempt(resource, ttl_ms)
            except RedisError as exc:
                logger.debug("Lock attempt %d on %s failed: %s", attempt + 1, resource, exc)
                failures.append(exc)
                continue
            if handle is not None:
                logger.debug("Acquired lock %s (attempt %d)", resource, attempt + 1)
                return handle

        if len(failures) == attempts:
            msg = f"failed to acquire lock on {resource!r}: lock provider unavailable"
            raise LockAcquisitionError(msg, key=resource, errors=failures)
        logger.debug("Gave up on lock %s after %d attempts", resource, attempts)
        return None

    def lock_or_raise(self, resource: str, ttl_ms: int) -> LockHandle:
        """Like :meth:`lock` but raises :class:`LockError` on contention."""
        handle = self.lock(resource, ttl_ms)
        if handle is None:
            raise LockError(f"failed to acquire lock on {resource!r}", key=resource)
        return handle

    def unlock(self, handle: LockHandle) -> None:
        """Release *handle* if its token still owns the key.

        Best effort: a Redis failure is logged and the key is left to expire
        with its TTL.
        """
        try:
            self._mutex(handle.resource).do_release(handle.value)
        except LockNotOwnedError:
            logger.debug("Lock %s already expired or taken over", handle.resource)
        except RedisError as exc:
            logger.warning("Could not release lock %s (left to expire): %s", handle.resource, exc)
        else:
            logger.debug("Released lock %s", handle.resource)

    def is_locked(self, resource: str) -> bool:
        return self._mutex(resource).locked()

    @contextmanager
    def hold(self, resource: str, ttl_ms: int) -> Iterator[LockHandle]:
        """Hold *resource* for the duration of the ``with`` block."""
        handle = self.lock_or_raise(resource, ttl_ms)
        try:
            yield handle
        finally:
            self.unlock(handle)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _mutex(self, resource: str, ttl_ms: int | None = None) -> Lock:
        timeout = ttl_ms / 1000 if ttl_ms is not None else None
        return self._redis.lock(resource, timeout=timeout, thread_local=False)

    def _attempt(self, resource: str, ttl_ms: int) -> LockHandle | None:
        token = uuid.uuid4().hex
        handle = LockHandle(resource=resource, value=token, validity_ms=ttl_ms)
        started = time.monotonic()
        try:
            acquired = self._mutex(resource, ttl_ms).acquire(blocking=False, token=token)
        except RedisError:
            # The SET may have landed before the reply was lost.
            self.unlock(handle)
            raise
        if not acquired:
            return None

        elapsed_s = time.monotonic() - started
        validity_ms = ttl_ms - int(elapsed_s * 1000)
        if elapsed_s > self.timeout_s or validity_ms <= 0:
            # Too slow to trust the remaining TTL; give the key back.
            self.unlock(handle)
            return None
        return LockHandle(resource=resource, value=token, validity_ms=validity_ms)

    def _retry_delay_s(self) -> float:
        jitter = random.uniform(0, self.retry_jitter_ms) if self.retry_jitter_ms else 0.0
        return (self.retry_delay_ms + jitter) / 1000
