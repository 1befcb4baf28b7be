"""LockCoordinator — at most one concurrent body per resource key."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from opline.config import runtime
from opline.errors import LockError

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


def within_mutex(key: str | None, ttl_ms: int, body: Callable[[], _T]) -> _T:
    """Run *body* while holding the mutex for *key*.

    Locking is opt-in: a None or empty key runs *body* directly. The lock is
    released on every exit path, including exceptions raised by *body*.

    Raises:
        LockError: The provider could not grant the lock within its retry
            budget (``LockAcquisitionError`` when the provider was unreachable).
    """
    if not key:
        return body()

    client = runtime.lock_client()
    handle = client.lock(key, ttl_ms)
    if handle is None:
        logger.info("Lock contention on %s", key)
        raise LockError(f"failed to acquire lock on {key!r}", key=key)

    try:
        return body()
    finally:
        client.unlock(handle)
