"""Shared pytest fixtures and test doubles for opline tests."""

from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

import fakeredis
import pytest

from opline.config import runtime
from opline.config.settings import OplineSettings
from opline.infrastructure.redis_lock import LockHandle
from opline.pipeline.telemetry import _current_span, disable_telemetry


class MemoryLockProvider:
    """In-process LockProvider with TTL expiry and a bounded retry loop."""

    def __init__(self, *, retry_count: int = 0, retry_delay_ms: int = 5) -> None:
        self.retry_count = retry_count
        self.retry_delay_ms = retry_delay_ms
        self.calls: list[tuple[str, int]] = []
        self.released: list[str] = []
        self._held: dict[str, tuple[str, float]] = {}
        self._mutex = threading.Lock()

    def lock(self, resource: str, ttl_ms: int) -> LockHandle | None:
        with self._mutex:
            self.calls.append((resource, ttl_ms))
        for attempt in range(self.retry_count + 1):
            if attempt:
                time.sleep(self.retry_delay_ms / 1000)
            with self._mutex:
                now = time.monotonic()
                held = self._held.get(resource)
                if held is None or held[1] <= now:
                    value = uuid.uuid4().hex
                    self._held[resource] = (value, now + ttl_ms / 1000)
                    return LockHandle(resource=resource, value=value, validity_ms=ttl_ms)
        return None

    def unlock(self, handle: LockHandle) -> None:
        with self._mutex:
            held = self._held.get(handle.resource)
            if held is not None and held[0] == handle.value:
                del self._held[handle.resource]
            self.released.append(handle.resource)

    def is_locked(self, resource: str) -> bool:
        with self._mutex:
            held = self._held.get(resource)
            return held is not None and held[1] > time.monotonic()


class RecordingResource:
    """Duck-typed transactional resource that records begin/commit/rollback."""

    def __init__(self) -> None:
        self.events: list[str] = []

    @property
    def entered(self) -> int:
        return self.events.count("begin")

    @contextmanager
    def transaction(self) -> Iterator[RecordingResource]:
        self.events.append("begin")
        try:
            yield self
        except BaseException:
            self.events.append("rollback")
            raise
        self.events.append("commit")


@pytest.fixture(autouse=True)
def _runtime() -> Iterator[None]:
    """Fresh process-wide state per test: defaults, no TOML, no lock provider."""
    runtime.configure(OplineSettings())
    yield
    runtime.reset()
    disable_telemetry()
    _current_span.set(None)


@pytest.fixture
def lock_provider() -> MemoryLockProvider:
    """MemoryLockProvider installed as the process-wide lock client."""
    provider = MemoryLockProvider()
    runtime.configure(OplineSettings(), lock_client=provider)
    return provider


@pytest.fixture
def install_lock_provider() -> Callable[..., MemoryLockProvider]:
    """Factory installing a MemoryLockProvider with a custom retry budget."""

    def install(**kwargs: Any) -> MemoryLockProvider:
        provider = MemoryLockProvider(**kwargs)
        runtime.configure(OplineSettings(), lock_client=provider)
        return provider

    return install


@pytest.fixture
def resource() -> RecordingResource:
    return RecordingResource()


@pytest.fixture
def redis_server() -> fakeredis.FakeServer:
    """In-memory Redis server; set ``connected = False`` to simulate an outage."""
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(redis_server: fakeredis.FakeServer) -> Iterator[Any]:
    client = fakeredis.FakeRedis(server=redis_server)
    try:
        yield client
    finally:
        redis_server.connected = True
        client.flushall()
