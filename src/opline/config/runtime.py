"""Process-wide pipeline state — settings, lock provider, default transaction.

Configuration is set once (ideally before the first operation runs) and read
many times. The lock provider is built lazily on first use; construction is
serialized so concurrent first callers share one instance.

Usage::

    from opline.config import runtime

    runtime.configure(redis_client=redis.Redis(), default_transaction=engine)
"""

from __future__ import annotations

import logging
import threading
from typing import Any

import redis

from opline.config.logging import configure_logging_from_settings
from opline.config.settings import OplineSettings
from opline.errors import ConfigurationError, LockError
from opline.infrastructure.redis_lock import LockProvider, RedisLockClient

logger = logging.getLogger(__name__)

_state_lock = threading.RLock()
_settings: OplineSettings | None = None
_lock_client: LockProvider | None = None
_redis_client: Any | None = None
_default_transaction: Any | None = None


def configure(
    settings: OplineSettings | None = None,
    *,
    lock_client: LockProvider | None = None,
    redis_client: Any | None = None,
    default_transaction: Any | None = None,
    **overrides: Any,
) -> OplineSettings:
    """Replace the process-wide configuration.

    *settings* defaults to :meth:`OplineSettings.load` with *overrides*
    applied. Any previously built lock client is discarded unless
    *lock_client* is given explicitly.
    """
    global _settings, _lock_client, _redis_client, _default_transaction
    if settings is None:
        settings = OplineSettings.load(**overrides)
    elif overrides:
        settings = settings.model_copy(update=overrides)
    with _state_lock:
        _settings = settings
        _lock_client = lock_client
        _redis_client = redis_client
        _default_transaction = default_transaction
    if settings.log.enabled:
        configure_logging_from_settings(settings)
    logger.debug("opline configured (config_path=%s)", settings.config_path)
    return settings


def reset() -> None:
    """Drop all process-wide state (next access reloads defaults)."""
    global _settings, _lock_client, _redis_client, _default_transaction
    with _state_lock:
        _settings = None
        _lock_client = None
        _redis_client = None
        _default_transaction = None


def get_settings() -> OplineSettings:
    global _settings
    current = _settings
    if current is not None:
        return current
    with _state_lock:
        if _settings is None:
            _settings = OplineSettings.load()
        return _settings


def lock_client() -> LockProvider:
    """Return the shared lock provider, building it on first use.

    Raises:
        ConfigurationError: No provider, Redis client, or ``lock.redis_url``
            is configured.
    """
    global _lock_client
    current = _lock_client
    if current is not None:
        return current
    with _state_lock:
        if _lock_client is None:
            _lock_client = _build_lock_client(get_settings())
        return _lock_client


def _build_lock_client(settings: OplineSettings) -> LockProvider:
    client = _redis_client
    if client is None and settings.lock.redis_url:
        client = redis.Redis.from_url(
            settings.lock.redis_url,
            socket_timeout=settings.lock.timeout_s,
        )
    if client is None:
        msg = (
            "No lock provider is configured. Call "
            "opline.config.runtime.configure(redis_client=...) or set "
            "OPLINE_LOCK__REDIS_URL before running operations that declare a mutex."
        )
        raise ConfigurationError(msg)

    logger.debug("Building Redis lock client")
    return RedisLockClient(
        client,
        retry_count=settings.lock.retry_count,
        retry_delay_ms=settings.lock.retry_delay_ms,
        retry_jitter_ms=settings.lock.retry_jitter_ms,
        timeout_s=settings.lock.timeout_s,
    )


def default_transaction() -> Any:
    """Return the resource used by operations declaring ``DEFAULT``."""
    resource = _default_transaction
    if resource is None:
        msg = (
            "No default transaction resource is configured. Call "
            "opline.config.runtime.configure(default_transaction=engine)."
        )
        raise ConfigurationError(msg)
    return resource


def expected_errors() -> tuple[type[BaseException], ...]:
    """Configured expected errors plus :class:`LockError`, deduplicated."""
    merged = [LockError, *get_settings().expected_errors]
    return tuple(dict.fromkeys(merged))
