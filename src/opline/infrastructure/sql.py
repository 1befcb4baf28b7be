"""Transaction scopes over SQLAlchemy and duck-typed resources.

:func:`transaction_scope` turns a transactional resource into a context
manager that commits on normal exit and rolls back when the block raises:

- ``Engine``: ``engine.begin()`` — a fresh connection per scope.
- ``Connection`` / ``Session``: ``begin_nested()`` (SAVEPOINT) when a
  transaction is already open on it, otherwise ``begin()``.
- anything else: ``resource.transaction()``.

The handle of the innermost open scope is published through a ContextVar so
operation bodies can reach it with :func:`current_transaction`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import Session

from opline.errors import ConfigurationError

logger = logging.getLogger(__name__)

_current: ContextVar[Any | None] = ContextVar("_current_transaction", default=None)


@contextmanager
def transaction_scope(resource: Any) -> Iterator[Any]:
    """Open an atomic unit on *resource* and yield its handle."""
    with _open(resource) as handle:
        token = _current.set(handle)
        try:
            yield handle
        finally:
            _current.reset(token)


def _open(resource: Any) -> Any:
    if isinstance(resource, Engine):
        return resource.begin()
    if isinstance(resource, (Connection, Session)):
        return _begin_on(resource)
    factory = getattr(resource, "transaction", None)
    if callable(factory):
        return factory()
    msg = (
        f"{resource!r} is not a transactional resource: expected a SQLAlchemy "
        "Engine, Connection or Session, or an object with a transaction() method"
    )
    raise ConfigurationError(msg)


@contextmanager
def _begin_on(resource: Connection | Session) -> Iterator[Connection | Session]:
    if resource.in_transaction():
        logger.debug("Opening SAVEPOINT on %r", resource)
        with resource.begin_nested():
            yield resource
    else:
        with resource.begin():
            yield resource


def current_transaction() -> Any:
    """Handle of the innermost open scope (Connection, Session, ...), or None."""
    return _current.get()
