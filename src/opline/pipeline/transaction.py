"""TransactionCoordinator — wraps the operation body in an atomic unit.

Holds no transaction state: commit and rollback belong to the resource.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from opline.config import runtime
from opline.infrastructure.sql import transaction_scope

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class TransactionTarget(enum.Enum):
    DEFAULT = "default"


DEFAULT = TransactionTarget.DEFAULT
"""Use the process-wide default resource (``configure(default_transaction=...)``)."""


def resolve_target(target: Any) -> Any:
    if target is DEFAULT:
        return runtime.default_transaction()
    return target


def within_transaction(target: Any, body: Callable[[], _T]) -> _T:
    """Run *body* inside *target*'s transaction; None runs it directly.

    Exceptions from *body* propagate through the scope so the resource
    rolls back.
    """
    if target is None:
        return body()

    resource = resolve_target(target)
    logger.debug("Entering transaction on %r", resource)
    with transaction_scope(resource):
        return body()
