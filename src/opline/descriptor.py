"""OperationDescriptor — the immutable per-class view of an operation's declaration.

Descriptors are compiled from the class attributes of an ``Operation``
subclass on first use and cached. Compilation runs at most once per class:
concurrent first callers serialize on a per-class definition lock, and
later callers read the cache without locking.
"""

from __future__ import annotations

import logging
import threading
import weakref
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from opline.domain.rules import Check, Rule
from opline.errors import ConfigurationError
from opline.pipeline.guard import GuardRules

if TYPE_CHECKING:
    from pydantic import BaseModel

    from opline.operation import Operation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Mutex:
    """Mutex declaration.

    Attributes:
        key: Name of the instance method (or attribute) that returns the
            lock key. Called once per invocation, after attribute coercion,
            so the key can be composed from input values.
        expire_ms: TTL override; the configured default applies when None.
    """

    key: str
    expire_ms: int | None = None


@dataclass(frozen=True)
class OperationDescriptor:
    name: str
    mutex: Mutex | None
    transaction: Any
    requires_continuation: bool
    validations: tuple[Rule | Check, ...]
    guard: GuardRules | None
    response: type[BaseModel] | None

    @classmethod
    def compile(cls, operation_cls: type[Operation]) -> OperationDescriptor:
        mutex = operation_cls.within_mutex
        if isinstance(mutex, str):
            mutex = Mutex(mutex)
        if mutex is not None and not mutex.key:
            mutex = None
        if mutex is not None and not _has_attribute(operation_cls, mutex.key):
            msg = f"{operation_cls.__name__}.within_mutex names unknown accessor {mutex.key!r}"
            raise ConfigurationError(msg)

        _check_validations(operation_cls)

        # Guards apply only to the class that declares them.
        guard = operation_cls.__dict__.get("guard")
        if guard is not None:
            _check_delegates(operation_cls, guard)

        return cls(
            name=operation_cls.__name__,
            mutex=mutex,
            transaction=operation_cls.within_transaction,
            requires_continuation=bool(operation_cls.requires_continuation),
            validations=tuple(operation_cls.validations),
            guard=guard,
            response=operation_cls.response,
        )


def _has_attribute(operation_cls: type[Operation], name: str) -> bool:
    return name in operation_cls.model_fields or hasattr(operation_cls, name)


def _check_validations(operation_cls: type[Operation]) -> None:
    for rule in operation_cls.validations:
        unknown = [a for a in rule.attributes if not _has_attribute(operation_cls, a)]
        if unknown:
            msg = (
                f"{operation_cls.__name__} validations read unknown attribute "
                f"{', '.join(repr(a) for a in unknown)}"
            )
            raise ConfigurationError(msg)


def _check_delegates(operation_cls: type[Operation], guard: GuardRules) -> None:
    for name in guard.delegates:
        if not _has_attribute(operation_cls, name):
            msg = f"{operation_cls.__name__} guard delegates unknown attribute {name!r}"
            raise ConfigurationError(msg)
    for rule in guard.rules:
        missing = [a for a in rule.attributes if a not in guard.delegates]
        if missing:
            msg = (
                f"{operation_cls.__name__} guard rule reads {', '.join(missing)} "
                "without delegating it"
            )
            raise ConfigurationError(msg)


_registry_lock = threading.Lock()
_definition_locks: weakref.WeakKeyDictionary[type, threading.Lock] = weakref.WeakKeyDictionary()
_descriptors: weakref.WeakKeyDictionary[type, OperationDescriptor] = weakref.WeakKeyDictionary()


def describe(operation_cls: type[Operation]) -> OperationDescriptor:
    """Return the cached descriptor for *operation_cls*, compiling it once."""
    descriptor = _descriptors.get(operation_cls)
    if descriptor is not None:
        return descriptor

    with _registry_lock:
        definition_lock = _definition_locks.setdefault(operation_cls, threading.Lock())

    with definition_lock:
        descriptor = _descriptors.get(operation_cls)
        if descriptor is None:
            descriptor = OperationDescriptor.compile(operation_cls)
            _descriptors[operation_cls] = descriptor
            logger.debug("Compiled descriptor for %s", descriptor.name)
    return descriptor
