"""OperationPipeline — the fixed execution order shared by every operation.

Pipeline: CONTINUATION CHECK → LOCK → VALIDATE → GUARD → TRANSACTION → EXECUTE → RESPOND

Each stage short-circuits the rest: a validation failure never reaches the
guard or the transaction, and a missing continuation never touches the lock
provider. One pipeline object serves exactly one invocation.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from opline.config import runtime
from opline.descriptor import OperationDescriptor, describe
from opline.errors import MissingContinuationError
from opline.pipeline.guard import check_guard
from opline.pipeline.locking import within_mutex
from opline.pipeline.telemetry import trace_span
from opline.pipeline.transaction import within_transaction
from opline.pipeline.validation import check_values

if TYPE_CHECKING:
    from opline.operation import Operation

logger = logging.getLogger(__name__)


class OperationPipeline:
    """Runs one operation instance through every stage."""

    def __init__(self, operation: Operation) -> None:
        self._operation = operation
        self._descriptor: OperationDescriptor = describe(type(operation))

    @property
    def descriptor(self) -> OperationDescriptor:
        return self._descriptor

    def run(self, continuation: Callable[..., Any] | None = None) -> Any:
        descriptor = self._descriptor
        if descriptor.requires_continuation and continuation is None:
            raise MissingContinuationError(f"{descriptor.name} requires a continuation to be called")

        key = self.lock_key()
        ttl_ms = self.lock_ttl_ms() if key else 0
        with trace_span("lock") as span:
            if span is not None and key:
                span.annotate("key", key)
            return within_mutex(key, ttl_ms, lambda: self._checked(continuation))

    # ------------------------------------------------------------------
    # Lock parameters
    # ------------------------------------------------------------------

    def lock_key(self) -> str | None:
        mutex = self._descriptor.mutex
        if mutex is None:
            return None
        accessor = getattr(self._operation, mutex.key)
        key = accessor() if callable(accessor) else accessor
        return str(key) if key not in (None, "") else None

    def lock_ttl_ms(self) -> int:
        mutex = self._descriptor.mutex
        if mutex is not None and mutex.expire_ms is not None:
            return mutex.expire_ms
        return runtime.get_settings().lock.mutex_expire_milliseconds

    # ------------------------------------------------------------------
    # Stages inside the lock
    # ------------------------------------------------------------------

    def _checked(self, continuation: Callable[..., Any] | None) -> Any:
        descriptor = self._descriptor
        with trace_span("validate"):
            check_values(self._operation, descriptor.validations)
        if descriptor.guard is not None:
            with trace_span("guard"):
                check_guard(self._operation, descriptor.guard)
        with trace_span("transaction"):
            return within_transaction(descriptor.transaction, lambda: self._execute(continuation))

    def _execute(self, continuation: Callable[..., Any] | None) -> Any:
        with trace_span("execute"):
            if continuation is not None:
                value = self._operation.execute(continuation)
            else:
                value = self._operation.execute()
        return self._respond(value)

    def _respond(self, value: Any) -> Any:
        response = self._descriptor.response
        if response is None or isinstance(value, response):
            return value
        if isinstance(value, Mapping):
            return response.model_validate(value)
        return value
