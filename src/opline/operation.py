"""Operation — base class for units of business logic run through the pipeline.

An operation is a pydantic model: its fields are the typed input attributes,
coerced (or rejected with ``pydantic.ValidationError``) before the pipeline
starts. Pipeline behaviour is declared with class attributes::

    class Charge(Operation):
        user_id: int

        within_mutex = Mutex("charge_key", expire_ms=2000)
        within_transaction = DEFAULT
        validations = (Range("user_id", gt=0),)
        guard = GuardRules(
            delegates=("user_id",),
            rules=(Check(not_already_charged, reads=("user_id",)),),
        )
        response = ChargeResponse

        def charge_key(self) -> str:
            return f"charge:{self.user_id}"

        def execute(self) -> dict:
            ...

Two calling conventions:

- ``Charge.run(user_id=7)`` returns the response or raises.
- ``Charge.run_safe(user_id=7)`` returns an :class:`OperationResult`;
  expected failures become failure values, everything else propagates.

A continuation, when the operation takes one, is the first positional
argument of either call and is passed to ``execute`` unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any, ClassVar, Self

from pydantic import BaseModel, ConfigDict, PrivateAttr

from opline.config import runtime
from opline.descriptor import Mutex, describe
from opline.domain.errors import ErrorCollection
from opline.domain.rules import Check, Rule
from opline.errors import OperationError
from opline.pipeline.core import OperationPipeline
from opline.pipeline.guard import GuardContext, GuardRules
from opline.pipeline.result import OperationResult
from opline.pipeline.telemetry import inject_meta, operation_span

if TYPE_CHECKING:
    from opline.descriptor import OperationDescriptor

logger = logging.getLogger(__name__)


class Operation(BaseModel):
    """Base for all operations. Subclasses implement :meth:`execute`."""

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    within_mutex: ClassVar[Mutex | str | None] = None
    within_transaction: ClassVar[Any] = None
    requires_continuation: ClassVar[bool] = False
    validations: ClassVar[Sequence[Rule | Check]] = ()
    guard: ClassVar[GuardRules | None] = None  # applies to the declaring class only
    response: ClassVar[type[BaseModel] | None] = None

    _errors: ErrorCollection = PrivateAttr(default_factory=ErrorCollection)
    _guard_context: GuardContext | None = PrivateAttr(default=None)

    # ------------------------------------------------------------------
    # Calling conventions
    # ------------------------------------------------------------------

    @classmethod
    def run(cls, continuation: Callable[..., Any] | None = None, /, **attributes: Any) -> Any:
        """Run the pipeline and return the response; failures raise."""
        with operation_span(cls.__name__):
            return cls.build(**attributes).perform(continuation)

    @classmethod
    def run_safe(
        cls,
        continuation: Callable[..., Any] | None = None,
        /,
        **attributes: Any,
    ) -> OperationResult:
        """Run the pipeline and return an OperationResult.

        Only :class:`OperationError`, :class:`LockError` and the configured
        ``expected_errors`` become failures; anything else propagates.
        """
        expected = (OperationError, *runtime.expected_errors())
        with operation_span(cls.__name__) as span:
            try:
                value = cls.build(**attributes).perform(continuation)
            except expected as exc:
                logger.info("%s failed: %s", cls.__name__, exc)
                result = OperationResult.failure(cls.__name__, exc)
            else:
                result = OperationResult.success(cls.__name__, value)
            if span is not None:
                span.annotate("ok", result.ok)

        if span is not None and span.parent is None:
            result = inject_meta(result, span)
        return result

    @classmethod
    def build(cls, **attributes: Any) -> Self:
        """Coerce raw *attributes* into a fresh instance (one per invocation)."""
        return cls.model_validate(attributes)

    @classmethod
    def descriptor(cls) -> OperationDescriptor:
        return describe(cls)

    def perform(self, continuation: Callable[..., Any] | None = None) -> Any:
        """Run this instance through the pipeline."""
        return OperationPipeline(self).run(continuation)

    # ------------------------------------------------------------------
    # Body
    # ------------------------------------------------------------------

    def execute(self, *args: Any) -> Any:
        raise NotImplementedError(f"{type(self).__name__} must implement execute()")

    # ------------------------------------------------------------------
    # Per-invocation state
    # ------------------------------------------------------------------

    @property
    def errors(self) -> ErrorCollection:
        """Value-validation accumulator for this invocation."""
        return self._errors

    @property
    def guard_context(self) -> GuardContext | None:
        """The invocation's GuardContext; None until (or unless) guards ran."""
        return self._guard_context

    def _attach_guard(self, context: GuardContext) -> None:
        self._guard_context = context
