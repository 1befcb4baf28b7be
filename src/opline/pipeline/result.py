"""OperationResult and OperationFailure — the result-returning convention.

INVARIANT: ``Operation.run_safe`` always returns an OperationResult for
expected failures; anything else propagates as an unhandled fault.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from opline.errors import FormError, GuardError


class OperationFailure(BaseModel):
    """Structured failure payload within an OperationResult.

    Attributes:
        code: Error kind tag (``INVALID_INPUT``, ``GUARD_FAILED``,
            ``MISSING_CONTINUATION``, ``LOCK_UNAVAILABLE``,
            ``OPERATION_FAILED``, or the class name of an allow-listed error).
        message: Every individual message joined into one summary.
        messages: Each individual message.
        detail: Per-attribute breakdown for form and guard failures.
        exception: The originating exception (never serialized).
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    code: str
    message: str
    messages: list[str] = Field(default_factory=list)
    detail: dict[str, Any] = Field(default_factory=dict)
    exception: BaseException | None = Field(default=None, exclude=True, repr=False)

    @classmethod
    def from_exception(cls, exc: BaseException) -> OperationFailure:
        code = getattr(exc, "code", None) or type(exc).__name__
        messages = getattr(exc, "messages", None) or [str(exc)]
        detail = getattr(exc, "detail", None) or {}
        return cls(
            code=code,
            message=str(exc),
            messages=list(messages),
            detail=dict(detail),
            exception=exc,
        )

    @property
    def errors(self) -> Any:
        """The accumulator (or raw message) behind a form or guard failure."""
        if isinstance(self.exception, (FormError, GuardError)):
            return self.exception.errors
        return self.message


class OperationResult(BaseModel):
    """Tagged success/failure returned by ``Operation.run_safe``.

    Attributes:
        ok: Whether the operation succeeded.
        op: Name of the operation class (e.g. ``"Charge"``).
        value: The operation's response on success.
        error: Structured failure if ``ok`` is False.
        meta: Optional metadata (telemetry span tree when enabled).
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    ok: bool
    op: str
    value: Any = None
    error: OperationFailure | None = None
    meta: dict[str, Any] | None = None

    @classmethod
    def success(cls, op: str, value: Any) -> OperationResult:
        return cls(ok=True, op=op, value=value)

    @classmethod
    def failure(cls, op: str, exc: BaseException) -> OperationResult:
        return cls(ok=False, op=op, error=OperationFailure.from_exception(exc))

    def unwrap(self) -> Any:
        """Return the value, or re-raise the exception behind the failure."""
        if self.ok:
            return self.value
        if self.error is None:
            raise RuntimeError(f"{self.op} failed without an error payload")
        if self.error.exception is not None:
            raise self.error.exception
        raise RuntimeError(self.error.message)
