"""Exception taxonomy surfaced by the operation pipeline.

Each pipeline stage raises its own kind so callers pick recovery by type:

- :class:`FormError` — input values are wrong; retrying with corrected
  values may succeed.
- :class:`GuardError` — a business/state precondition is unmet; the same
  input may succeed later, depending on external state.
- :class:`MissingContinuationError` — caller protocol violation.
- :class:`LockError` — lock contention or provider unavailability;
  retryable after backoff.
- :class:`ConfigurationError` — the process is misconfigured. Fatal, and
  never converted into a failure value.

Errors raised by an operation body propagate verbatim.
"""

from __future__ import annotations

from typing import Any, ClassVar

from opline.domain.errors import ErrorCollection


class OperationError(Exception):
    """Base for failures that the result convention treats as expected.

    Operation bodies may raise it directly to fail with a plain message.
    """

    code: ClassVar[str] = "OPERATION_FAILED"

    @property
    def messages(self) -> list[str]:
        return [str(self)]

    @property
    def detail(self) -> dict[str, Any]:
        return {}


class _AccumulatedError(OperationError):
    """Wraps either a raw message or the object owning an ErrorCollection."""

    def __init__(self, source: Any) -> None:
        self.source = source
        if isinstance(source, str):
            message = source
        else:
            message = ", ".join(source.errors.full_messages)
        super().__init__(message)

    @property
    def errors(self) -> str | ErrorCollection:
        if isinstance(self.source, str):
            return self.source
        return self.source.errors

    @property
    def messages(self) -> list[str]:
        if isinstance(self.source, str):
            return [self.source]
        return self.source.errors.full_messages

    @property
    def detail(self) -> dict[str, Any]:
        if isinstance(self.source, str):
            return {}
        return {"errors": self.source.errors.to_dict()}


class FormError(_AccumulatedError):
    """Value validation failed. ``source`` is the operation instance."""

    code: ClassVar[str] = "INVALID_INPUT"

    @property
    def form(self) -> Any:
        return self.source


class GuardError(_AccumulatedError):
    """Guard validation failed. ``source`` is the invocation's GuardContext."""

    code: ClassVar[str] = "GUARD_FAILED"

    @property
    def guard(self) -> Any:
        return self.source


class MissingContinuationError(OperationError):
    """The operation requires a continuation and none was supplied."""

    code: ClassVar[str] = "MISSING_CONTINUATION"


class LockError(Exception):
    """The mutex for a key could not be acquired within the retry budget."""

    code: ClassVar[str] = "LOCK_UNAVAILABLE"

    def __init__(self, message: str, *, key: str | None = None) -> None:
        self.key = key
        super().__init__(message)


class LockAcquisitionError(LockError):
    """Every acquisition attempt failed with a provider error."""

    def __init__(self, message: str, *, key: str | None = None, errors: list[Exception]) -> None:
        self.errors = errors
        super().__init__(message, key=key)


class ConfigurationError(Exception):
    """The process or an operation class is misconfigured."""
