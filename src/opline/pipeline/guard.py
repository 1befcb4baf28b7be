"""GuardStage — business/state preconditions evaluated per invocation.

A guard answers "may this run *now*?", as opposed to value validation's
"is this input well formed?". Rules are declared once per operation class
as a :class:`GuardRules` value; every invocation evaluates them against a
private :class:`GuardContext`, so evaluation needs no locking and errors
never leak between invocations, threads, or nested operations.

Usage::

    class Charge(Operation):
        user_id: int

        guard = GuardRules(
            delegates=("user_id",),
            rules=(Check(not_already_charged, reads=("user_id",)),),
        )
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from opline.domain.errors import ErrorCollection
from opline.domain.rules import Check, Rule, run_rules
from opline.errors import GuardError

if TYPE_CHECKING:
    from opline.operation import Operation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GuardRules:
    """Statically declared guard rule set.

    Attributes:
        delegates: Operation attributes the guard may read.
        rules: Rules evaluated in order; every failure is accumulated.
    """

    delegates: tuple[str, ...] = ()
    rules: Sequence[Rule | Check] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "delegates", tuple(self.delegates))
        object.__setattr__(self, "rules", tuple(self.rules))


class GuardContext:
    """Read-only view of one operation invocation plus its own accumulator."""

    __slots__ = ("_delegates", "_operation", "errors")

    def __init__(self, operation: Operation, delegates: Sequence[str]) -> None:
        self._operation = operation
        self._delegates = frozenset(delegates)
        self.errors = ErrorCollection()

    @property
    def operation(self) -> Operation:
        return self._operation

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        if name in self._delegates:
            return getattr(self._operation, name)
        raise AttributeError(
            f"{type(self._operation).__name__} guard cannot read {name!r}; "
            "add it to GuardRules.delegates"
        )

    def valid(self, rules: Sequence[Rule | Check]) -> bool:
        self.errors.clear()
        return run_rules(rules, self, self.errors)


def check_guard(operation: Operation, guard: GuardRules | None) -> GuardContext | None:
    """Evaluate *guard* against a fresh context bound to *operation*.

    Returns the context (None when the class declares no guard).

    Raises:
        GuardError: At least one rule failed; carries the context.
    """
    if guard is None:
        return None

    context = GuardContext(operation, guard.delegates)
    operation._attach_guard(context)
    if not context.valid(guard.rules):
        logger.debug(
            "Guard failed for %s: %s",
            type(operation).__name__,
            context.errors.full_messages,
        )
        raise GuardError(context)
    return context
