"""Declarative validation rules.

A rule reads one attribute from a *target* (an operation instance for value
validation, a :class:`~opline.pipeline.guard.GuardContext` for guards) and
appends to an :class:`ErrorCollection` when it fails. Rules are frozen and
hold no per-invocation state, so one tuple of rules is safely shared by
every invocation of an operation class.

Usage::

    validations = (
        Presence("email"),
        Range("age", ge=18),
    )
"""

from __future__ import annotations

import re
from collections.abc import Callable, Collection, Sized
from dataclasses import dataclass, field
from numbers import Number
from typing import Any

from opline.domain.errors import ErrorCollection


@dataclass(frozen=True)
class Rule:
    """Base for single-attribute rules."""

    attribute: str
    message: str | None = field(default=None, kw_only=True)
    allow_none: bool = field(default=False, kw_only=True)

    @property
    def attributes(self) -> tuple[str, ...]:
        return (self.attribute,)

    def validate(self, target: Any, errors: ErrorCollection) -> None:
        value = getattr(target, self.attribute)
        if value is None and self.allow_none:
            return
        failure = self.failure(value)
        if failure is not None:
            errors.add(self.attribute, self.message or failure)

    def failure(self, value: Any) -> str | None:
        """Return the default failure message, or None when *value* passes."""
        raise NotImplementedError


def _blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, Sized):
        return len(value) == 0
    return value is False


@dataclass(frozen=True)
class Presence(Rule):
    """Value must not be None, blank text, or an empty collection."""

    def failure(self, value: Any) -> str | None:
        return "can't be blank" if _blank(value) else None


@dataclass(frozen=True)
class Length(Rule):
    min: int | None = None
    max: int | None = None

    def failure(self, value: Any) -> str | None:
        if not isinstance(value, Sized):
            return "has no length"
        size = len(value)
        if self.min is not None and size < self.min:
            return f"is too short (minimum is {self.min})"
        if self.max is not None and size > self.max:
            return f"is too long (maximum is {self.max})"
        return None


@dataclass(frozen=True)
class Format(Rule):
    """Value must fully match *pattern*."""

    pattern: str | re.Pattern[str]

    def failure(self, value: Any) -> str | None:
        if not isinstance(value, str) or re.fullmatch(self.pattern, value) is None:
            return "is invalid"
        return None


@dataclass(frozen=True)
class Range(Rule):
    """Numericality bounds; the first violated bound is reported."""

    gt: float | None = None
    ge: float | None = None
    lt: float | None = None
    le: float | None = None

    def failure(self, value: Any) -> str | None:
        if isinstance(value, bool) or not isinstance(value, Number):
            return "is not a number"
        if self.gt is not None and not value > self.gt:
            return f"must be greater than {self.gt}"
        if self.ge is not None and not value >= self.ge:
            return f"must be greater than or equal to {self.ge}"
        if self.lt is not None and not value < self.lt:
            return f"must be less than {self.lt}"
        if self.le is not None and not value <= self.le:
            return f"must be less than or equal to {self.le}"
        return None


@dataclass(frozen=True)
class Inclusion(Rule):
    within: Collection[Any]

    def failure(self, value: Any) -> str | None:
        return None if value in self.within else "is not included in the list"


@dataclass(frozen=True)
class Exclusion(Rule):
    within: Collection[Any]

    def failure(self, value: Any) -> str | None:
        return "is reserved" if value in self.within else None


@dataclass(frozen=True)
class Satisfies(Rule):
    """Custom predicate over a single attribute value."""

    predicate: Callable[[Any], bool]

    def failure(self, value: Any) -> str | None:
        return None if self.predicate(value) else "is invalid"


@dataclass(frozen=True)
class Check:
    """Free-form rule: ``func(target, errors)`` adds whatever it finds.

    Used for lookups that span several attributes or read external state::

        def not_already_charged(guard, errors):
            if ledger.has_charge(guard.user_id):
                errors.add("user_id", "has already been charged")
    """

    func: Callable[[Any, ErrorCollection], None]
    reads: tuple[str, ...] = ()

    @property
    def attributes(self) -> tuple[str, ...]:
        return self.reads

    def validate(self, target: Any, errors: ErrorCollection) -> None:
        self.func(target, errors)


def run_rules(rules: Collection[Rule | Check], target: Any, errors: ErrorCollection) -> bool:
    """Run every rule against *target*; return True when none failed."""
    before = len(errors)
    for rule in rules:
        rule.validate(target, errors)
    return len(errors) == before
