"""ErrorCollection — the accumulator shared by value and guard validation.

Every rule that fails appends one entry; nothing short-circuits. Callers
render the whole collection so a single round trip reports every problem.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field

BASE = "base"


@dataclass(frozen=True)
class ErrorDetail:
    """One accumulated failure."""

    attribute: str
    message: str

    @property
    def full_message(self) -> str:
        """Human-readable form, e.g. ``"User id can't be blank"``."""
        if self.attribute == BASE:
            return self.message
        return f"{humanize(self.attribute)} {self.message}"


@dataclass
class ErrorCollection:
    """Ordered accumulator of ``(attribute, message)`` failures."""

    _details: list[ErrorDetail] = field(default_factory=list)

    def add(self, attribute: str | None, message: str) -> None:
        self._details.append(ErrorDetail(attribute=attribute or BASE, message=message))

    def clear(self) -> None:
        self._details.clear()

    def __len__(self) -> int:
        return len(self._details)

    def __iter__(self) -> Iterator[ErrorDetail]:
        return iter(self._details)

    def __getitem__(self, attribute: str) -> list[str]:
        return [d.message for d in self._details if d.attribute == attribute]

    @property
    def full_messages(self) -> list[str]:
        return [d.full_message for d in self._details]

    def to_dict(self) -> dict[str, list[str]]:
        """Group messages by attribute, preserving first-seen order."""
        grouped: dict[str, list[str]] = {}
        for detail in self._details:
            grouped.setdefault(detail.attribute, []).append(detail.message)
        return grouped


def humanize(attribute: str) -> str:
    """``"user_id"`` -> ``"User id"``.

    Examples:
        >>> humanize("email")
        'Email'
        >>> humanize("portfolio_state")
        'Portfolio state'
    """
    return attribute.replace("_", " ").strip().capitalize()
