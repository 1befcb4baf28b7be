"""Pure validation building blocks: rules and the error accumulator."""

from opline.domain.errors import ErrorCollection, ErrorDetail
from opline.domain.rules import (
    Check,
    Exclusion,
    Format,
    Inclusion,
    Length,
    Presence,
    Range,
    Rule,
    Satisfies,
    run_rules,
)

__all__ = [
    "Check",
    "ErrorCollection",
    "ErrorDetail",
    "Exclusion",
    "Format",
    "Inclusion",
    "Length",
    "Presence",
    "Range",
    "Rule",
    "Satisfies",
    "run_rules",
]
