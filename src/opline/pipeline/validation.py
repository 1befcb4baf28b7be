"""ValidationStage — value rules run against the operation's own attributes."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from opline.domain.rules import Check, Rule, run_rules
from opline.errors import FormError

if TYPE_CHECKING:
    from opline.operation import Operation

logger = logging.getLogger(__name__)


def check_values(operation: Operation, rules: Sequence[Rule | Check]) -> None:
    """Run every rule, accumulating all failures before reporting.

    Raises:
        FormError: Any rule failed; carries the operation (and its errors).
    """
    errors = operation.errors
    errors.clear()
    if not run_rules(rules, operation, errors):
        logger.debug(
            "Validation failed for %s: %s",
            type(operation).__name__,
            errors.full_messages,
        )
        raise FormError(operation)
