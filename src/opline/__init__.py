"""opline — locked, validated, guarded, transactional operation pipeline."""

from opline.descriptor import Mutex, OperationDescriptor, describe
from opline.domain import (
    Check,
    ErrorCollection,
    Exclusion,
    Format,
    Inclusion,
    Length,
    Presence,
    Range,
    Satisfies,
)
from opline.errors import (
    ConfigurationError,
    FormError,
    GuardError,
    LockAcquisitionError,
    LockError,
    MissingContinuationError,
    OperationError,
)
from opline.infrastructure.sql import current_transaction
from opline.operation import Operation
from opline.pipeline.guard import GuardContext, GuardRules
from opline.pipeline.result import OperationFailure, OperationResult
from opline.pipeline.transaction import DEFAULT

__version__ = "0.1.0"

__all__ = [
    "DEFAULT",
    "Check",
    "ConfigurationError",
    "ErrorCollection",
    "Exclusion",
    "Format",
    "FormError",
    "GuardContext",
    "GuardError",
    "GuardRules",
    "Inclusion",
    "Length",
    "LockAcquisitionError",
    "LockError",
    "MissingContinuationError",
    "Mutex",
    "Operation",
    "OperationDescriptor",
    "OperationError",
    "OperationFailure",
    "OperationResult",
    "Presence",
    "Range",
    "Satisfies",
    "current_transaction",
    "describe",
]
