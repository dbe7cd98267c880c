"""Error handling framework for the dispatch pipeline.

Error categories:
- E-1xxx: Order data errors
- E-2xxx: Validation errors
- E-3xxx: External service errors
- E-4xxx: System/internal errors
"""

from lastmile.errors.domain import (
    DomainError,
    InvalidDateFilterError,
    InvalidPageError,
    NotFoundError,
    OrderIntegrityError,
    ValidationError,
)
from lastmile.errors.registry import (
    ERROR_REGISTRY,
    ErrorCategory,
    ErrorCode,
    get_error,
    get_errors_by_category,
)

__all__ = [
    # Registry
    "ErrorCode",
    "ErrorCategory",
    "ERROR_REGISTRY",
    "get_error",
    "get_errors_by_category",
    # Domain exceptions
    "DomainError",
    "NotFoundError",
    "ValidationError",
    "InvalidPageError",
    "InvalidDateFilterError",
    "OrderIntegrityError",
]
