"""Error handling framework for ReviewPulse.

This package provides:
- Typed domain exceptions raised by the service layer
- Error code registry with E-XXXX format codes
- Error formatting for API responses and CLI output

Error categories:
- E-1xxx: Lookup errors
- E-2xxx: Validation errors
- E-3xxx: Plan and policy errors (quota, duplicates, cooldown)
- E-4xxx: System/internal errors (contention, audit integrity)
- E-5xxx: Authorization errors
"""

from src.errors.domain import (
    AccessDeniedError,
    AuditIntegrityError,
    ConcurrentModificationError,
    ConflictError,
    CooldownActiveError,
    DomainError,
    DuplicateBrandError,
    DuplicateResourceError,
    InvalidJobTransitionError,
    NotFoundError,
    QuotaExceededError,
    ValidationError,
)
from src.errors.formatter import format_error, format_error_line, http_status_for
from src.errors.registry import (
    ERROR_REGISTRY,
    ErrorCategory,
    ErrorCode,
    get_error,
    get_errors_by_category,
)

__all__ = [
    # Domain errors
    "DomainError",
    "NotFoundError",
    "ValidationError",
    "AccessDeniedError",
    "ConflictError",
    "DuplicateResourceError",
    "DuplicateBrandError",
    "InvalidJobTransitionError",
    "QuotaExceededError",
    "CooldownActiveError",
    "ConcurrentModificationError",
    "AuditIntegrityError",
    # Registry
    "ErrorCode",
    "ErrorCategory",
    "ERROR_REGISTRY",
    "get_error",
    "get_errors_by_category",
    # Formatter
    "format_error",
    "format_error_line",
    "http_status_for",
]
