"""Error formatting for API and CLI display.

Turns a DomainError into the structured payload clients receive:
code, title, message, remediation, details and the retryable flag taken
from the registry entry for the error's code.
"""

from typing import Any

from src.errors.domain import DomainError
from src.errors.registry import ERROR_REGISTRY, get_error

_FALLBACK = ERROR_REGISTRY["E-4000"]


def http_status_for(error: DomainError) -> int:
    """Return the HTTP status registered for the error's code."""
    error_def = get_error(error.code) or _FALLBACK
    return error_def.http_status


def format_error(error: DomainError) -> dict[str, Any]:
    """Build the structured error body for a domain error.

    Args:
        error: Raised domain error.

    Returns:
        Dict with code, title, message, remediation, details, retryable.
    """
    error_def = get_error(error.code) or _FALLBACK
    return {
        "code": error_def.code,
        "title": error_def.title,
        "message": error.message,
        "remediation": error_def.remediation,
        "details": error.to_details(),
        "retryable": error_def.is_retryable,
    }


def format_error_line(error: DomainError) -> str:
    """Single-line rendering for terminal output."""
    error_def = get_error(error.code) or _FALLBACK
    return f"{error_def.code} {error_def.title}: {error.message}"
