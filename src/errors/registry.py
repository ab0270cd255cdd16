"""Registry of ReviewPulse error codes.

Codes are grouped by leading digit:
- E-1xxx: Lookup errors
- E-2xxx: Validation errors
- E-3xxx: Plan and policy errors
- E-4xxx: System/internal errors
- E-5xxx: Authorization errors

The API and the CLI both render errors from these definitions.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Leading-digit groups of the code space."""

    LOOKUP = "lookup"  # E-1xxx
    VALIDATION = "validation"  # E-2xxx
    POLICY = "policy"  # E-3xxx
    SYSTEM = "system"  # E-4xxx
    AUTH = "auth"  # E-5xxx


@dataclass
class ErrorCode:
    """One registered code.

    Attributes:
        code: E-NNNN identifier.
        category: Group the code belongs to.
        title: Heading shown to clients and on the terminal.
        http_status: Status code the API responds with.
        remediation: What the caller can do about it.
        is_retryable: True when repeating the same request may succeed.
    """

    code: str
    category: ErrorCategory
    title: str
    http_status: int
    remediation: str
    is_retryable: bool = False


ERROR_REGISTRY: dict[str, ErrorCode] = {
    "E-1001": ErrorCode(
        code="E-1001",
        category=ErrorCategory.LOOKUP,
        title="Resource Not Found",
        http_status=404,
        remediation="Check the identifier; deleted resources are no longer visible.",
    ),
    "E-2001": ErrorCode(
        code="E-2001",
        category=ErrorCategory.VALIDATION,
        title="Validation Failed",
        http_status=400,
        remediation="Correct the request and retry.",
    ),
    "E-3001": ErrorCode(
        code="E-3001",
        category=ErrorCategory.POLICY,
        title="Plan Limit Exceeded",
        http_status=403,
        remediation="Remove an existing source or upgrade the plan.",
    ),
    "E-3002": ErrorCode(
        code="E-3002",
        category=ErrorCategory.POLICY,
        title="Duplicate Resource",
        http_status=409,
        remediation="The resource already exists; update it instead of creating it again.",
    ),
    "E-3003": ErrorCode(
        code="E-3003",
        category=ErrorCategory.POLICY,
        title="Cooldown Active",
        http_status=429,
        remediation="Wait until the cooldown window has elapsed.",
        is_retryable=True,
    ),
    "E-4000": ErrorCode(
        code="E-4000",
        category=ErrorCategory.SYSTEM,
        title="Internal Error",
        http_status=500,
        remediation="Contact support if the problem persists.",
    ),
    "E-4001": ErrorCode(
        code="E-4001",
        category=ErrorCategory.SYSTEM,
        title="Concurrent Modification",
        http_status=409,
        remediation="Another request changed the same data. Retry the request.",
        is_retryable=True,
    ),
    "E-4002": ErrorCode(
        code="E-4002",
        category=ErrorCategory.SYSTEM,
        title="Audit Write Aborted",
        http_status=500,
        remediation="No change was applied. Contact support if the problem persists.",
    ),
    "E-5001": ErrorCode(
        code="E-5001",
        category=ErrorCategory.AUTH,
        title="Access Denied",
        http_status=403,
        remediation="The resource belongs to another account.",
    ),
}


def get_error(code: str) -> ErrorCode | None:
    """Look up a code; None for unregistered codes."""
    return ERROR_REGISTRY.get(code)


def get_errors_by_category(category: ErrorCategory) -> list[ErrorCode]:
    return [definition for definition in ERROR_REGISTRY.values() if definition.category is category]
