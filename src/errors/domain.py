"""Typed domain exceptions for API error mapping.

These exceptions are the client-facing contract of the service layer.
Each carries the structured context a caller needs (counts, keys, remaining
cooldown) and an E-XXXX code from the registry. Routes never match on
message strings; the API exception handler maps the type to a status.

Usage:
    # In service layer
    raise NotFoundError("ReviewSource", source_id)

    # In route handler / exception handler
    except QuotaExceededError as e:
        return {"currentCount": e.current_count, "maxAllowed": e.max_allowed}
"""

from datetime import datetime, timedelta
from typing import Any


class DomainError(Exception):
    """Base exception for all domain errors."""

    code = "E-4000"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_details(self) -> dict[str, Any]:
        """Structured context for error responses."""
        return {}


class NotFoundError(DomainError):
    """Resource was not found (or is soft-deleted). Maps to HTTP 404."""

    code = "E-1001"

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(f"{resource_type} '{identifier}' not found")
        self.resource_type = resource_type
        self.identifier = identifier

    def to_details(self) -> dict[str, Any]:
        return {"resourceType": self.resource_type, "identifier": self.identifier}


class ValidationError(DomainError):
    """Validation failure. Maps to HTTP 400."""

    code = "E-2001"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class AccessDeniedError(DomainError):
    """Resource exists but belongs to another owner. Maps to HTTP 403."""

    code = "E-5001"

    def __init__(self, message: str = "Access to this resource is denied") -> None:
        super().__init__(message)


class ConflictError(DomainError):
    """Resource conflict (e.g., duplicate). Maps to HTTP 409."""

    code = "E-3002"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class DuplicateResourceError(ConflictError):
    """A non-deleted source with the same compound key already exists."""

    def __init__(self, brand_id: str, platform_type: str, external_profile_id: str) -> None:
        super().__init__(
            f"Review source {platform_type}:{external_profile_id} "
            f"already exists for brand '{brand_id}'"
        )
        self.brand_id = brand_id
        self.platform_type = platform_type
        self.external_profile_id = external_profile_id

    def to_details(self) -> dict[str, Any]:
        return {
            "brandId": self.brand_id,
            "platformType": self.platform_type,
            "externalProfileId": self.external_profile_id,
        }


class DuplicateBrandError(ConflictError):
    """The owner already has a brand."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"User '{user_id}' already owns a brand")
        self.user_id = user_id

    def to_details(self) -> dict[str, Any]:
        return {"userId": self.user_id}


class InvalidJobTransitionError(ConflictError):
    """A sync job cannot move from its current status to the requested one."""

    def __init__(self, job_id: int, current: str, attempted: str, allowed: list[str]) -> None:
        allowed_str = ", ".join(allowed) or "none (terminal)"
        super().__init__(
            f"Sync job {job_id} cannot move from '{current}' to '{attempted}'. "
            f"Allowed transitions: {allowed_str}"
        )
        self.job_id = job_id
        self.current_status = current
        self.attempted_status = attempted
        self.allowed = allowed

    def to_details(self) -> dict[str, Any]:
        return {
            "jobId": self.job_id,
            "currentStatus": self.current_status,
            "attemptedStatus": self.attempted_status,
            "allowedTransitions": self.allowed,
        }


class QuotaExceededError(DomainError):
    """The owner's plan does not allow another active source. Maps to HTTP 403."""

    code = "E-3001"

    def __init__(self, current_count: int, max_allowed: int, plan_type: str) -> None:
        super().__init__(
            f"Plan limit reached: {current_count} of {max_allowed} review sources "
            f"used on the {plan_type} plan"
        )
        self.current_count = current_count
        self.max_allowed = max_allowed
        self.plan_type = plan_type

    def to_details(self) -> dict[str, Any]:
        return {
            "currentCount": self.current_count,
            "maxAllowed": self.max_allowed,
            "planType": self.plan_type,
        }


class CooldownActiveError(DomainError):
    """Manual refresh requested inside the cooldown window. Maps to HTTP 429."""

    code = "E-3003"

    def __init__(self, remaining: timedelta, next_allowed_at: datetime) -> None:
        hours = int(remaining.total_seconds() // 3600)
        minutes = int(remaining.total_seconds() % 3600 // 60)
        super().__init__(
            f"Manual refresh is allowed once per cooldown window. "
            f"Try again in {hours}h {minutes}m."
        )
        self.remaining = remaining
        self.next_allowed_at = next_allowed_at

    def to_details(self) -> dict[str, Any]:
        return {
            "remainingSeconds": int(self.remaining.total_seconds()),
            "nextAllowedAt": self.next_allowed_at.isoformat(),
        }


class ConcurrentModificationError(DomainError):
    """Storage contention could not be resolved within the request. Maps to HTTP 409."""

    code = "E-4001"

    def __init__(self, operation: str, attempts: int) -> None:
        super().__init__(
            f"'{operation}' conflicted with a concurrent change after {attempts} attempt(s); retry"
        )
        self.operation = operation
        self.attempts = attempts

    def to_details(self) -> dict[str, Any]:
        return {"operation": self.operation, "attempts": self.attempts}


class AuditIntegrityError(DomainError):
    """An audit write and its state update could not be committed together.

    Fatal: the transaction was rolled back; no partial state remains.
    """

    code = "E-4002"

    def __init__(self, review_id: str, reason: str) -> None:
        super().__init__(f"Sentiment audit write for review '{review_id}' aborted: {reason}")
        self.review_id = review_id
        self.reason = reason
