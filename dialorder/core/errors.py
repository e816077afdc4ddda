"""
Error kinds raised by the ordering pipeline.

Every error carries a human-readable message plus structured ``details``
(offending ids, provider status and body) so it can be shown to an operator
as-is. ``status_code`` is the HTTP status the API layer answers with.
"""

from typing import Any, Optional


class DialOrderError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": False,
            "error": self.message,
            "error_code": self.error_code,
            "details": self.details or None,
        }


class NotFoundError(DialOrderError):
    """Tenant, menu, call or order is absent or owned by another tenant."""
    status_code = 404
    error_code = "not_found"


class ForbiddenError(DialOrderError):
    """Tenant exists but is not active."""
    status_code = 403
    error_code = "forbidden"


class ValidationFailedError(DialOrderError):
    """Selections break menu rules. ``errors`` holds every problem found."""
    status_code = 400
    error_code = "validation_failed"

    def __init__(self, message: str, errors: list[str]):
        super().__init__(message, {"errors": list(errors)})
        self.errors = list(errors)


class ConflictError(DialOrderError):
    """Idempotency key bound to another order, or a backwards transition."""
    status_code = 409
    error_code = "conflict"


class UpstreamFailureError(DialOrderError):
    """POS provider returned 5xx, timed out, or sent an unusable response."""
    status_code = 502
    error_code = "upstream_failure"


class BadMappingError(DialOrderError):
    """A selected menu entity has no id for the restaurant's POS provider."""
    status_code = 400
    error_code = "bad_mapping"


class ProviderRejectedError(BadMappingError):
    """POS provider answered with a 4xx for a payload we built."""
    error_code = "provider_rejected"


class MisconfiguredError(DialOrderError):
    """Unknown or unset POS provider, or missing provider credentials."""
    status_code = 500
    error_code = "misconfigured"


class InvalidMenuError(DialOrderError):
    """Stored menu fails shape or reference checks."""
    status_code = 500
    error_code = "invalid_menu"
