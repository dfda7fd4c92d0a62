"""
Domain exceptions.

Every failure the directory service reports to a caller is one of these.
The API server registers a single handler that turns a ``DirectoryError``
into a JSON error body with the matching HTTP status.
"""

from __future__ import annotations

from typing import Any


class DirectoryError(Exception):
    """Base class for all directory-service errors."""

    status_code: int = 500
    error_code: str = "DIRECTORY_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details,
            }
        }


# ── 4xx ──────────────────────────────────────────────────────────


class ValidationError(DirectoryError):
    """Missing or invalid input. Raised before any write is attempted."""

    status_code = 400
    error_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str = "Validation failed",
        missing_fields: list[str] | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if missing_fields:
            details["missing_fields"] = list(missing_fields)
        self.missing_fields = list(missing_fields or [])
        super().__init__(message, error_code=error_code, details=details)


class UnauthorizedError(DirectoryError):
    status_code = 401
    error_code = "UNAUTHORIZED"


class ForbiddenError(DirectoryError):
    status_code = 403
    error_code = "FORBIDDEN"


class NotFoundError(DirectoryError):
    """Entry or account id has no match (404)."""

    status_code = 404
    error_code = "NOT_FOUND"

    def __init__(
        self,
        message: str = "Resource not found",
        resource_type: str | None = None,
        resource_id: str | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if resource_type:
            details["resource_type"] = resource_type
        if resource_id:
            details["resource_id"] = resource_id
        super().__init__(message, details=details)


class ConflictError(DirectoryError):
    """An entry for the same account and role already exists (409)."""

    status_code = 409
    error_code = "CONFLICT"


# ── 5xx ──────────────────────────────────────────────────────────


class UpstreamError(DirectoryError):
    """A call to Supabase (auth, database or storage) failed."""

    status_code = 500
    error_code = "UPSTREAM_ERROR"


class IdentityProviderError(UpstreamError):
    error_code = "IDENTITY_PROVIDER_ERROR"


class AccountWriteError(UpstreamError):
    error_code = "ACCOUNT_WRITE_ERROR"


class ProfileWriteError(UpstreamError):
    error_code = "PROFILE_WRITE_ERROR"


class DataStoreError(UpstreamError):
    error_code = "DATA_STORE_ERROR"
