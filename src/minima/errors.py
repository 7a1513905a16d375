"""Exceptions raised by the Minima client core.

Failures are plain exception values; their shape (class, status code,
message) is what the classifier in ``minima.recovery.classifier`` reads.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .inventory.conflicts import ConflictResolution
    from .inventory.client import ResolutionOptions


class MinimaError(Exception):
    """Base class for all client-side errors."""


class TransportError(MinimaError):
    """No response was obtained (DNS lookup, refused connection, reset)."""


class RequestTimeoutError(MinimaError):
    """The request did not complete within its timeout."""

    def __init__(self, message: str = "Request timeout"):
        super().__init__(message)


class APIError(MinimaError):
    """The remote service answered with a non-success status."""

    def __init__(self, message: str, status: int, data: Any = None):
        super().__init__(message)
        self.status = status
        self.data = data
        # Filled in by ApiClient once the request has failed for good
        self.request_id: str | None = None
        self.endpoint: str | None = None


class AuthenticationError(APIError):
    """The credential was rejected or is no longer usable."""

    def __init__(self, message: str, status: int = 401, data: Any = None):
        super().__init__(message, status, data)


class SessionRenewalError(AuthenticationError):
    """Session renewal cannot proceed (e.g. no refresh credential stored)."""


class SessionInvalidatedError(AuthenticationError):
    """The session was destroyed by another context mid-operation."""


class SessionStorageError(MinimaError):
    """Session state could not be written to the shared store."""


class DataConflictError(APIError):
    """A versioned write was rejected because the stored value moved on.

    Attributes:
        expected_version: The value the caller based its write on.
        actual_version: The authoritative value held by the store.
        conflict_data: Extra data from the store (concurrent updates etc.).
    """

    def __init__(
        self,
        message: str,
        expected_version: Any,
        actual_version: Any,
        conflict_data: dict[str, Any] | None = None,
    ):
        super().__init__(message, 409, conflict_data)
        self.expected_version = expected_version
        self.actual_version = actual_version
        self.conflict_data = conflict_data


class ConflictResolutionRequired(DataConflictError):
    """A stock conflict that needs an explicit decision from the caller.

    Nothing is applied until the caller invokes one of ``options``.
    """

    def __init__(
        self,
        message: str,
        conflict: DataConflictError,
        resolution: ConflictResolution,
        options: ResolutionOptions,
    ):
        conflict_data = dict(conflict.conflict_data or {})
        conflict_data.update(
            {
                "resolutionStrategy": resolution.strategy.value,
                "requiresApproval": resolution.requires_approval,
                "requiresAudit": resolution.requires_audit,
            }
        )
        super().__init__(
            message,
            conflict.expected_version,
            conflict.actual_version,
            conflict_data,
        )
        self.conflict = conflict
        self.resolution = resolution
        self.options = options


class ValidationError(MinimaError):
    """A single field failed validation."""

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        super().__init__(message)
        self.field = field
        self.value = value


class ValidationErrors(MinimaError):
    """Several fields failed validation, keyed by field name."""

    def __init__(self, errors: dict[str, str] | None = None):
        self.errors: dict[str, str] = dict(errors or {})
        if self.errors:
            message = f"Validation failed for: {', '.join(self.errors)}"
        else:
            message = "Validation failed"
        super().__init__(message)

    def has_error(self, field: str) -> bool:
        return field in self.errors

    def get_error(self, field: str) -> str | None:
        return self.errors.get(field)

    def add_error(self, field: str, message: str) -> None:
        self.errors[field] = message

    def remove_error(self, field: str) -> None:
        self.errors.pop(field, None)

    def has_errors(self) -> bool:
        return bool(self.errors)

    def fields_with_errors(self) -> list[str]:
        return list(self.errors)
