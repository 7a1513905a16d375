"""Error classification for recovery strategy selection.

Maps a raised failure onto a (type, severity) pair:
- network: no response obtained, or the request timed out
- authentication / authorization / not_found / data_consistency /
  validation / server: derived from the response status code
- validation: failures tagged as validation errors
- unknown: anything else

Classification looks only at the shape of the failure (class, status code,
message) and is recomputed on every call.
"""

from __future__ import annotations

import socket
import urllib.error
from enum import Enum
from typing import Any, NamedTuple

from ..errors import RequestTimeoutError, TransportError, ValidationError, ValidationErrors


class ErrorType(str, Enum):
    """Kinds of failure the client distinguishes."""

    NETWORK = "network"
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    DATA_CONSISTENCY = "data_consistency"
    NOT_FOUND = "not_found"
    SERVER = "server"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    """How serious a failure is."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorClassification(NamedTuple):
    """Result of error classification."""

    type: ErrorType
    severity: ErrorSeverity


# Failures that will not go away by trying again
NON_RETRIABLE_TYPES = frozenset(
    {ErrorType.VALIDATION, ErrorType.AUTHORIZATION, ErrorType.NOT_FOUND}
)

# One fixed sentence per type, independent of the raw failure text
USER_MESSAGES: dict[ErrorType, str] = {
    ErrorType.NETWORK: (
        "Unable to connect to the server. Please check your internet connection "
        "and try again."
    ),
    ErrorType.VALIDATION: "Please check the form fields and correct any errors.",
    ErrorType.AUTHENTICATION: "Your session has expired. Please log in again.",
    ErrorType.AUTHORIZATION: "You do not have permission to perform this action.",
    ErrorType.DATA_CONSISTENCY: (
        "The data has been updated by another user. Please refresh and try again."
    ),
    ErrorType.NOT_FOUND: "The requested item could not be found.",
    ErrorType.SERVER: "A server error occurred. Please try again later.",
    ErrorType.UNKNOWN: "An unexpected error occurred. Please try again.",
}

_VALIDATION_NAMES = {"ValidationError", "ValidationErrors"}


def _message_of(failure: Any) -> str:
    try:
        return str(failure)
    except Exception:
        return ""


def _is_transport_failure(failure: Any) -> bool:
    if isinstance(failure, urllib.error.HTTPError):
        # An HTTPError carries a response; it is classified by status
        return False
    return isinstance(
        failure,
        (TransportError, ConnectionError, socket.gaierror, urllib.error.URLError),
    )


def _is_timeout(failure: Any) -> bool:
    if isinstance(failure, (RequestTimeoutError, TimeoutError)):
        return True
    return _message_of(failure) == "Request timeout"


def _status_of(failure: Any) -> int | None:
    for attr in ("status", "status_code", "code"):
        value = getattr(failure, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def _classify_status(status: int) -> ErrorClassification | None:
    if status == 401:
        return ErrorClassification(ErrorType.AUTHENTICATION, ErrorSeverity.CRITICAL)
    if status == 403:
        return ErrorClassification(ErrorType.AUTHORIZATION, ErrorSeverity.HIGH)
    if status == 404:
        return ErrorClassification(ErrorType.NOT_FOUND, ErrorSeverity.MEDIUM)
    if status == 409:
        return ErrorClassification(ErrorType.DATA_CONSISTENCY, ErrorSeverity.HIGH)
    if 400 <= status < 500:
        return ErrorClassification(ErrorType.VALIDATION, ErrorSeverity.MEDIUM)
    if status >= 500:
        return ErrorClassification(ErrorType.SERVER, ErrorSeverity.HIGH)
    return None


def _is_validation_failure(failure: Any) -> bool:
    if isinstance(failure, (ValidationError, ValidationErrors)):
        return True
    if type(failure).__name__ in _VALIDATION_NAMES:
        return True
    return "validation" in _message_of(failure).lower()


def classify_error(failure: Any) -> ErrorClassification:
    """Classify a failure into a type and severity.

    Never raises. Rules are applied in priority order: transport failure,
    timeout, response status code, validation tag, fallback.

    Args:
        failure: The raised exception (or any failure-like value).

    Returns:
        ErrorClassification for the failure.
    """
    if failure is None:
        return ErrorClassification(ErrorType.UNKNOWN, ErrorSeverity.LOW)

    try:
        if _is_transport_failure(failure):
            return ErrorClassification(ErrorType.NETWORK, ErrorSeverity.HIGH)

        if _is_timeout(failure):
            return ErrorClassification(ErrorType.NETWORK, ErrorSeverity.MEDIUM)

        status = _status_of(failure)
        if status is not None:
            classification = _classify_status(status)
            if classification is not None:
                return classification

        if _is_validation_failure(failure):
            return ErrorClassification(ErrorType.VALIDATION, ErrorSeverity.MEDIUM)
    except Exception:
        # Attribute access on exotic failure objects can raise
        pass

    return ErrorClassification(ErrorType.UNKNOWN, ErrorSeverity.MEDIUM)


def user_facing_message(failure: Any) -> str:
    """Get the fixed user-facing sentence for a failure.

    Args:
        failure: The raised exception.

    Returns:
        One sentence chosen by error type only.
    """
    return USER_MESSAGES[classify_error(failure).type]


def is_retriable(failure: Any) -> bool:
    """Quick check if a failure may succeed on another attempt.

    Args:
        failure: The raised exception.

    Returns:
        True unless the failure is validation, authorization or not_found.
    """
    return classify_error(failure).type not in NON_RETRIABLE_TYPES
