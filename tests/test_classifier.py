"""Tests for error classification."""

from __future__ import annotations

import urllib.error

import pytest

from minima.errors import (
    APIError,
    AuthenticationError,
    DataConflictError,
    RequestTimeoutError,
    TransportError,
    ValidationError,
    ValidationErrors,
)
from minima.recovery.classifier import (
    USER_MESSAGES,
    ErrorClassification,
    ErrorSeverity,
    ErrorType,
    classify_error,
    is_retriable,
    user_facing_message,
)


class TestStatusClassification:
    """Tests for failures carrying a response status."""

    @pytest.mark.parametrize(
        "status,error_type,severity",
        [
            (401, ErrorType.AUTHENTICATION, ErrorSeverity.CRITICAL),
            (403, ErrorType.AUTHORIZATION, ErrorSeverity.HIGH),
            (404, ErrorType.NOT_FOUND, ErrorSeverity.MEDIUM),
            (409, ErrorType.DATA_CONSISTENCY, ErrorSeverity.HIGH),
            (400, ErrorType.VALIDATION, ErrorSeverity.MEDIUM),
            (422, ErrorType.VALIDATION, ErrorSeverity.MEDIUM),
            (500, ErrorType.SERVER, ErrorSeverity.HIGH),
            (503, ErrorType.SERVER, ErrorSeverity.HIGH),
        ],
    )
    def test_status_codes(self, status, error_type, severity):
        """Each status maps onto a fixed type and severity."""
        result = classify_error(APIError("failed", status))
        assert result == ErrorClassification(error_type, severity)

    def test_status_code_attribute(self):
        """Status is also read from status_code."""

        class Failure(Exception):
            status_code = 404

        assert classify_error(Failure()).type == ErrorType.NOT_FOUND

    def test_http_error_uses_status(self):
        """urllib HTTPError carries a response and is not a network failure."""
        error = urllib.error.HTTPError("http://x/items", 404, "Not Found", {}, None)
        assert classify_error(error).type == ErrorType.NOT_FOUND

    def test_redirect_status_falls_through(self):
        """A 3xx status matches no status rule."""
        result = classify_error(APIError("moved", 302))
        assert result == ErrorClassification(ErrorType.UNKNOWN, ErrorSeverity.MEDIUM)

    def test_bool_status_ignored(self):
        """A boolean status attribute is not a status code."""

        class Failure(Exception):
            status = True

        assert classify_error(Failure("x")).type == ErrorType.UNKNOWN

    def test_subclasses(self):
        """Specialized errors classify through their status."""
        assert classify_error(AuthenticationError("expired")).type == ErrorType.AUTHENTICATION
        assert classify_error(DataConflictError("conflict", 1, 2)).type == ErrorType.DATA_CONSISTENCY


class TestNetworkClassification:
    """Tests for failures with no response."""

    @pytest.mark.parametrize(
        "failure",
        [
            TransportError("Failed to fetch"),
            ConnectionRefusedError("refused"),
            urllib.error.URLError("unreachable"),
        ],
    )
    def test_transport_failures(self, failure):
        """No response obtained is network/high."""
        result = classify_error(failure)
        assert result == ErrorClassification(ErrorType.NETWORK, ErrorSeverity.HIGH)

    @pytest.mark.parametrize(
        "failure",
        [
            RequestTimeoutError(),
            TimeoutError(),
            Exception("Request timeout"),
        ],
    )
    def test_timeouts(self, failure):
        """Timeouts are network/medium."""
        result = classify_error(failure)
        assert result == ErrorClassification(ErrorType.NETWORK, ErrorSeverity.MEDIUM)

    def test_transport_wins_over_status(self):
        """Transport failures are checked before status codes."""

        class Failure(TransportError):
            status = 500

        assert classify_error(Failure("down")).severity == ErrorSeverity.HIGH
        assert classify_error(Failure("down")).type == ErrorType.NETWORK


class TestValidationAndFallback:
    """Tests for validation tagging and the fallback rule."""

    def test_validation_error_class(self):
        """ValidationError is validation/medium."""
        result = classify_error(ValidationError("Quantity is required", field="quantity"))
        assert result == ErrorClassification(ErrorType.VALIDATION, ErrorSeverity.MEDIUM)

    def test_validation_errors_class(self):
        """ValidationErrors is validation/medium."""
        errors = ValidationErrors({"quantity": "Required"})
        assert classify_error(errors).type == ErrorType.VALIDATION

    def test_validation_in_message(self):
        """A message mentioning validation is validation/medium."""
        assert classify_error(Exception("Validation failed for sku")).type == ErrorType.VALIDATION

    def test_none(self):
        """A missing failure is unknown/low."""
        assert classify_error(None) == ErrorClassification(ErrorType.UNKNOWN, ErrorSeverity.LOW)

    def test_unknown(self):
        """Anything else is unknown/medium."""
        assert classify_error(Exception("boom")) == ErrorClassification(
            ErrorType.UNKNOWN, ErrorSeverity.MEDIUM
        )

    def test_never_raises(self):
        """Failures that raise on inspection still classify."""

        class Exotic(Exception):
            @property
            def status(self):
                raise RuntimeError("no status")

            def __str__(self):
                raise RuntimeError("no text")

        assert classify_error(Exotic()) == ErrorClassification(
            ErrorType.UNKNOWN, ErrorSeverity.MEDIUM
        )

    def test_idempotent(self):
        """Classifying twice gives the same answer."""
        failure = APIError("gone", 404)
        assert classify_error(failure) == classify_error(failure)


class TestUserMessages:
    """Tests for user-facing messages."""

    def test_raw_text_never_shown(self):
        """The sentence depends on the type only."""
        failure = APIError("database at 10.0.0.5 refused connection", 500)
        message = user_facing_message(failure)
        assert message == USER_MESSAGES[ErrorType.SERVER]
        assert "10.0.0.5" not in message

    def test_every_type_has_a_message(self):
        """Each type has a sentence."""
        assert set(USER_MESSAGES) == set(ErrorType)

    def test_authentication_message(self):
        """Authentication failures ask the user to log in again."""
        assert "log in again" in user_facing_message(APIError("x", 401))


class TestIsRetriable:
    """Tests for the retriable check."""

    @pytest.mark.parametrize("status", [400, 403, 404, 422])
    def test_not_retriable(self, status):
        """Validation, authorization and not_found are final."""
        assert not is_retriable(APIError("x", status))

    @pytest.mark.parametrize(
        "failure",
        [TransportError("down"), RequestTimeoutError(), APIError("x", 500), APIError("x", 409)],
    )
    def test_retriable(self, failure):
        """Transient failures may be retried."""
        assert is_retriable(failure)
