"""Recovery advice for classified failures.

Each classification maps onto one strategy:
- RETRY: transient network or server trouble
- REFRESH: the data changed underneath the caller
- REDIRECT: the session is gone; send the user to log in again
- MANUAL: a human has to look at it
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING, Any

from .classifier import ErrorClassification, ErrorSeverity, ErrorType, classify_error

if TYPE_CHECKING:
    from ..session.manager import SessionManager

logger = logging.getLogger(__name__)

LOGIN_REDIRECT = "/login?reason=session_expired"


class RecoveryStrategy(str, Enum):
    """Types of recovery strategies."""

    RETRY = "retry"  # Try the same operation again
    REFRESH = "refresh"  # Reload authoritative data first
    REDIRECT = "redirect"  # Navigate to the login screen
    MANUAL = "manual"  # Surface to the user


def select_recovery_strategy(classification: ErrorClassification) -> RecoveryStrategy:
    """Select the recovery strategy for a classification.

    Strategy selection logic:
    - authentication → REDIRECT
    - network (non-critical) → RETRY
    - data_consistency → REFRESH
    - server (non-critical) → RETRY
    - everything else → MANUAL

    Args:
        classification: Result of ``classify_error``.

    Returns:
        The RecoveryStrategy to apply.
    """
    error_type, severity = classification

    if error_type == ErrorType.AUTHENTICATION:
        return RecoveryStrategy.REDIRECT

    if error_type == ErrorType.NETWORK and severity != ErrorSeverity.CRITICAL:
        return RecoveryStrategy.RETRY

    if error_type == ErrorType.DATA_CONSISTENCY:
        return RecoveryStrategy.REFRESH

    if error_type == ErrorType.SERVER and severity != ErrorSeverity.CRITICAL:
        return RecoveryStrategy.RETRY

    return RecoveryStrategy.MANUAL


def recovery_strategy_for(failure: Any) -> RecoveryStrategy:
    """Classify a failure and select its recovery strategy."""
    return select_recovery_strategy(classify_error(failure))


def handle_authentication_error(
    failure: Any,
    session: SessionManager | None = None,
    navigate: Callable[[str], None] | None = None,
) -> bool:
    """Run the redirect path for authentication failures.

    Clears the session through its manager and hands the login location to
    whatever owns navigation.

    Args:
        failure: The raised exception.
        session: Session manager whose session should be destroyed.
        navigate: Navigation callback, called with the login path.

    Returns:
        True if the failure was an authentication failure and was handled.
    """
    if classify_error(failure).type != ErrorType.AUTHENTICATION:
        return False

    logger.info(f"Authentication failure, redirecting to login: {failure}")

    if session is not None and session.has_session():
        session.clear_session()

    if navigate is not None:
        navigate(session.config.login_path if session is not None else LOGIN_REDIRECT)

    return True
