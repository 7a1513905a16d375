"""Failure recovery for the Minima client.

This module provides:
- Error classification into (type, severity) pairs
- Fixed user-facing messages per error type
- Recovery strategy selection (retry, refresh, redirect, manual)
"""

from .classifier import (
    NON_RETRIABLE_TYPES,
    USER_MESSAGES,
    ErrorClassification,
    ErrorSeverity,
    ErrorType,
    classify_error,
    is_retriable,
    user_facing_message,
)
from .strategies import (
    LOGIN_REDIRECT,
    RecoveryStrategy,
    handle_authentication_error,
    recovery_strategy_for,
    select_recovery_strategy,
)

__all__ = [
    # Classifier
    "ErrorType",
    "ErrorSeverity",
    "ErrorClassification",
    "NON_RETRIABLE_TYPES",
    "USER_MESSAGES",
    "classify_error",
    "user_facing_message",
    "is_retriable",
    # Strategies
    "LOGIN_REDIRECT",
    "RecoveryStrategy",
    "select_recovery_strategy",
    "recovery_strategy_for",
    "handle_authentication_error",
]
