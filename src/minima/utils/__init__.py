"""Minima utility modules."""

from .errors import (
    ErrorInfo,
    describe_error,
    format_error,
    is_debug_mode,
    log_error,
    set_debug_mode,
)

__all__ = [
    "ErrorInfo",
    "describe_error",
    "format_error",
    "log_error",
    "set_debug_mode",
    "is_debug_mode",
]
