"""Retry coordination for the Minima client.

This module provides:
- Exponential backoff with additive jitter
- Classification-aware retry of async operations
"""

from .backoff import RetryPolicy, compute_backoff_delay, retry_with_backoff

__all__ = [
    "RetryPolicy",
    "compute_backoff_delay",
    "retry_with_backoff",
]
