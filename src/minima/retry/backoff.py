"""Retry with exponential backoff and jitter.

The coordinator is generic over any zero-argument coroutine function. It
consults the error classifier after each failure: validation, authorization
and not_found failures are re-raised at once, everything else is retried
until the attempt budget runs out.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from ..recovery.classifier import NON_RETRIABLE_TYPES, classify_error

if TYPE_CHECKING:
    from ..config import RetryConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class RetryPolicy:
    """Parameters for one family of retried operations.

    Attributes:
        max_retries: Retries after the first attempt.
        base_delay: Delay before the first retry, in seconds.
        max_delay: Cap on any single delay, in seconds.
        jitter: Upper bound of the random term added to each delay.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    jitter: float = 1.0

    @classmethod
    def from_config(cls, config: RetryConfig) -> RetryPolicy:
        """Create from the [retry] config section."""
        return cls(
            max_retries=config.max_retries,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
            jitter=config.jitter,
        )

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        sleep: Sleep = asyncio.sleep,
        give_up: Callable[[Exception], bool] | None = None,
    ) -> T:
        """Run an operation under this policy. See ``retry_with_backoff``."""
        return await retry_with_backoff(
            operation,
            self.max_retries,
            self.base_delay,
            self.max_delay,
            jitter=self.jitter,
            sleep=sleep,
            give_up=give_up,
        )


def compute_backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    jitter: float = 1.0,
) -> float:
    """Calculate delay with exponential backoff and additive jitter.

    Args:
        attempt: Zero-based index of the attempt that just failed.
        base_delay: Base delay in seconds.
        max_delay: Maximum delay cap in seconds.
        jitter: Upper bound of the uniform random term.

    Returns:
        ``min(base_delay * 2**attempt + U(0, jitter), max_delay)``.
    """
    delay = base_delay * (2**attempt) + random.uniform(0, jitter)
    return min(delay, max_delay)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    *,
    jitter: float = 1.0,
    sleep: Sleep = asyncio.sleep,
    on_retry: Callable[[int, BaseException, float], None] | None = None,
    give_up: Callable[[Exception], bool] | None = None,
) -> T:
    """Call ``operation`` until it succeeds or a retry is not warranted.

    The operation runs at most ``max_retries + 1`` times. Non-transient
    failures and the failure of the final attempt propagate unchanged.

    Args:
        operation: Zero-argument coroutine function to invoke.
        max_retries: Retries allowed after the first attempt.
        base_delay: Base delay in seconds.
        max_delay: Maximum delay cap in seconds.
        jitter: Upper bound of the random term added to each delay.
        sleep: Awaitable sleep; cancelling the caller cancels the wait.
        on_retry: Optional callback called with (attempt, error, delay)
            before each wait.
        give_up: Optional predicate marking further failures as final,
            on top of the non-transient types.

    Returns:
        The operation's result.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            classification = classify_error(e)

            if classification.type in NON_RETRIABLE_TYPES or attempt >= max_retries:
                raise
            if give_up is not None and give_up(e):
                raise

            delay = compute_backoff_delay(attempt, base_delay, max_delay, jitter)
            logger.warning(
                f"Attempt {attempt + 1}/{max_retries + 1} failed "
                f"({classification.type.value}), retrying in {delay:.2f}s"
            )
            if on_retry is not None:
                on_retry(attempt, e, delay)

            await sleep(delay)
            attempt += 1
