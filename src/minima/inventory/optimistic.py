"""Optimistic updates with rollback.

Three phases:
1. Apply the tentative data to every view.
2. Await the authoritative write.
3. On success apply the result; on failure apply the rollback data if the
   caller supplied it, otherwise refetch each view, then re-raise.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DataView(Protocol):
    """A locally held copy of some remote data."""

    def mutate(self, data: Any) -> None:
        """Replace the local copy."""
        ...

    async def refetch(self) -> None:
        """Reload the local copy from the authoritative source."""
        ...


class OptimisticUpdate:
    """Runs optimistic updates and remembers the outcome of the last one."""

    def __init__(self) -> None:
        self.is_updating = False
        self.last_error: Exception | None = None

    async def perform(
        self,
        update: Callable[[], Awaitable[T]],
        optimistic_data: Any,
        views: Sequence[DataView] = (),
        rollback_data: Any = None,
    ) -> T:
        """Apply ``optimistic_data``, run ``update``, reconcile the views.

        Args:
            update: Coroutine function performing the authoritative write.
            optimistic_data: Tentative state shown while the write is pending.
            views: Views to keep in step with the write.
            rollback_data: State to restore on failure. When omitted the
                views are refetched instead.

        Returns:
            The result of ``update``.
        """
        self.is_updating = True
        self.last_error = None

        for view in views:
            view.mutate(optimistic_data)

        try:
            result = await update()
        except Exception as e:
            self.last_error = e
            logger.warning(f"Optimistic update failed, rolling back: {e}")
            if rollback_data is not None:
                for view in views:
                    view.mutate(rollback_data)
            else:
                for view in views:
                    await view.refetch()
            raise
        finally:
            self.is_updating = False

        for view in views:
            view.mutate(result)

        return result


async def perform_optimistic_update(
    update: Callable[[], Awaitable[T]],
    optimistic_data: Any,
    views: Sequence[DataView] = (),
    rollback_data: Any = None,
) -> T:
    """Run a one-off optimistic update. See ``OptimisticUpdate.perform``."""
    return await OptimisticUpdate().perform(update, optimistic_data, views, rollback_data)
