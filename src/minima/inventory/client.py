"""Inventory operations on top of the request pipeline.

Writes are versioned: a stock write carries the quantity it was based on
(``expectedVersion``). When the store rejects it, the conflict resolver
decides whether the write can be retried automatically or needs a decision
from the caller.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlencode

from ..api import ApiClient, ResponseCache
from ..config import ApiConfig
from ..errors import ConflictResolutionRequired, DataConflictError
from ..recovery.classifier import ErrorType, classify_error
from .conflicts import ConflictResolution, ConflictStrategy, resolve_stock_conflict
from .optimistic import DataView, OptimisticUpdate

logger = logging.getLogger(__name__)

AUDIT_REASON = "Stock level conflict requires manual review"


@dataclass
class ResolutionOptions:
    """Follow-up actions for a conflict that needs a decision.

    Nothing runs until the caller awaits one of these.

    Attributes:
        accept_current: Rewrite the item keeping the authoritative stock.
        force_update: Rewrite the original updates without a version check.
        create_audit_request: File an audit record for the conflict.
    """

    accept_current: Callable[[], Awaitable[Any]]
    force_update: Callable[[], Awaitable[Any]]
    create_audit_request: Callable[[], Awaitable[Any]]


@dataclass
class ItemUpdate:
    """One entry of a batch update."""

    item_id: str
    data: dict[str, Any]
    options: dict[str, Any] = field(default_factory=dict)


@dataclass
class BatchOutcome:
    """Result of one entry of a batch update."""

    item_id: str
    success: bool
    result: Any = None
    error: Exception | None = None


@dataclass
class BatchResult:
    """Partitioned outcome of a batch update."""

    successful: list[BatchOutcome] = field(default_factory=list)
    failed: list[BatchOutcome] = field(default_factory=list)

    @property
    def total_processed(self) -> int:
        return len(self.successful) + len(self.failed)

    @property
    def success_count(self) -> int:
        return len(self.successful)

    @property
    def error_count(self) -> int:
        return len(self.failed)


class InventoryClient:
    """Inventory reads and conflict-aware writes.

    Attributes:
        api: Request pipeline used for every call.
        config: API settings (conflict resolution switch, cache TTL).
        cache: Fallback for reads when the network is down.
        optimistic: Tracks the optimistic update in progress.
    """

    def __init__(
        self,
        api: ApiClient,
        config: ApiConfig | None = None,
        cache: ResponseCache | None = None,
    ):
        self.api = api
        self.config = config or api.config
        self.cache = cache if cache is not None else ResponseCache(ttl=self.config.cache_ttl)
        self.optimistic = OptimisticUpdate()

    async def get_items(
        self,
        filters: dict[str, Any] | None = None,
        *,
        cache_key: str | None = None,
        use_cache: bool = True,
    ) -> Any:
        """Fetch inventory items.

        Successful reads are cached under ``cache_key``. When the request
        fails with a network error, a fresh cached value is returned instead.
        """
        query = urlencode(filters or {})
        endpoint = f"/inventory?{query}" if query else "/inventory"

        try:
            items = await self.api.get(endpoint)
        except Exception as e:
            if classify_error(e).type == ErrorType.NETWORK and use_cache and cache_key:
                cached = self.cache.get(cache_key)
                if cached is not None:
                    logger.warning(f"Using cached data for {cache_key} due to network error")
                    return cached
            raise

        if use_cache and cache_key:
            self.cache.set(cache_key, items)
        return items

    async def update_item(
        self,
        item_id: str,
        updates: dict[str, Any],
        *,
        expected_version: Any = None,
        conflict_resolution: bool | None = None,
        force: bool = False,
        optimistic: bool | None = None,
        views: Sequence[DataView] = (),
        rollback_data: Any = None,
    ) -> Any:
        """Write item fields, resolving stock conflicts.

        Args:
            item_id: Item to update.
            updates: Fields to write.
            expected_version: Stock quantity the write is based on.
            conflict_resolution: Resolve conflicts instead of raising them.
                Defaults to the configured switch.
            force: Ask the store to skip its version check.
            optimistic: Show ``updates`` in ``views`` before the write lands.
                Defaults to the configured switch.
            views: Local copies of the item kept in step with the write.
            rollback_data: State restored in ``views`` if the write fails;
                when omitted the views are refetched.

        Returns:
            Parsed response body.

        Raises:
            ConflictResolutionRequired: The conflict needs a caller decision.
            DataConflictError: Conflict resolution is disabled.
        """
        if optimistic is None:
            optimistic = self.config.enable_optimistic_updates

        def write() -> Awaitable[Any]:
            return self._write_item(item_id, updates, expected_version, conflict_resolution, force)

        if optimistic and views:
            return await self.optimistic.perform(
                write, {"id": item_id, **updates}, views, rollback_data
            )
        return await write()

    async def _write_item(
        self,
        item_id: str,
        updates: dict[str, Any],
        expected_version: Any,
        conflict_resolution: bool | None,
        force: bool,
    ) -> Any:
        if conflict_resolution is None:
            conflict_resolution = self.config.enable_conflict_resolution

        body = dict(updates)
        if expected_version is not None:
            body["expectedVersion"] = expected_version
        if force:
            body["force"] = True

        try:
            return await self.api.put(f"/inventory/{item_id}", body)
        except DataConflictError as e:
            if not conflict_resolution:
                raise
            return await self._handle_stock_conflict(item_id, e, updates)

    async def _handle_stock_conflict(
        self,
        item_id: str,
        conflict: DataConflictError,
        updates: dict[str, Any],
    ) -> Any:
        concurrent = (conflict.conflict_data or {}).get("concurrentUpdates") or []
        resolution = resolve_stock_conflict(
            conflict.expected_version, conflict.actual_version, concurrent
        )
        logger.info(
            f"Stock conflict on {item_id}: variance {resolution.conflict_data.variance}, "
            f"strategy {resolution.strategy.value}"
        )

        if resolution.strategy == ConflictStrategy.LAST_WRITE_WINS:
            return await self.update_item(
                item_id,
                updates,
                expected_version=conflict.actual_version,
                conflict_resolution=False,
            )

        options = ResolutionOptions(
            accept_current=lambda: self.update_item(
                item_id,
                {**updates, "currentStock": conflict.actual_version},
                expected_version=conflict.actual_version,
                conflict_resolution=False,
            ),
            force_update=lambda: self.update_item(
                item_id, updates, conflict_resolution=False, force=True
            ),
            create_audit_request=lambda: self.create_audit_request(item_id, resolution),
        )
        raise ConflictResolutionRequired(
            "Manual conflict resolution required", conflict, resolution, options
        ) from conflict

    async def create_audit_request(
        self,
        item_id: str,
        resolution: ConflictResolution,
        reason: str = AUDIT_REASON,
    ) -> Any:
        """File an audit record for a stock conflict."""
        conflict_data = resolution.conflict_data.to_dict() if resolution.conflict_data else {}
        conflict_data["timestamp"] = datetime.now(timezone.utc).isoformat()

        return await self.api.post(
            "/audits",
            {
                "itemId": item_id,
                "auditType": "conflict-resolution",
                "reason": reason,
                "conflictData": conflict_data,
            },
        )

    async def batch_update(
        self,
        updates: Sequence[ItemUpdate],
        *,
        continue_on_error: bool = True,
        max_concurrent: int = 5,
    ) -> BatchResult:
        """Apply many item updates, ``max_concurrent`` at a time.

        Args:
            updates: Updates to apply, in order.
            continue_on_error: Record failures and keep going. When False the
                first failure propagates.
            max_concurrent: Size of each concurrently processed chunk.

        Returns:
            BatchResult partitioning the outcomes.
        """
        result = BatchResult()

        async def apply(update: ItemUpdate) -> BatchOutcome:
            try:
                value = await self.update_item(update.item_id, update.data, **update.options)
            except Exception as e:
                if not continue_on_error:
                    raise
                logger.warning(f"Batch update of {update.item_id} failed: {e}")
                return BatchOutcome(update.item_id, False, error=e)
            return BatchOutcome(update.item_id, True, result=value)

        for start in range(0, len(updates), max_concurrent):
            chunk = updates[start : start + max_concurrent]
            for outcome in await asyncio.gather(*(apply(u) for u in chunk)):
                if outcome.success:
                    result.successful.append(outcome)
                else:
                    result.failed.append(outcome)

        logger.info(
            f"Batch update: {result.success_count} succeeded, {result.error_count} failed"
        )
        return result
