"""Inventory operations for the Minima client.

This module provides:
- Stock-level conflict resolution by variance
- Conflict-aware item writes, cached reads and batch updates
- Optimistic updates with rollback
"""

from .client import (
    BatchOutcome,
    BatchResult,
    InventoryClient,
    ItemUpdate,
    ResolutionOptions,
)
from .conflicts import (
    AUTO_RESOLVE_MAX_VARIANCE,
    MANUAL_RESOLVE_MAX_VARIANCE,
    ConflictData,
    ConflictResolution,
    ConflictStrategy,
    resolve_stock_conflict,
)
from .optimistic import DataView, OptimisticUpdate, perform_optimistic_update

__all__ = [
    # Conflicts
    "AUTO_RESOLVE_MAX_VARIANCE",
    "MANUAL_RESOLVE_MAX_VARIANCE",
    "ConflictStrategy",
    "ConflictData",
    "ConflictResolution",
    "resolve_stock_conflict",
    # Client
    "InventoryClient",
    "ResolutionOptions",
    "ItemUpdate",
    "BatchOutcome",
    "BatchResult",
    # Optimistic updates
    "DataView",
    "OptimisticUpdate",
    "perform_optimistic_update",
]
