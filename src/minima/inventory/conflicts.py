"""Stock-level conflict resolution.

When a versioned stock write is rejected, the resolver compares the
quantity the caller expected with the authoritative one and picks a
strategy by the size of the gap:

- variance <= 5: last write wins, accept the authoritative value
- variance <= 20: an operator must confirm
- larger: treated as an integrity incident and needs an audit record

Thresholds are absolute units, the same for every item.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

AUTO_RESOLVE_MAX_VARIANCE = 5
MANUAL_RESOLVE_MAX_VARIANCE = 20


class ConflictStrategy(str, Enum):
    """How a stock conflict should be resolved."""

    LAST_WRITE_WINS = "last_write_wins"
    MANUAL_RESOLUTION = "manual_resolution"
    AUDIT_REQUIRED = "audit_required"
    MERGE_CHANGES = "merge_changes"


@dataclass
class ConflictData:
    """Inputs of a conflict plus the computed variance."""

    expected_stock: float
    actual_stock: float
    variance: float
    concurrent_updates: list[Any] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire/display form."""
        return {
            "expectedStock": self.expected_stock,
            "actualStock": self.actual_stock,
            "variance": self.variance,
            "concurrentUpdates": list(self.concurrent_updates),
        }


@dataclass
class ConflictResolution:
    """Decision record for one stock conflict. The caller applies it."""

    strategy: ConflictStrategy
    resolved_value: float | None
    requires_approval: bool
    requires_audit: bool = False
    conflict_data: ConflictData | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert resolution to dictionary."""
        return {
            "strategy": self.strategy.value,
            "resolvedValue": self.resolved_value,
            "requiresApproval": self.requires_approval,
            "requiresAudit": self.requires_audit,
            "conflictData": self.conflict_data.to_dict() if self.conflict_data else None,
        }


def resolve_stock_conflict(
    expected_stock: float,
    actual_stock: float,
    concurrent_updates: list[Any] | None = None,
) -> ConflictResolution:
    """Decide how a stock-quantity conflict should be resolved.

    Deterministic given its inputs.

    Args:
        expected_stock: Quantity the caller based its write on.
        actual_stock: Authoritative quantity held by the store.
        concurrent_updates: Modification records that raced the write.

    Returns:
        ConflictResolution describing strategy and follow-up requirements.
    """
    variance = abs(expected_stock - actual_stock)
    conflict_data = ConflictData(
        expected_stock=expected_stock,
        actual_stock=actual_stock,
        variance=variance,
        concurrent_updates=list(concurrent_updates or []),
    )

    if variance <= AUTO_RESOLVE_MAX_VARIANCE:
        return ConflictResolution(
            strategy=ConflictStrategy.LAST_WRITE_WINS,
            resolved_value=actual_stock,
            requires_approval=False,
            conflict_data=conflict_data,
        )

    if variance <= MANUAL_RESOLVE_MAX_VARIANCE:
        return ConflictResolution(
            strategy=ConflictStrategy.MANUAL_RESOLUTION,
            resolved_value=None,
            requires_approval=True,
            conflict_data=conflict_data,
        )

    return ConflictResolution(
        strategy=ConflictStrategy.AUDIT_REQUIRED,
        resolved_value=None,
        requires_approval=True,
        requires_audit=True,
        conflict_data=conflict_data,
    )
