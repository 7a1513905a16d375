"""Cross-context session synchronization.

The reaction to a change made in another context is a pure function of
(own state, observed change) -> (next state, events to emit), independent
of how the change was delivered.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from .models import SessionEvent, SessionState
from .storage import StorageChange


class ExternalAction(str, Enum):
    """What the manager must do with its in-memory view."""

    IGNORE = "ignore"
    DROP = "drop"  # Destroy the in-memory view; do not renew
    RELOAD = "reload"  # Re-read the session from storage


@dataclass(frozen=True)
class Reconciliation:
    """Outcome of reconciling an external change."""

    action: ExternalAction
    next_state: SessionState
    events: tuple[SessionEvent, ...] = field(default_factory=tuple)


def reconcile_external_change(
    own_state: SessionState,
    change: StorageChange,
    user_key: str,
    token_key: str,
) -> Reconciliation:
    """Decide how to react to a session write made by another context.

    Only writes touching the user or token key matter. Removing either one
    is an authoritative clear; anything else is an update to re-read.

    Args:
        own_state: This context's current state.
        change: The observed storage change.
        user_key: Storage key of the user record.
        token_key: Storage key of the access token.

    Returns:
        Reconciliation with the action, next state and events to emit.
    """
    if not change.touches(user_key, token_key):
        return Reconciliation(ExternalAction.IGNORE, own_state)

    cleared = any(
        key in change.values and not change.values[key] for key in (user_key, token_key)
    )
    if cleared:
        return Reconciliation(
            ExternalAction.DROP,
            SessionState.UNAUTHENTICATED,
            (SessionEvent.CLEARED_EXTERNAL,),
        )

    if own_state == SessionState.RENEWING:
        next_state = SessionState.RENEWING
    else:
        next_state = SessionState.AUTHENTICATED
    return Reconciliation(
        ExternalAction.RELOAD,
        next_state,
        (SessionEvent.UPDATED_EXTERNAL,),
    )


class ActivitySignal:
    """A "became active again" signal, e.g. window focus.

    The host calls ``signal()``; subscribers such as the session manager
    re-validate their state.
    """

    def __init__(self) -> None:
        self._callbacks: list[Callable[[], None]] = []

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback. Returns a function that unsubscribes it."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def signal(self) -> None:
        """Notify every subscriber."""
        for callback in list(self._callbacks):
            callback()
