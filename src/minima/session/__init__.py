"""Session lifecycle for the Minima client.

This module provides:
- SessionManager: logs in, stores, validates and renews the authentication session
- Session storage shared between execution contexts (memory or file)
- Reconciliation of session changes made by other contexts
"""

from .login import LoginEndpoint, TransportLoginEndpoint
from .manager import SessionManager
from .models import (
    LoginResponse,
    RenewalResponse,
    Session,
    SessionEvent,
    SessionInfo,
    SessionState,
)
from .renewal import RenewalEndpoint, TransportRenewalEndpoint
from .storage import (
    FileStorage,
    SessionStorage,
    SharedMemoryStorage,
    StorageChange,
    StorageContext,
)
from .sync import ActivitySignal, ExternalAction, Reconciliation, reconcile_external_change

__all__ = [
    # Manager
    "SessionManager",
    # Models
    "Session",
    "SessionInfo",
    "SessionState",
    "SessionEvent",
    "RenewalResponse",
    "LoginResponse",
    # Endpoints
    "LoginEndpoint",
    "TransportLoginEndpoint",
    "RenewalEndpoint",
    "TransportRenewalEndpoint",
    # Storage
    "SessionStorage",
    "StorageChange",
    "SharedMemoryStorage",
    "StorageContext",
    "FileStorage",
    # Sync
    "ActivitySignal",
    "ExternalAction",
    "Reconciliation",
    "reconcile_external_change",
]
