"""Session data models."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SessionState(str, Enum):
    """Lifecycle state of a session slot."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    RENEWING = "renewing"


class SessionEvent(str, Enum):
    """Events emitted to session listeners."""

    CREATED = "session_created"
    RENEWED = "session_renewed"
    EXPIRED = "session_expired"
    CLEARED = "session_cleared"
    CLEARED_EXTERNAL = "session_cleared_external"
    UPDATED_EXTERNAL = "session_updated_external"


class Session(BaseModel):
    """An authenticated session.

    ``expires_at`` is an absolute timestamp in epoch milliseconds.
    """

    user: dict[str, Any] | None = None
    token: str
    refresh_token: str | None = None
    expires_at: int

    def is_valid(self, now_ms: int) -> bool:
        """True iff user, token and expiry are present and expiry is ahead."""
        return bool(self.user and self.token and self.expires_at and self.expires_at > now_ms)


class SessionInfo(BaseModel):
    """Snapshot of the session for display and debugging."""

    is_authenticated: bool
    user: dict[str, Any] | None = None
    token_expiry: int | None = None
    time_until_expiry: int | None = None  # milliseconds
    is_renewing: bool = False
    state: SessionState = SessionState.UNAUTHENTICATED


class RenewalResponse(BaseModel):
    """Body returned by the renewal endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    token: str | None = None
    refresh_token: str | None = Field(default=None, alias="refreshToken")
    expires_in: int | None = Field(default=None, alias="expiresIn")


class LoginResponse(BaseModel):
    """Body returned by the login endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    user: dict[str, Any]
    token: str
    refresh_token: str | None = Field(default=None, alias="refreshToken")
    expires_in: int | None = Field(default=None, alias="expiresIn")
