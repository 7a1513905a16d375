"""Login endpoint."""

from __future__ import annotations

from typing import Any, Protocol

from pydantic import ValidationError as ModelValidationError

from ..api import Request, Transport
from ..errors import APIError
from .models import LoginResponse


class LoginEndpoint(Protocol):
    """Exchanges user credentials for a new session."""

    async def login(self, credentials: dict[str, Any]) -> LoginResponse: ...


class TransportLoginEndpoint:
    """Logs in by POSTing the credentials to the auth service.

    Attributes:
        transport: Transport used for the request.
        path: Login endpoint path.
    """

    def __init__(self, transport: Transport, path: str = "/auth/login"):
        self.transport = transport
        self.path = path

    async def login(self, credentials: dict[str, Any]) -> LoginResponse:
        response = await self.transport.send(
            Request(
                method="POST",
                path=self.path,
                body=credentials,
                headers={"Content-Type": "application/json"},
            )
        )
        if not response.ok:
            data = response.body if isinstance(response.body, dict) else None
            message = (data or {}).get("message") or "Login failed"
            raise APIError(message, response.status, data)

        try:
            return LoginResponse.model_validate(response.body or {})
        except ModelValidationError as e:
            raise APIError(f"Malformed login response: {e}", 502, response.body) from e
