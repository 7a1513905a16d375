"""Session renewal endpoint."""

from __future__ import annotations

from typing import Protocol

from pydantic import ValidationError as ModelValidationError

from ..api import Request, Transport
from ..errors import APIError
from .models import RenewalResponse


class RenewalEndpoint(Protocol):
    """Exchanges a refresh credential for a new access token."""

    async def renew(self, refresh_token: str) -> RenewalResponse: ...


class TransportRenewalEndpoint:
    """Renews sessions by POSTing the refresh token to the auth service.

    Attributes:
        transport: Transport used for the request.
        path: Renewal endpoint path.
    """

    def __init__(self, transport: Transport, path: str = "/auth/refresh"):
        self.transport = transport
        self.path = path

    async def renew(self, refresh_token: str) -> RenewalResponse:
        response = await self.transport.send(
            Request(
                method="POST",
                path=self.path,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {refresh_token}",
                },
            )
        )
        if not response.ok:
            raise APIError(f"Renewal failed: {response.status}", response.status, response.body)

        try:
            return RenewalResponse.model_validate(response.body or {})
        except ModelValidationError as e:
            raise APIError(f"Malformed renewal response: {e}", 502, response.body) from e
