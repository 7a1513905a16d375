"""Request pipeline for the inventory API.

Every request goes through ``ApiClient.request``:
- request metadata (request ID, bearer token) is attached
- the transport is called with a timeout
- non-success responses become APIError / DataConflictError
- the whole send is retried under the client's RetryPolicy
- final failures are logged and authentication failures run the redirect path

The transport itself is a seam: anything with ``async send(request)``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
import time
import urllib.error
import urllib.request
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from .config import ApiConfig
from .errors import APIError, DataConflictError, RequestTimeoutError, TransportError
from .recovery.classifier import ErrorType, classify_error
from .recovery.strategies import handle_authentication_error
from .retry.backoff import RetryPolicy, Sleep
from .utils.errors import log_error

if TYPE_CHECKING:
    from .config import MinimaConfig
    from .session.manager import SessionManager

logger = logging.getLogger(__name__)


@dataclass
class Request:
    """An outgoing request."""

    method: str
    path: str
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class Response:
    """A response from the transport. ``body`` is parsed JSON or None."""

    status: int
    body: Any = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class Transport(Protocol):
    """Sends a request; raises TransportError when no response is obtained."""

    async def send(self, request: Request) -> Response: ...


class UrllibTransport:
    """Transport over urllib, run in a worker thread.

    Attributes:
        base_url: Absolute URL prefix, e.g. ``https://hotel.example/api``.
    """

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip("/")

    def _send_blocking(self, request: Request) -> Response:
        data = None
        headers = dict(request.headers)
        if request.body is not None:
            data = json.dumps(request.body).encode("utf-8")
            headers.setdefault("Content-Type", "application/json")

        req = urllib.request.Request(
            f"{self.base_url}{request.path}",
            data=data,
            headers=headers,
            method=request.method,
        )
        try:
            with urllib.request.urlopen(req) as resp:
                return Response(resp.status, _parse_body(resp.read()), resp.reason)
        except urllib.error.HTTPError as e:
            return Response(e.code, _parse_body(e.read()), str(e.reason))
        except urllib.error.URLError as e:
            raise TransportError(f"Failed to fetch {request.path}: {e.reason}") from e
        except ConnectionError as e:
            raise TransportError(f"Failed to fetch {request.path}: {e}") from e

    async def send(self, request: Request) -> Response:
        return await asyncio.to_thread(self._send_blocking, request)


def _parse_body(raw: bytes) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


def _stops_retrying(error: Exception) -> bool:
    # Conflicts go to the resolver; rejected credentials are final
    return classify_error(error).type in (ErrorType.DATA_CONSISTENCY, ErrorType.AUTHENTICATION)


def generate_request_id() -> str:
    """Generate a request ID like ``req-1700000000000-a1b2c3d4e``."""
    return f"req-{int(time.time() * 1000)}-{secrets.token_hex(5)[:9]}"


def error_from_response(response: Response) -> APIError:
    """Turn a non-success response into the matching exception."""
    data = response.body if isinstance(response.body, dict) else None

    if response.status == 409 and data and data.get("conflictType") == "stock_level":
        return DataConflictError(
            "Stock level conflict detected",
            data.get("expectedVersion"),
            data.get("actualVersion"),
            data.get("conflictData"),
        )

    message = (data or {}).get("message") or f"HTTP {response.status}: {response.reason}"
    return APIError(message, response.status, data)


class ResponseCache:
    """Per-context cache of successful reads, used as a network fallback.

    This is ephemeral, per-context state; the session manager clears it
    when the session ends.
    """

    def __init__(self, ttl: float = 300.0, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, data = entry
        if self._clock() - stored_at >= self.ttl:
            del self._entries[key]
            return None
        return data

    def set(self, key: str, data: Any) -> None:
        self._entries[key] = (self._clock(), data)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class ApiClient:
    """Sends API requests with retries, auth and error handling.

    Attributes:
        transport: Sends the requests.
        config: Timeout, caching and conflict settings.
        retry_policy: Backoff applied to every request.
        session: Source of the bearer token; cleared on authentication failure.
        navigate: Called with the login path on authentication failure.
    """

    def __init__(
        self,
        transport: Transport,
        config: ApiConfig | None = None,
        session: SessionManager | None = None,
        navigate: Callable[[str], None] | None = None,
        sleep: Sleep = asyncio.sleep,
        retry_policy: RetryPolicy | None = None,
    ):
        self.transport = transport
        self.config = config or ApiConfig()
        self.retry_policy = retry_policy or RetryPolicy()
        self.session = session
        self.navigate = navigate
        self._sleep = sleep

    @classmethod
    def from_config(cls, transport: Transport, config: MinimaConfig, **kwargs: Any) -> ApiClient:
        """Create with the [api] settings and the [retry] policy of ``config``."""
        return cls(
            transport,
            config.api,
            retry_policy=RetryPolicy.from_config(config.retry),
            **kwargs,
        )

    def _build_request(
        self,
        path: str,
        method: str,
        body: Any,
        headers: dict[str, str] | None,
        request_id: str,
    ) -> Request:
        merged = {
            "Content-Type": "application/json",
            "X-Request-ID": request_id,
            **(headers or {}),
        }
        if self.session is not None and "Authorization" not in merged:
            token = self.session.get_auth_token()
            if token:
                merged["Authorization"] = f"Bearer {token}"
        return Request(method=method, path=path, body=body, headers=merged)

    async def _send_once(self, request: Request) -> Any:
        try:
            response = await asyncio.wait_for(
                self.transport.send(request), timeout=self.config.timeout
            )
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError() from e

        if not response.ok:
            raise error_from_response(response)
        return response.body

    async def request(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Send a request and return the parsed response body.

        Args:
            path: Endpoint path, relative to the transport's base URL.
            method: HTTP method.
            body: JSON-serializable request body.
            headers: Extra headers.

        Returns:
            Parsed JSON body of the successful response.
        """
        request_id = generate_request_id()
        request = self._build_request(path, method, body, headers, request_id)
        logger.debug(f"{method} {path} [{request_id}]")

        try:
            return await self.retry_policy.run(
                lambda: self._send_once(request),
                sleep=self._sleep,
                give_up=_stops_retrying,
            )
        except Exception as e:
            log_error(
                e,
                {
                    "endpoint": path,
                    "request_id": request_id,
                    "method": method,
                },
            )

            if handle_authentication_error(e, self.session, self.navigate):
                raise

            if isinstance(e, APIError):
                e.request_id = request_id
                e.endpoint = path
            raise

    async def get(self, path: str, **kwargs: Any) -> Any:
        return await self.request(path, "GET", **kwargs)

    async def post(self, path: str, body: Any = None, **kwargs: Any) -> Any:
        return await self.request(path, "POST", body, **kwargs)

    async def put(self, path: str, body: Any = None, **kwargs: Any) -> Any:
        return await self.request(path, "PUT", body, **kwargs)
