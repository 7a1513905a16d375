"""Session lifecycle management.

The SessionManager exclusively owns the client's authentication session:
- stores and reads session state in the shared SessionStorage
- schedules renewal ahead of expiry and renews through the RenewalEndpoint
- reconciles with session changes made by other execution contexts
- notifies listeners of every state change

States: unauthenticated <-> authenticated -> renewing -> authenticated
(renewal succeeded) or unauthenticated (renewal failed, session destroyed).
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from ..config import SessionConfig
from ..errors import (
    AuthenticationError,
    SessionInvalidatedError,
    SessionRenewalError,
    SessionStorageError,
)
from ..recovery.strategies import handle_authentication_error
from ..retry.backoff import Sleep, retry_with_backoff
from ..utils.errors import log_error
from .models import Session, SessionEvent, SessionInfo, SessionState
from .storage import SessionStorage, StorageChange
from .sync import ActivitySignal, ExternalAction, reconcile_external_change

if TYPE_CHECKING:
    from ..api import ResponseCache
    from .login import LoginEndpoint
    from .renewal import RenewalEndpoint

logger = logging.getLogger(__name__)

SessionListener = Callable[[SessionEvent, Any], None]


class SessionManager:
    """Owns one session slot for one execution context.

    Attributes:
        storage: This context's view of the shared session storage.
        renewal_endpoint: Exchanges refresh tokens for new access tokens.
        login_endpoint: Exchanges user credentials for a new session.
        config: Storage keys and renewal settings.
        navigate: Called with the login path when the session is lost.
        cache: Per-context cache cleared together with the session.
    """

    def __init__(
        self,
        storage: SessionStorage,
        renewal_endpoint: RenewalEndpoint | None = None,
        config: SessionConfig | None = None,
        *,
        clock: Callable[[], float] = time.time,
        navigate: Callable[[str], None] | None = None,
        cache: ResponseCache | None = None,
        sleep: Sleep = asyncio.sleep,
        loop: asyncio.AbstractEventLoop | None = None,
        login_endpoint: LoginEndpoint | None = None,
    ):
        self.storage = storage
        self.renewal_endpoint = renewal_endpoint
        self.login_endpoint = login_endpoint
        self.config = config or SessionConfig()
        self.navigate = navigate
        self.cache = cache
        self._clock = clock
        self._sleep = sleep
        self._loop = loop

        self._session: Session | None = None
        self._renewal_timer: asyncio.TimerHandle | None = None
        self._renewal_task: asyncio.Task[Session] | None = None
        self._listeners: dict[SessionListener, None] = {}
        self._unsubscribers: list[Callable[[], None]] = []
        self._initialized = False
        # Bumped whenever the session is destroyed
        self._generation = 0

    # -------------------------------------------------------------------------
    # Setup / teardown
    # -------------------------------------------------------------------------

    def initialize(self, activity: ActivitySignal | None = None) -> bool:
        """Load the persisted session and start listening for changes.

        Args:
            activity: Optional "became active again" signal (window focus);
                the session is re-validated whenever it fires.

        Returns:
            True if a valid session was loaded.
        """
        if not self._initialized:
            self._unsubscribers.append(self.storage.subscribe(self._handle_storage_change))
            if activity is not None:
                self._unsubscribers.append(activity.subscribe(self._handle_activity))
            self._initialized = True

        return self.check_session()

    def cleanup(self) -> None:
        """Cancel timers and pending renewal, stop listening."""
        self._cancel_renewal_timer()
        self._cancel_renewal_task()

        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._initialized = False

    async def aclose(self) -> None:
        """Like cleanup(), then wait for a cancelled renewal to unwind."""
        task = self._renewal_task
        self.cleanup()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def has_session(self) -> bool:
        """True if this context holds any session, valid or not."""
        return self._session is not None

    def get_current_user(self) -> dict[str, Any] | None:
        if self._session is None or self._session.user is None:
            return None
        return dict(self._session.user)

    def get_auth_token(self) -> str | None:
        return self._session.token if self._session else None

    def get_token_expiry(self) -> int | None:
        """Absolute expiry in epoch milliseconds."""
        return self._session.expires_at if self._session else None

    def is_authenticated(self) -> bool:
        """Check the session against the clock. Never cached."""
        return self._session is not None and self._session.is_valid(self._now_ms())

    @property
    def is_renewing(self) -> bool:
        return self._renewal_task is not None

    @property
    def state(self) -> SessionState:
        if self.is_renewing:
            return SessionState.RENEWING
        if self.is_authenticated():
            return SessionState.AUTHENTICATED
        return SessionState.UNAUTHENTICATED

    def get_session_info(self) -> SessionInfo:
        """Snapshot of the session for display and debugging."""
        expiry = self.get_token_expiry()
        return SessionInfo(
            is_authenticated=self.is_authenticated(),
            user=self.get_current_user(),
            token_expiry=expiry,
            time_until_expiry=expiry - self._now_ms() if expiry is not None else None,
            is_renewing=self.is_renewing,
            state=self.state,
        )

    # -------------------------------------------------------------------------
    # Session state
    # -------------------------------------------------------------------------

    def _load(self) -> Session | None:
        cfg = self.config
        user_raw = self.storage.get(cfg.user_key)
        token = self.storage.get(cfg.token_key)
        expiry_raw = self.storage.get(cfg.expiry_key)
        if not (user_raw and token and expiry_raw):
            return None

        try:
            return Session(
                user=json.loads(user_raw),
                token=token,
                refresh_token=self.storage.get(cfg.refresh_key),
                expires_at=int(expiry_raw),
            )
        except ValueError as e:
            log_error(e, {"context": "SessionManager.load"})
            return None

    def set_session(
        self,
        user: dict[str, Any] | None,
        token: str,
        refresh_token: str | None = None,
        expires_in: float | None = None,
    ) -> Session:
        """Store a new session and arm its renewal.

        All four fields are written as one group; a missing refresh token
        removes any stale one.

        Args:
            user: Identity record of the logged-in user.
            token: Access token.
            refresh_token: Credential used for renewal.
            expires_in: Lifetime in seconds. Defaults to the configured one.

        Returns:
            The stored Session.
        """
        if expires_in is None:
            expires_in = self.config.default_expires_in

        cfg = self.config
        session = Session(
            user=user,
            token=token,
            refresh_token=refresh_token,
            expires_at=self._now_ms() + int(expires_in * 1000),
        )

        try:
            self.storage.update(
                {
                    cfg.user_key: json.dumps(user),
                    cfg.token_key: token,
                    cfg.refresh_key: refresh_token,
                    cfg.expiry_key: str(session.expires_at),
                }
            )
        except (OSError, TypeError, ValueError) as e:
            log_error(e, {"context": "SessionManager.set_session"})
            raise SessionStorageError("Failed to save session data") from e

        self._session = session
        logger.info(f"Session stored, expires in {expires_in:.0f}s")

        self.schedule_renewal()
        self.notify_listeners(SessionEvent.CREATED, {"user": user, "token": token})
        return session

    async def login(self, credentials: dict[str, Any]) -> dict[str, Any]:
        """Exchange credentials for a new session and store it.

        Args:
            credentials: Login form fields, sent as the request body.

        Returns:
            The logged-in user.

        Raises:
            APIError: The service rejected the login; the status decides how
                it is classified.
            TransportError: The service could not be reached.
        """
        if self.login_endpoint is None:
            raise AuthenticationError("No login endpoint configured")

        try:
            response = await self.login_endpoint.login(credentials)
        except Exception as e:
            log_error(e, {"context": "SessionManager.login"})
            raise

        self.set_session(
            response.user, response.token, response.refresh_token, response.expires_in
        )
        logger.info("Logged in")
        return response.user

    def _drop_local_state(self) -> None:
        self._session = None
        self._generation += 1
        self._cancel_renewal_timer()
        self._cancel_renewal_task()
        if self.cache is not None:
            self.cache.clear()

    def clear_session(self) -> None:
        """Remove the session from storage and memory, then notify."""
        try:
            self.storage.update({key: None for key in self.config.keys})
        except OSError as e:
            # The in-memory session is still destroyed below
            log_error(e, {"context": "SessionManager.clear_session"})

        self._drop_local_state()
        logger.info("Session cleared")
        self.notify_listeners(SessionEvent.CLEARED)

    def reload(self) -> bool:
        """Replace the in-memory session with the stored one, unvalidated.

        Returns:
            True if a session was found in storage.
        """
        self._session = self._load()
        return self._session is not None

    def check_session(self) -> bool:
        """Re-read the stored session and validate it.

        An invalid session is cleared; a valid one gets its renewal
        (re-)armed, which fires at once when expiry is already near.

        Returns:
            True if the session is valid.
        """
        had_session = self._session is not None
        self.reload()

        if not self.is_authenticated():
            if had_session or self._session is not None:
                self.clear_session()
            return False

        self.schedule_renewal()
        return True

    # -------------------------------------------------------------------------
    # Renewal
    # -------------------------------------------------------------------------

    def _get_loop(self) -> asyncio.AbstractEventLoop | None:
        if self._loop is not None:
            return self._loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    def _cancel_renewal_timer(self) -> None:
        if self._renewal_timer is not None:
            self._renewal_timer.cancel()
            self._renewal_timer = None

    def _cancel_renewal_task(self) -> None:
        task = self._renewal_task
        if task is None:
            return
        self._renewal_task = None
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    def schedule_renewal(self) -> None:
        """(Re-)arm the renewal timer at expiry minus the renewal threshold.

        Any pending timer is cancelled first. A due time in the past fires
        on the next loop iteration.
        """
        self._cancel_renewal_timer()

        expiry = self.get_token_expiry()
        if expiry is None:
            return

        loop = self._get_loop()
        if loop is None:
            logger.warning("No running event loop, session renewal not scheduled")
            return

        delay = (expiry - self._now_ms()) / 1000 - self.config.renewal_threshold
        delay = max(delay, 0.0)
        self._renewal_timer = loop.call_later(delay, self._on_renewal_due)
        logger.debug(f"Session renewal scheduled in {delay:.1f}s")

    def _on_renewal_due(self) -> None:
        self._renewal_timer = None
        self._start_renewal()

    def _start_renewal(self) -> asyncio.Task[Session]:
        if self._renewal_task is None:
            loop = self._get_loop() or asyncio.get_running_loop()
            self._renewal_task = loop.create_task(self._renew())
            self._renewal_task.add_done_callback(self._on_renewal_done)
        return self._renewal_task

    def _on_renewal_done(self, task: asyncio.Task[Session]) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Session renewal ended with {task.exception()!r}")

    async def renew_session(self) -> Session:
        """Renew the session, joining a renewal already in progress.

        Returns:
            The renewed session.

        Raises:
            AuthenticationError: Renewal failed; the session was destroyed.
            SessionInvalidatedError: The session was cleared, here or in
                another context, while the renewal was in flight.
        """
        generation = self._generation
        task = self._start_renewal()
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # Cancelled before it ever ran
            if task.cancelled() and generation != self._generation:
                raise SessionInvalidatedError(
                    "Session was cleared while renewal was in flight"
                ) from None
            raise

    async def _renew(self) -> Session:
        generation = self._generation
        try:
            refresh_token = self._session.refresh_token if self._session else None
            if not refresh_token:
                raise SessionRenewalError("No refresh token available")
            if self.renewal_endpoint is None:
                raise SessionRenewalError("No renewal endpoint configured")

            endpoint = self.renewal_endpoint
            response = await retry_with_backoff(
                lambda: endpoint.renew(refresh_token),
                self.config.max_retries,
                self.config.retry_delay,
                self.config.max_retry_delay,
                sleep=self._sleep,
            )

            if generation != self._generation:
                raise SessionInvalidatedError("Session was cleared while renewal was in flight")
            if not response.token:
                raise SessionRenewalError("Renewal response did not include a token")

            session = self.set_session(
                self.get_current_user(),
                response.token,
                response.refresh_token or refresh_token,
                response.expires_in or self.config.default_expires_in,
            )
            logger.info("Session renewed")
            self.notify_listeners(SessionEvent.RENEWED, {"token": response.token})
            return session

        except asyncio.CancelledError:
            if generation == self._generation:
                raise
            # Cancelled because the session was destroyed, not by the caller
            task = asyncio.current_task()
            if task is not None:
                task.uncancel()
            logger.info("Session renewal abandoned, session was cleared")
            raise SessionInvalidatedError(
                "Session was cleared while renewal was in flight"
            ) from None

        except Exception as e:
            log_error(e, {"context": "SessionManager.renew_session"})

            failure = e
            if not isinstance(e, AuthenticationError):
                failure = SessionRenewalError(f"Session renewal failed: {e}")

            if generation == self._generation:
                self.clear_session()
                self.notify_listeners(SessionEvent.EXPIRED)
                handle_authentication_error(failure, self, self.navigate)

            if failure is e:
                raise
            raise failure from e
        finally:
            if self._renewal_task is asyncio.current_task():
                self._renewal_task = None

    # -------------------------------------------------------------------------
    # External changes
    # -------------------------------------------------------------------------

    def _handle_storage_change(self, change: StorageChange) -> None:
        result = reconcile_external_change(
            self.state, change, self.config.user_key, self.config.token_key
        )

        if result.action == ExternalAction.IGNORE:
            return

        if result.action == ExternalAction.DROP:
            logger.info(f"Session cleared in another context ({change.source or 'unknown'})")
            self._drop_local_state()
        elif result.action == ExternalAction.RELOAD:
            logger.info(f"Session updated in another context ({change.source or 'unknown'})")
            self.reload()
            self.schedule_renewal()

        # Only a context that was already renewing keeps its renewal
        if result.next_state != SessionState.RENEWING:
            self._cancel_renewal_task()
        if self.state != result.next_state:
            logger.warning(
                f"Session is {self.state.value} after external change, "
                f"expected {result.next_state.value}"
            )

        for event in result.events:
            self.notify_listeners(event)

    def _handle_activity(self) -> None:
        self.check_session()

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_listener(self, callback: SessionListener) -> Callable[[], None]:
        """Subscribe to session events.

        Args:
            callback: Called with (event, data).

        Returns:
            Function that removes the listener.
        """
        self._listeners[callback] = None

        def unsubscribe() -> None:
            self._listeners.pop(callback, None)

        return unsubscribe

    def notify_listeners(self, event: SessionEvent, data: Any = None) -> None:
        """Call every listener; a failing listener does not stop the others."""
        for callback in list(self._listeners):
            try:
                callback(event, data)
            except Exception as e:
                log_error(
                    e,
                    {"context": "SessionManager.notify_listeners", "event": str(event.value)},
                )
