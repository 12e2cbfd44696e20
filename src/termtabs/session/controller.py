"""The per-tab session state machine.

A SessionController reacts to the lifecycle signals of one terminal
surface and moves its Session through UNAVAILABLE -> STARTED -> LOADED or
ERROR. Errors the local terminal server produces while it is still
starting are retried silently; everything else is reported once.

Every navigation attempt gets a new sequence number. Silent retries share
the liveness deadline of the request that started them. Paint notifications
carry the number they were requested for, and only the latest attempt's
paint can mark the session LOADED.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Callable

from termtabs.domain.models import (
    ClientCredentials,
    NavigationErrorKind,
    Session,
    SessionState,
    is_retryable,
)
from termtabs.errors import IdentityProvisioningError, NavigationError, SessionTimeoutError
from termtabs.session.surface import SurfaceCallbacks, TerminalSurface
from termtabs.session.trust import LoopbackTrustPolicy

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0

# ttyd titles look like "droid@debian: ~ | login -f droid (debian)"
_LOGIN_TITLE_SUFFIX = re.compile(r" \| login -f [^|]*$")

FatalHandler = Callable[[Session, Exception], None]


class SessionListener:
    """Receives the outcome of navigation attempts. Override what you need."""

    def on_loaded(self, session: Session) -> None:
        """The terminal is painted and interactive."""

    def on_error(self, session: Session, error: NavigationError) -> None:
        """A navigation failed with a non-retryable error."""


def display_title(title: str) -> str:
    """Strip the login command ttyd appends to the shell's title."""
    return _LOGIN_TITLE_SUFFIX.sub("", title)


class SessionController(SurfaceCallbacks):
    """Drives one Session from the signals of its terminal surface.

    All methods must be called on the controller's event loop; use post()
    to deliver a signal from another thread.

    Fatal errors (SessionTimeoutError, IdentityProvisioningError) go to
    ``fatal_handler`` and nowhere else. Without one they are handed to
    the event loop's exception handler.
    """

    def __init__(
        self,
        session: Session,
        surface: TerminalSurface,
        trust_policy: LoopbackTrustPolicy,
        timeout: float = DEFAULT_TIMEOUT,
        loop: asyncio.AbstractEventLoop | None = None,
        listener: SessionListener | None = None,
        fatal_handler: FatalHandler | None = None,
        close_handler: Callable[[str], None] | None = None,
    ) -> None:
        self._session = session
        self._surface = surface
        self._trust_policy = trust_policy
        self._timeout = timeout
        self._loop = loop or asyncio.get_running_loop()
        self._listener = listener or SessionListener()
        self._fatal_handler = fatal_handler
        self._close_handler = close_handler
        self._paused = False
        self._closed = False
        surface.attach(self)

    @property
    def session(self) -> Session:
        return self._session

    @property
    def surface(self) -> TerminalSurface:
        return self._surface

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def is_closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def request_load(self, url: str) -> None:
        """Navigate the surface to ``url`` and wait for the terminal to paint."""
        if self._closed:
            logger.debug("[%s] request_load on closed session ignored", self._session.tab_id)
            return
        logger.info("[%s] Loading %s", self._session.tab_id, url)
        self._session.attempts = 0
        self._session.error = None
        self._start_attempt(url, rearm=True)

    def reload(self) -> None:
        """Reload the current page as a new navigation attempt."""
        if self._closed or self._session.target_url is None:
            return
        self._disarm()
        self._session.sequence += 1
        self._session.attempts = 1
        self._session.error = None
        self._session.state = SessionState.STARTED
        self._arm()
        self._surface.reload()

    def pause(self) -> None:
        """Stop the liveness clock while the tab is in the background."""
        self._paused = True
        self._disarm()

    def resume(self) -> None:
        """Restart the liveness clock if a navigation is still outstanding."""
        self._paused = False
        if not self._closed and self._session.state == SessionState.STARTED:
            self._arm()

    def close(self) -> None:
        """Disarm the timer and release the surface. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._disarm()
        self._surface.close()
        logger.info("[%s] Session closed", self._session.tab_id)

    def post(self, callback: Callable[..., Any], *args: Any) -> None:
        """Schedule ``callback(*args)`` on the controller's loop from any thread."""
        self._loop.call_soon_threadsafe(callback, *args)

    # ------------------------------------------------------------------
    # Surface signals
    # ------------------------------------------------------------------

    def on_navigation_started(self, url: str) -> None:
        if self._closed:
            return
        if self._session.state == SessionState.LOADED:
            # The page reloaded on its own, e.g. ttyd reconnecting.
            logger.debug("[%s] Page restarted navigation to %s", self._session.tab_id, url)
            self._session.state = SessionState.STARTED
        else:
            logger.debug("[%s] Navigation started: %s", self._session.tab_id, url)

    def on_navigation_error(
        self,
        kind: NavigationErrorKind | str,
        url: str | None = None,
        description: str = "",
    ) -> None:
        if self._closed or self._session.state != SessionState.STARTED:
            logger.debug(
                "[%s] Ignoring navigation error %s in state %s",
                self._session.tab_id, kind, self._session.state.value,
            )
            return

        kind = _coerce_kind(kind)
        target = self._session.target_url
        if is_retryable(kind):
            logger.info(
                "[%s] %s while loading %s, retrying (attempt %d)",
                self._session.tab_id, kind.value, target, self._session.attempts + 1,
            )
            self._start_attempt(target, rearm=False)
            return

        message = f"Failed to load {url or target}: {description or kind.value}"
        logger.error("[%s] %s", self._session.tab_id, message)
        error = NavigationError(message, kind=kind.value, url=url or target, retryable=False)
        self._fail(error)

    def on_navigation_committed(self, url: str) -> None:
        if self._closed or self._session.state != SessionState.STARTED:
            return
        logger.debug("[%s] Navigation committed: %s", self._session.tab_id, url)
        self._surface.request_visual_state(self._session.sequence)

    def on_visual_paint_complete(self, sequence: int) -> None:
        if self._closed or self._session.state != SessionState.STARTED:
            return
        if sequence != self._session.sequence:
            logger.debug(
                "[%s] Ignoring stale paint %d (latest attempt is %d)",
                self._session.tab_id, sequence, self._session.sequence,
            )
            return

        self._disarm()
        self._session.state = SessionState.LOADED
        logger.info("[%s] Terminal loaded", self._session.tab_id)
        self._listener.on_loaded(self._session)

    def on_client_certificate_requested(self) -> ClientCredentials | None:
        if self._closed:
            return None
        try:
            credentials = self._trust_policy.client_credentials()
        except IdentityProvisioningError as e:
            logger.error("[%s] Cannot provide client certificate: %s", self._session.tab_id, e)
            if self._session.state == SessionState.STARTED:
                self._fail(e, fatal=True)
            return None
        self._session.identity = credentials.identity
        return credentials

    def on_title_received(self, title: str) -> None:
        if not self._closed:
            self._session.title = display_title(title)

    def on_close_requested(self) -> None:
        if self._close_handler is not None:
            self._close_handler(self._session.tab_id)
        else:
            self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _start_attempt(self, url: str, rearm: bool) -> None:
        # A retry keeps the deadline set by the request that started it.
        if rearm:
            self._disarm()
        self._session.sequence += 1
        self._session.attempts += 1
        self._session.target_url = url
        self._session.state = SessionState.STARTED
        if rearm:
            self._arm()
        self._surface.navigate(url)

    def _arm(self) -> None:
        self._disarm()
        if self._paused:
            return
        handle = self._loop.call_later(self._timeout, self._on_timeout)
        self._session._timeout_handle = handle
        self._session.timeout_deadline = handle.when()

    def _disarm(self) -> None:
        handle = self._session._timeout_handle
        if handle is not None:
            handle.cancel()
        self._session._timeout_handle = None
        self._session.timeout_deadline = None

    def _on_timeout(self) -> None:
        self._session._timeout_handle = None
        self._session.timeout_deadline = None
        if self._closed or self._session.state != SessionState.STARTED:
            return

        url = self._session.target_url or ""
        logger.error(
            "[%s] Terminal server did not respond within %.1fs (%s)",
            self._session.tab_id, self._timeout, url,
        )
        error = SessionTimeoutError(
            f"Terminal at {url} did not load within {self._timeout:.1f}s",
            tab_id=self._session.tab_id,
            url=url,
            timeout=self._timeout,
        )
        self._fail(error, fatal=True)

    def _fail(self, error: Exception, fatal: bool = False) -> None:
        self._disarm()
        self._session.state = SessionState.ERROR
        self._session.error = error
        if not fatal:
            self._listener.on_error(self._session, error)
        elif self._fatal_handler is not None:
            self._fatal_handler(self._session, error)
        else:
            self._loop.call_exception_handler(
                {
                    "message": f"Fatal error in terminal session {self._session.tab_id}",
                    "exception": error,
                }
            )


def _coerce_kind(kind: NavigationErrorKind | str) -> NavigationErrorKind:
    try:
        return NavigationErrorKind(kind)
    except ValueError:
        logger.warning("Unknown navigation error kind %r", kind)
        return NavigationErrorKind.UNKNOWN
