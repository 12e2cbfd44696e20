"""Headless terminal surface backed by httpx.

Loads the terminal page with a plain HTTP GET instead of rendering it.
Good enough to tell whether the local terminal server is up and accepts
our client certificate, which is what the CLI's probe command and the
tests need.
"""

from __future__ import annotations

import asyncio
import logging
import re
import socket
import ssl

import httpx

from termtabs.domain.models import NavigationErrorKind
from termtabs.errors import UntrustedPeerError
from termtabs.session.surface import TerminalSurface
from termtabs.session.trust import LoopbackTrustPolicy

logger = logging.getLogger(__name__)

_TITLE_RE = re.compile(r"<title>(.*?)</title>", re.IGNORECASE | re.DOTALL)


class HttpProbeSurface(TerminalSurface):
    """A terminal surface that fetches the page and reports it as painted."""

    def __init__(
        self,
        trust_policy: LoopbackTrustPolicy,
        request_timeout: float = 10.0,
        retry_interval: float = 0.2,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__()
        self._trust_policy = trust_policy
        self._request_timeout = request_timeout
        self._retry_interval = retry_interval
        self._transport = transport
        self._url: str | None = None
        self._task: asyncio.Task[None] | None = None
        self._loads = 0

    @property
    def url(self) -> str | None:
        return self._url

    @property
    def loads(self) -> int:
        """Number of navigations started on this surface."""
        return self._loads

    def navigate(self, url: str) -> None:
        self._cancel()
        self._url = url
        self._loads += 1
        # Back-to-back retries against a server that is still starting
        # would otherwise spin.
        delay = self._retry_interval if self._loads > 1 else 0.0
        self._task = asyncio.get_running_loop().create_task(self._load(url, delay))

    def reload(self) -> None:
        if self._url is not None:
            self.navigate(self._url)

    def request_visual_state(self, sequence: int) -> None:
        callbacks = self._callbacks
        if callbacks is not None:
            asyncio.get_running_loop().call_soon(callbacks.on_visual_paint_complete, sequence)

    def close(self) -> None:
        self._cancel()
        super().close()

    def _cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _load(self, url: str, delay: float) -> None:
        if delay:
            await asyncio.sleep(delay)
        callbacks = self._callbacks
        if callbacks is None:
            return
        callbacks.on_navigation_started(url)

        try:
            verify = self._tls_context(url)
        except UntrustedPeerError as e:
            callbacks.on_navigation_error(NavigationErrorKind.TLS_HANDSHAKE_FAILED, url, str(e))
            return
        except ssl.SSLError as e:
            # The client key could not be loaded; retrying will not help.
            callbacks.on_navigation_error(NavigationErrorKind.IDENTITY_UNAVAILABLE, url, str(e))
            return
        if verify is None and url.startswith("https"):
            # The client certificate request was declined.
            return

        try:
            async with httpx.AsyncClient(
                verify=verify if verify is not None else True,
                timeout=self._request_timeout,
                transport=self._transport,
            ) as client:
                resp = await client.get(url)
        except asyncio.CancelledError:
            raise
        except httpx.HTTPError as e:
            self._report(classify_error(e), url, e)
            return
        except (httpx.InvalidURL, ssl.SSLError, ValueError) as e:
            self._report(NavigationErrorKind.BAD_RESPONSE, url, e)
            return
        except Exception as e:
            logger.exception("GET %s failed unexpectedly", url)
            self._report(NavigationErrorKind.UNKNOWN, url, e)
            return

        callbacks = self._callbacks
        if callbacks is None:
            return
        if resp.status_code >= 400:
            callbacks.on_navigation_error(
                NavigationErrorKind.HTTP_STATUS, url, f"HTTP {resp.status_code}"
            )
            return

        callbacks.on_navigation_committed(url)
        match = _TITLE_RE.search(resp.text)
        if match:
            callbacks.on_title_received(match.group(1).strip())

    def _report(self, kind: NavigationErrorKind, url: str, error: Exception) -> None:
        logger.debug("GET %s failed (%s): %s", url, kind.value, error)
        if self._callbacks is not None:
            self._callbacks.on_navigation_error(kind, url, str(error) or type(error).__name__)

    def _tls_context(self, url: str) -> ssl.SSLContext | None:
        if not url.startswith("https"):
            return None
        credentials = self._callbacks.on_client_certificate_requested()
        if credentials is None:
            return None
        if self._trust_policy.accepts_server_certificate(url):
            return self._trust_policy.ssl_context(url, credentials)
        return self._trust_policy.verifying_context(credentials)


def classify_error(error: httpx.HTTPError) -> NavigationErrorKind:
    """Map an httpx failure onto the navigation error classes."""
    if isinstance(error, httpx.TimeoutException):
        return NavigationErrorKind.TIMEOUT
    if isinstance(error, httpx.ConnectError):
        for cause in _causes(error):
            if isinstance(cause, socket.gaierror):
                return NavigationErrorKind.HOST_UNRESOLVED
            if isinstance(cause, ssl.SSLError):
                return NavigationErrorKind.TLS_HANDSHAKE_FAILED
        text = str(error).lower()
        if "name or service not known" in text or "nodename nor servname" in text:
            return NavigationErrorKind.HOST_UNRESOLVED
        if "ssl" in text or "certificate" in text or "handshake" in text:
            return NavigationErrorKind.TLS_HANDSHAKE_FAILED
        return NavigationErrorKind.CONNECTION_REFUSED
    if isinstance(error, (httpx.RemoteProtocolError, httpx.DecodingError)):
        return NavigationErrorKind.BAD_RESPONSE
    return NavigationErrorKind.UNKNOWN


def _causes(error: BaseException):
    seen = set()
    current = error.__cause__ or error.__context__
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__
