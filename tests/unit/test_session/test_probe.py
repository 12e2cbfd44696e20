"""Tests for the httpx-backed probe surface."""

from __future__ import annotations

import asyncio
import socket
import ssl

import httpx
import pytest

from termtabs.domain.models import NavigationErrorKind, SessionState
from termtabs.errors import NavigationError, SessionTimeoutError
from termtabs.session.probe import HttpProbeSurface, classify_error

PAGE = "<html><head><title>droid@debian: ~ | login -f droid (debian)</title></head></html>"


def _page(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, text=PAGE)


class Flaky:
    """Refuses the first ``failures`` connections, then serves the page."""

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        if self.calls <= self.failures:
            raise httpx.ConnectError("[Errno 111] Connection refused", request=request)
        return _page(request)


@pytest.fixture
def settled(listener) -> asyncio.Event:
    """Set as soon as the listener hears about a load or an error."""
    event = asyncio.Event()
    listener.on_loaded.side_effect = lambda *_: event.set()
    listener.on_error.side_effect = lambda *_: event.set()
    return event


def _probe(trust_policy, handler) -> HttpProbeSurface:
    return HttpProbeSurface(trust_policy, retry_interval=0, transport=httpx.MockTransport(handler))


class TestLoad:
    @pytest.mark.asyncio
    async def test_page_loads(self, make_controller, mock_trust_policy, listener, settled) -> None:
        probe = _probe(mock_trust_policy, _page)
        controller = make_controller(surface=probe)
        controller.request_load("http://127.0.0.1:7681")
        await asyncio.wait_for(settled.wait(), 2)

        session = controller.session
        assert session.state == SessionState.LOADED
        assert session.title == "droid@debian: ~"
        assert session.attempts == 1
        assert not session.has_pending_timeout
        listener.on_loaded.assert_called_once_with(session)
        controller.close()

    @pytest.mark.asyncio
    async def test_refused_connection_is_retried(
        self, make_controller, mock_trust_policy, listener, settled
    ) -> None:
        handler = Flaky(failures=2)
        probe = _probe(mock_trust_policy, handler)
        controller = make_controller(surface=probe)
        controller.request_load("http://127.0.0.1:7681")
        await asyncio.wait_for(settled.wait(), 2)

        assert controller.state == SessionState.LOADED
        assert controller.session.attempts == 3
        assert probe.loads == 3
        assert handler.calls == 3
        listener.on_error.assert_not_called()
        controller.close()

    @pytest.mark.asyncio
    async def test_http_error_status_is_reported(
        self, make_controller, mock_trust_policy, listener, settled
    ) -> None:
        probe = _probe(mock_trust_policy, lambda request: httpx.Response(500))
        controller = make_controller(surface=probe)
        controller.request_load("http://127.0.0.1:7681")
        await asyncio.wait_for(settled.wait(), 2)

        assert controller.state == SessionState.ERROR
        listener.on_error.assert_called_once()
        error = listener.on_error.call_args.args[1]
        assert isinstance(error, NavigationError)
        assert error.kind == NavigationErrorKind.HTTP_STATUS.value
        assert probe.loads == 1
        controller.close()

    @pytest.mark.asyncio
    async def test_https_presents_client_identity(
        self, make_controller, trust_policy, identity_store, settled
    ) -> None:
        probe = _probe(trust_policy, _page)
        controller = make_controller(surface=probe, trust_policy=trust_policy)
        controller.request_load("https://localhost:7681")
        await asyncio.wait_for(settled.wait(), 2)

        assert controller.state == SessionState.LOADED
        assert controller.session.identity is identity_store.get_or_create_identity()
        controller.close()

    @pytest.mark.asyncio
    async def test_close_cancels_pending_load(self, make_controller, mock_trust_policy) -> None:
        started = asyncio.Event()

        async def _never(request: httpx.Request) -> httpx.Response:
            started.set()
            await asyncio.sleep(10)
            return httpx.Response(200)

        probe = _probe(mock_trust_policy, _never)
        controller = make_controller(surface=probe)
        controller.request_load("http://127.0.0.1:7681")
        await asyncio.wait_for(started.wait(), 2)

        controller.close()
        await asyncio.sleep(0)
        assert probe.callbacks is None
        assert controller.state == SessionState.STARTED

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "failure, kind",
        [
            (httpx.InvalidURL("Invalid port: '99999'"), NavigationErrorKind.BAD_RESPONSE),
            (ValueError("bad header"), NavigationErrorKind.BAD_RESPONSE),
            (RuntimeError("transport broke"), NavigationErrorKind.UNKNOWN),
        ],
    )
    async def test_unexpected_failure_is_reported(
        self, make_controller, mock_trust_policy, listener, settled, failure, kind
    ) -> None:
        def _fail(request: httpx.Request) -> httpx.Response:
            raise failure

        controller = make_controller(surface=_probe(mock_trust_policy, _fail))
        controller.request_load("http://127.0.0.1:7681")
        await asyncio.wait_for(settled.wait(), 2)

        assert controller.state == SessionState.ERROR
        error = listener.on_error.call_args.args[1]
        assert error.kind == kind.value
        controller.close()

    @pytest.mark.asyncio
    async def test_unloadable_client_key_is_reported(
        self, make_controller, mock_trust_policy, listener, settled
    ) -> None:
        mock_trust_policy.ssl_context.side_effect = ssl.SSLError("PEM lib")
        probe = _probe(mock_trust_policy, _page)
        controller = make_controller(surface=probe)
        controller.request_load("https://localhost:7681")
        await asyncio.wait_for(settled.wait(), 2)

        assert controller.state == SessionState.ERROR
        error = listener.on_error.call_args.args[1]
        assert error.kind == NavigationErrorKind.IDENTITY_UNAVAILABLE.value
        assert probe.loads == 1
        controller.close()

    @pytest.mark.asyncio
    async def test_refusing_server_times_out_once(
        self, make_controller, mock_trust_policy, listener, fatal_handler
    ) -> None:
        handler = Flaky(failures=10_000)
        probe = HttpProbeSurface(
            mock_trust_policy, retry_interval=0.01, transport=httpx.MockTransport(handler)
        )
        controller = make_controller(surface=probe, timeout=0.2)
        controller.request_load("http://127.0.0.1:7681")
        await asyncio.sleep(0.6)

        fatal_handler.assert_called_once()
        assert isinstance(fatal_handler.call_args.args[1], SessionTimeoutError)
        assert controller.state == SessionState.ERROR
        assert handler.calls > 1
        listener.on_error.assert_not_called()
        controller.close()


def test_package_exports_probe_surface() -> None:
    from termtabs.session import HttpProbeSurface as exported

    assert exported is HttpProbeSurface


class TestClassifyError:
    def _request(self) -> httpx.Request:
        return httpx.Request("GET", "http://127.0.0.1:7681")

    def test_timeout(self) -> None:
        error = httpx.ConnectTimeout("timed out", request=self._request())
        assert classify_error(error) == NavigationErrorKind.TIMEOUT

    def test_refused(self) -> None:
        error = httpx.ConnectError("[Errno 111] Connection refused", request=self._request())
        assert classify_error(error) == NavigationErrorKind.CONNECTION_REFUSED

    def test_unresolved_from_cause(self) -> None:
        error = httpx.ConnectError("lookup failed", request=self._request())
        error.__cause__ = socket.gaierror(-2, "Name or service not known")
        assert classify_error(error) == NavigationErrorKind.HOST_UNRESOLVED

    def test_unresolved_from_message(self) -> None:
        error = httpx.ConnectError("[Errno -2] Name or service not known", request=self._request())
        assert classify_error(error) == NavigationErrorKind.HOST_UNRESOLVED

    def test_tls_failure(self) -> None:
        error = httpx.ConnectError("handshake", request=self._request())
        error.__cause__ = ssl.SSLError("wrong version number")
        assert classify_error(error) == NavigationErrorKind.TLS_HANDSHAKE_FAILED

    def test_protocol_error(self) -> None:
        error = httpx.RemoteProtocolError("Server disconnected", request=self._request())
        assert classify_error(error) == NavigationErrorKind.BAD_RESPONSE

    def test_anything_else(self) -> None:
        error = httpx.TooManyRedirects("loop", request=self._request())
        assert classify_error(error) == NavigationErrorKind.UNKNOWN
