"""Shared test fixtures for the termtabs test suite.

Provides a recording terminal surface, key stores in temporary
directories, and a factory for controllers bound to the running loop.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable
from unittest.mock import MagicMock

import pytest

from termtabs.domain.models import Session
from termtabs.identity.file_store import FileKeyStore
from termtabs.identity.store import IdentityStore
from termtabs.session.controller import SessionController, SessionListener
from termtabs.session.surface import TerminalSurface
from termtabs.session.trust import LoopbackTrustPolicy

TERMINAL_URL = "http://127.0.0.1:7681"


# ---------------------------------------------------------------------------
# Surface Fixtures
# ---------------------------------------------------------------------------


class RecordingSurface(TerminalSurface):
    """A terminal surface that only records what it was told to do."""

    def __init__(self) -> None:
        super().__init__()
        self.navigations: list[str] = []
        self.reloads = 0
        self.visual_state_requests: list[int] = []
        self.closed = False

    def navigate(self, url: str) -> None:
        self.navigations.append(url)

    def reload(self) -> None:
        self.reloads += 1

    def request_visual_state(self, sequence: int) -> None:
        self.visual_state_requests.append(sequence)

    def close(self) -> None:
        self.closed = True
        super().close()


@pytest.fixture
def surface() -> RecordingSurface:
    return RecordingSurface()


# ---------------------------------------------------------------------------
# Identity Fixtures
# ---------------------------------------------------------------------------


class FakeClock:
    """A settable UTC clock for validity checks."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def keystore(tmp_path: Path) -> FileKeyStore:
    return FileKeyStore(tmp_path / "keystore")


@pytest.fixture
def identity_store(keystore: FileKeyStore, clock: FakeClock) -> IdentityStore:
    return IdentityStore(keystore, validity=timedelta(days=30), clock=clock)


@pytest.fixture
def trust_policy(identity_store: IdentityStore) -> LoopbackTrustPolicy:
    return LoopbackTrustPolicy(identity_store)


@pytest.fixture
def mock_trust_policy() -> MagicMock:
    """A trust policy that never touches a key store."""
    return MagicMock(spec=LoopbackTrustPolicy)


# ---------------------------------------------------------------------------
# Controller Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def listener() -> MagicMock:
    return MagicMock(spec=SessionListener)


@pytest.fixture
def fatal_handler() -> MagicMock:
    return MagicMock()


@pytest.fixture
def make_controller(
    surface: RecordingSurface,
    mock_trust_policy: MagicMock,
    listener: MagicMock,
    fatal_handler: MagicMock,
) -> Callable[..., SessionController]:
    """Build a controller on the running loop. Call from inside a test."""

    def _make(tab_id: str = "t1", timeout: float = 5.0, **kwargs) -> SessionController:
        kwargs.setdefault("listener", listener)
        kwargs.setdefault("fatal_handler", fatal_handler)
        return SessionController(
            Session(tab_id=tab_id),
            kwargs.pop("surface", surface),
            kwargs.pop("trust_policy", mock_trust_policy),
            timeout=timeout,
            **kwargs,
        )

    return _make
