"""Registry of open terminal tabs.

Maps each tab id to its SessionController. Opening a tab creates the
surface, controller and Session; closing it disarms the controller's
timer and releases the surface, so nothing outlives the tab.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from typing import Callable

from termtabs.domain.models import Session
from termtabs.errors import DuplicateTabError
from termtabs.session.controller import (
    DEFAULT_TIMEOUT,
    FatalHandler,
    SessionController,
    SessionListener,
)
from termtabs.session.surface import TerminalSurface
from termtabs.session.trust import LoopbackTrustPolicy

logger = logging.getLogger(__name__)

SurfaceFactory = Callable[[str], TerminalSurface]


class SessionRegistry:
    """Owns exactly one SessionController per open tab.

    The mapping is guarded by a lock and may be used from any thread;
    the controllers themselves run on ``loop``.

    A fatal error in any session closes that tab and is then handed to
    ``fatal_handler``.
    """

    def __init__(
        self,
        surface_factory: SurfaceFactory,
        trust_policy: LoopbackTrustPolicy,
        timeout: float = DEFAULT_TIMEOUT,
        loop: asyncio.AbstractEventLoop | None = None,
        listener: SessionListener | None = None,
        fatal_handler: FatalHandler | None = None,
    ) -> None:
        self._surface_factory = surface_factory
        self._trust_policy = trust_policy
        self._timeout = timeout
        self._loop = loop or asyncio.get_running_loop()
        self._listener = listener
        self._fatal_handler = fatal_handler
        self._controllers: dict[str, SessionController] = {}
        self._lock = threading.Lock()

    def open(self, tab_id: str | None = None) -> Session:
        """Create the session for a new tab.

        Args:
            tab_id: Identifier of the tab. A random one is generated if
                    omitted.

        Raises:
            DuplicateTabError: If ``tab_id`` already has a session.
        """
        tab_id = tab_id or str(uuid.uuid4())
        with self._lock:
            if tab_id in self._controllers:
                raise DuplicateTabError(tab_id)
            session = Session(tab_id=tab_id)
            controller = SessionController(
                session,
                self._surface_factory(tab_id),
                self._trust_policy,
                timeout=self._timeout,
                loop=self._loop,
                listener=self._listener,
                fatal_handler=self._on_fatal,
                close_handler=self.close,
            )
            self._controllers[tab_id] = controller
        logger.info("Opened tab %s", tab_id)
        return session

    def close(self, tab_id: str) -> None:
        """Tear down the tab's session. No-op if the tab is unknown."""
        with self._lock:
            controller = self._controllers.pop(tab_id, None)
        if controller is None:
            return
        controller.close()

    def close_all(self) -> None:
        for tab_id in self.tab_ids():
            self.close(tab_id)

    def get(self, tab_id: str) -> Session | None:
        with self._lock:
            controller = self._controllers.get(tab_id)
        return controller.session if controller is not None else None

    def controller(self, tab_id: str) -> SessionController | None:
        with self._lock:
            return self._controllers.get(tab_id)

    def tab_ids(self) -> list[str]:
        """Open tab ids in the order the tabs were opened."""
        with self._lock:
            return list(self._controllers)

    def __len__(self) -> int:
        with self._lock:
            return len(self._controllers)

    def __contains__(self, tab_id: object) -> bool:
        with self._lock:
            return tab_id in self._controllers

    def _on_fatal(self, session: Session, error: Exception) -> None:
        logger.error("Tab %s failed fatally: %s", session.tab_id, error)
        self.close(session.tab_id)
        if self._fatal_handler is not None:
            self._fatal_handler(session, error)
