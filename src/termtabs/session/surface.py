"""Abstract interfaces between a session and its terminal surface.

The terminal surface is whatever actually renders the terminal page (a
web view, a headless HTTP client in tests and probes). The session core
only tells it to navigate, and listens to the page lifecycle it reports
back through SurfaceCallbacks.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from termtabs.domain.models import ClientCredentials, NavigationErrorKind

logger = logging.getLogger(__name__)


class SurfaceCallbacks(ABC):
    """Page-lifecycle signals a terminal surface delivers.

    All callbacks for one session must be delivered on the event loop that
    owns it, in the order the surface observed them.
    """

    @abstractmethod
    def on_navigation_started(self, url: str) -> None:
        """The surface began loading ``url``."""
        ...

    @abstractmethod
    def on_navigation_error(
        self,
        kind: NavigationErrorKind | str,
        url: str | None = None,
        description: str = "",
    ) -> None:
        """Loading failed with the given error class."""
        ...

    @abstractmethod
    def on_navigation_committed(self, url: str) -> None:
        """The response was received and the page is being rendered."""
        ...

    @abstractmethod
    def on_visual_paint_complete(self, sequence: int) -> None:
        """Content requested with request_visual_state(sequence) is on screen."""
        ...

    @abstractmethod
    def on_client_certificate_requested(self) -> ClientCredentials | None:
        """The server asked for a client certificate.

        Returns:
            The credentials to present, or None to decline.
        """
        ...

    def on_title_received(self, title: str) -> None:
        """The page reported its title."""

    def on_close_requested(self) -> None:
        """The page asked for its tab to be closed."""


class TerminalSurface(ABC):
    """Abstract interface for the thing that renders a terminal page.

    Example usage::

        surface = HttpProbeSurface(trust_policy)
        surface.attach(controller)
        surface.navigate("http://127.0.0.1:7681")
    """

    def __init__(self) -> None:
        self._callbacks: SurfaceCallbacks | None = None

    @property
    def callbacks(self) -> SurfaceCallbacks | None:
        return self._callbacks

    def attach(self, callbacks: SurfaceCallbacks) -> None:
        """Route this surface's lifecycle signals to ``callbacks``."""
        self._callbacks = callbacks

    @abstractmethod
    def navigate(self, url: str) -> None:
        """Start loading ``url``, abandoning any load in progress.

        Must not block; progress is reported through the callbacks.
        """
        ...

    @abstractmethod
    def reload(self) -> None:
        """Load the current URL again."""
        ...

    @abstractmethod
    def request_visual_state(self, sequence: int) -> None:
        """Report on_visual_paint_complete(sequence) once the current content is painted."""
        ...

    def close(self) -> None:
        """Tear the surface down. Further signals are not delivered."""
        self._callbacks = None
