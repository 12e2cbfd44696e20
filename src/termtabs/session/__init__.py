"""Per-tab terminal session lifecycle.

Public API:
    TerminalSurface -- Abstract base class for the rendering surface
    SessionController -- State machine for one tab
    SessionRegistry -- One controller per open tab
    LoopbackTrustPolicy -- Client certificate + loopback server trust
    HttpProbeSurface -- Headless httpx surface
"""

from termtabs.session.controller import SessionController, SessionListener, display_title
from termtabs.session.probe import HttpProbeSurface
from termtabs.session.registry import SessionRegistry
from termtabs.session.surface import SurfaceCallbacks, TerminalSurface
from termtabs.session.trust import LoopbackTrustPolicy, is_loopback_url

__all__ = [
    "HttpProbeSurface",
    "LoopbackTrustPolicy",
    "SessionController",
    "SessionListener",
    "SessionRegistry",
    "SurfaceCallbacks",
    "TerminalSurface",
    "display_title",
    "is_loopback_url",
]

