"""Exception taxonomy for termtabs.

Two errors are fatal and escalate above the per-tab boundary:
IdentityProvisioningError (no credentials can be produced) and
SessionTimeoutError (the terminal server stopped responding). Navigation
errors are either absorbed by a silent retry or reported once per attempt.
"""

from __future__ import annotations


class TermtabsError(Exception):
    """Base class for all termtabs errors."""


class KeyStoreError(TermtabsError):
    """Raised by a key store backend when its storage cannot be used."""

    def __init__(self, message: str, alias: str = "") -> None:
        super().__init__(message)
        self.alias = alias


class IdentityProvisioningError(TermtabsError):
    """The client identity could not be read, generated or exported."""

    fatal = True


class NavigationError(TermtabsError):
    """A navigation attempt failed.

    Attributes:
        kind: The NavigationErrorKind reported by the terminal surface.
        url: The URL that was being loaded.
        retryable: Whether the kind is one of the transient startup errors.
    """

    fatal = False

    def __init__(self, message: str, kind: str, url: str, retryable: bool = False) -> None:
        super().__init__(message)
        self.kind = kind
        self.url = url
        self.retryable = retryable


class SessionTimeoutError(TermtabsError):
    """No paint arrived before the liveness deadline of a navigation."""

    fatal = True

    def __init__(self, message: str, tab_id: str, url: str, timeout: float) -> None:
        super().__init__(message)
        self.tab_id = tab_id
        self.url = url
        self.timeout = timeout


class DuplicateTabError(TermtabsError):
    """A tab id was opened twice in the same registry."""

    def __init__(self, tab_id: str) -> None:
        super().__init__(f"Tab {tab_id!r} already has a session")
        self.tab_id = tab_id


class UntrustedPeerError(TermtabsError):
    """A TLS exception was requested for a peer that is not on loopback."""
