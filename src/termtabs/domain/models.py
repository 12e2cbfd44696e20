"""Core domain models for the termtabs system.

These models represent the data flowing through the session core: the
client identity used for mutual TLS, the credentials handed to the
terminal surface, and the per-tab session record driven by the
SessionController.
"""

from __future__ import annotations

import asyncio
import enum
import hashlib
from datetime import datetime, timezone

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import Encoding
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class SessionState(str, enum.Enum):
    """Lifecycle state of a terminal session."""

    UNAVAILABLE = "unavailable"  # No navigation attempted yet
    STARTED = "started"  # Navigation requested, terminal not painted yet
    LOADED = "loaded"  # Terminal painted and interactive
    ERROR = "error"  # Navigation failed fatally


class NavigationErrorKind(str, enum.Enum):
    """Failure classes a terminal surface reports for a navigation."""

    CONNECTION_REFUSED = "connection-refused"
    HOST_UNRESOLVED = "host-unresolved"
    TLS_HANDSHAKE_FAILED = "tls-handshake-failed"
    TIMEOUT = "timeout"  # Reported by the surface after navigation started
    BAD_RESPONSE = "bad-response"
    HTTP_STATUS = "http-status"
    IDENTITY_UNAVAILABLE = "identity-unavailable"
    UNKNOWN = "unknown"


# Errors expected while the local terminal server is still starting up.
RETRYABLE_ERROR_KINDS: frozenset[NavigationErrorKind] = frozenset(
    {
        NavigationErrorKind.CONNECTION_REFUSED,
        NavigationErrorKind.HOST_UNRESOLVED,
        NavigationErrorKind.TLS_HANDSHAKE_FAILED,
        NavigationErrorKind.TIMEOUT,
    }
)


def is_retryable(kind: NavigationErrorKind) -> bool:
    return kind in RETRYABLE_ERROR_KINDS


# ---------------------------------------------------------------------------
# Identity Models
# ---------------------------------------------------------------------------


class Identity(BaseModel):
    """The client key pair and self-signed certificate for mutual TLS.

    Exactly one identity exists per installation. Instances are immutable;
    a regenerated identity is a new object.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    alias: str = Field(description="Key store alias the identity is bound to")
    private_key: ec.EllipticCurvePrivateKey | rsa.RSAPrivateKey
    certificate_chain: tuple[x509.Certificate, ...] = Field(min_length=1)
    not_before: datetime = Field(description="Start of validity (UTC)")
    not_after: datetime = Field(description="End of validity (UTC)")

    @property
    def certificate(self) -> x509.Certificate:
        """The leaf certificate."""
        return self.certificate_chain[0]

    @property
    def fingerprint(self) -> str:
        """SHA-256 fingerprint of the leaf certificate, colon separated."""
        der = self.certificate.public_bytes(Encoding.DER)
        digest = hashlib.sha256(der).hexdigest().upper()
        return ":".join(digest[i:i + 2] for i in range(0, len(digest), 2))

    def is_valid_at(self, when: datetime) -> bool:
        return self.not_before <= when <= self.not_after


class ClientCredentials(BaseModel):
    """What a terminal surface hands to the server on a client cert request."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    private_key: ec.EllipticCurvePrivateKey | rsa.RSAPrivateKey
    certificate_chain: tuple[x509.Certificate, ...]
    identity: Identity


# ---------------------------------------------------------------------------
# Session Models
# ---------------------------------------------------------------------------


class Session(BaseModel):
    """One tab's terminal connection.

    Only the SessionController changes ``state``; the registry guarantees
    a single Session per ``tab_id``.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    tab_id: str = Field(description="Stable identifier of the owning tab")
    state: SessionState = Field(default=SessionState.UNAVAILABLE)
    target_url: str | None = Field(default=None, description="URL of the current navigation")
    sequence: int = Field(
        default=0, ge=0, description="Number of the latest navigation attempt"
    )
    attempts: int = Field(
        default=0, ge=0, description="Navigation attempts since the last request-load"
    )
    timeout_deadline: float | None = Field(
        default=None, description="Event loop time at which the pending timeout fires"
    )
    identity: Identity | None = Field(
        default=None, description="Identity presented to the server, once requested"
    )
    title: str | None = Field(default=None, description="Display title reported by the terminal")
    error: Exception | None = Field(default=None, description="Error that put the session in ERROR")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    _timeout_handle: asyncio.TimerHandle | None = PrivateAttr(default=None)

    @property
    def has_pending_timeout(self) -> bool:
        return self._timeout_handle is not None

    @property
    def is_interactive(self) -> bool:
        return self.state == SessionState.LOADED
