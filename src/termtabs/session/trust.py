"""TLS trust policy for the local terminal server.

The terminal server runs on the same machine and presents a self-signed
certificate, so its certificate is accepted without chain validation. That
exception only ever applies to loopback peers; every other origin gets the
default verifying TLS context.
"""

from __future__ import annotations

import ipaddress
import logging
import ssl
import tempfile
from pathlib import Path
from urllib.parse import urlparse

from cryptography.hazmat.primitives import serialization

from termtabs.domain.models import ClientCredentials
from termtabs.errors import UntrustedPeerError
from termtabs.identity.store import IdentityStore

logger = logging.getLogger(__name__)

LOOPBACK_HOSTNAMES = frozenset({"localhost", "localhost.localdomain", "ip6-localhost"})


def is_loopback_url(url: str) -> bool:
    """Whether ``url`` points at this machine's loopback interface."""
    host = urlparse(url).hostname
    if not host:
        return False
    if host.lower() in LOOPBACK_HOSTNAMES:
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


class LoopbackTrustPolicy:
    """Supplies the client identity and trusts the loopback server."""

    def __init__(self, identity_store: IdentityStore) -> None:
        self._identity_store = identity_store

    def client_credentials(self) -> ClientCredentials:
        """The credentials to present when the server asks for a certificate.

        Raises:
            IdentityProvisioningError: If the identity cannot be obtained.
        """
        identity = self._identity_store.get_or_create_identity()
        return ClientCredentials(
            private_key=identity.private_key,
            certificate_chain=identity.certificate_chain,
            identity=identity,
        )

    def accepts_server_certificate(self, url: str) -> bool:
        """Whether an unverifiable server certificate may be accepted for ``url``."""
        if is_loopback_url(url):
            return True
        logger.warning("Refusing to trust unverified certificate of non-loopback peer %s", url)
        return False

    def ssl_context(self, url: str, credentials: ClientCredentials | None = None) -> ssl.SSLContext:
        """Build the client TLS context for the loopback terminal server.

        Raises:
            UntrustedPeerError: If ``url`` is not a loopback URL.
        """
        if not self.accepts_server_certificate(url):
            raise UntrustedPeerError(f"{url} is not a loopback peer")

        ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        if credentials is not None:
            load_credentials(ctx, credentials)
        return ctx

    def verifying_context(self, credentials: ClientCredentials | None = None) -> ssl.SSLContext:
        """A default, verifying context for peers outside the loopback exception."""
        ctx = ssl.create_default_context()
        if credentials is not None:
            load_credentials(ctx, credentials)
        return ctx


def load_credentials(ctx: ssl.SSLContext, credentials: ClientCredentials) -> None:
    """Load the client key and certificate chain into ``ctx``.

    The ssl module only reads key material from files, so the PEMs go
    through a private temporary directory that is removed right away.
    """
    key_pem = credentials.private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    chain_pem = b"".join(
        cert.public_bytes(serialization.Encoding.PEM) for cert in credentials.certificate_chain
    )
    with tempfile.TemporaryDirectory(prefix="termtabs-") as tmp:
        key_path = Path(tmp) / "client.key"
        cert_path = Path(tmp) / "client.crt"
        key_path.write_bytes(key_pem)
        key_path.chmod(0o600)
        cert_path.write_bytes(chain_pem)
        ctx.load_cert_chain(certfile=str(cert_path), keyfile=str(key_path))
