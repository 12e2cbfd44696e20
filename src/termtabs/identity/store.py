"""Provisioning of the client identity used for mutual TLS.

The IdentityStore owns the single key pair and self-signed certificate
that the terminal server is configured to trust. It is created lazily,
regenerated when missing, corrupted or outside its validity window, and
exported as a PEM file for the server side.
"""

from __future__ import annotations

import contextlib
import logging
import os
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import Encoding

from termtabs.domain.models import Identity
from termtabs.errors import IdentityProvisioningError, KeyStoreError
from termtabs.identity.base import KeyEntry, KeyStore

logger = logging.getLogger(__name__)

DEFAULT_ALIAS = "ttyd"
DEFAULT_VALIDITY = timedelta(days=3650)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IdentityStore:
    """Creates, caches and exports the installation's client identity.

    Safe to share between threads: the first callers race for a lock and
    only one of them talks to the key store; later calls return the
    cached identity without locking for as long as it stays valid.
    """

    def __init__(
        self,
        keystore: KeyStore,
        alias: str = DEFAULT_ALIAS,
        common_name: str = "termtabs client",
        validity: timedelta = DEFAULT_VALIDITY,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._keystore = keystore
        self._alias = alias
        self._common_name = common_name
        self._validity = validity
        self._clock = clock
        self._lock = threading.Lock()
        self._identity: Identity | None = None
        self._generations = 0

    @property
    def alias(self) -> str:
        return self._alias

    @property
    def generations(self) -> int:
        """How many key pairs this store has generated."""
        return self._generations

    def get_or_create_identity(self) -> Identity:
        """Return the current identity, generating a new one if needed.

        Raises:
            IdentityProvisioningError: If the key store is unusable or the
                key pair cannot be generated.
        """
        identity = self._identity
        if identity is not None and identity.is_valid_at(self._clock()):
            return identity

        with self._lock:
            identity = self._identity
            now = self._clock()
            if identity is not None and identity.is_valid_at(now):
                return identity
            identity = self._load_or_generate(now)
            self._identity = identity
            return identity

    def invalidate(self) -> None:
        """Drop the cached identity; the next call re-reads the key store."""
        with self._lock:
            self._identity = None

    def export_certificate_pem(self, identity: Identity) -> bytes:
        """Encode the identity's certificate as PEM.

        Raises:
            IdentityProvisioningError: If the certificate cannot be encoded.
        """
        try:
            return identity.certificate.public_bytes(Encoding.PEM)
        except (ValueError, TypeError) as e:
            raise IdentityProvisioningError(f"Cannot encode certificate: {e}") from e

    def write_certificate(self, identity: Identity, path: Path | str) -> Path:
        """Write the PEM certificate where the terminal server can pick it up.

        Raises:
            IdentityProvisioningError: If encoding or writing fails.
        """
        path = Path(path)
        pem = self.export_certificate_pem(identity)
        tmp = path.with_name(path.name + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(pem)
            os.replace(tmp, path)
        except OSError as e:
            with contextlib.suppress(OSError):
                tmp.unlink()
            raise IdentityProvisioningError(f"Cannot write certificate to {path}: {e}") from e
        logger.info("Exported client certificate to %s", path)
        return path

    def _load_or_generate(self, now: datetime) -> Identity:
        try:
            entry = self._keystore.get_entry(self._alias)
            reason = self._rejection_reason(entry, now)
            if reason is None:
                return _to_identity(entry)

            logger.info("Generating identity %r: %s", self._alias, reason)
            if entry is not None:
                self._keystore.delete_entry(self._alias)
            self._keystore.generate_key_pair(
                self._alias,
                common_name=self._common_name,
                not_before=now,
                not_after=now + self._validity,
            )
            self._generations += 1
            entry = self._keystore.get_entry(self._alias)
        except KeyStoreError as e:
            raise IdentityProvisioningError(f"Key store unavailable: {e}") from e
        except (UnsupportedAlgorithm, ValueError) as e:
            raise IdentityProvisioningError(f"Cannot generate key pair: {e}") from e

        reason = self._rejection_reason(entry, now)
        if reason is not None:
            raise IdentityProvisioningError(f"Freshly generated identity is unusable: {reason}")
        return _to_identity(entry)

    @staticmethod
    def _rejection_reason(entry: KeyEntry | None, now: datetime) -> str | None:
        if entry is None:
            return "there is no key pair"
        if not isinstance(entry.certificate, x509.Certificate):
            return "certificate is missing or not an X.509 certificate"
        if entry.private_key is None:
            return "private key is missing or unreadable"
        if not _same_public_key(entry):
            return "certificate does not match the private key"
        if now < entry.certificate.not_valid_before_utc:
            return "certificate is not yet valid"
        if now > entry.certificate.not_valid_after_utc:
            return "certificate has expired"
        return None


def _same_public_key(entry: KeyEntry) -> bool:
    cert_key = entry.certificate.public_key()
    own_key = entry.private_key.public_key()
    if isinstance(cert_key, ec.EllipticCurvePublicKey) and isinstance(own_key, ec.EllipticCurvePublicKey):
        return cert_key.public_numbers() == own_key.public_numbers()
    if isinstance(cert_key, rsa.RSAPublicKey) and isinstance(own_key, rsa.RSAPublicKey):
        return cert_key.public_numbers() == own_key.public_numbers()
    return False


def _to_identity(entry: KeyEntry) -> Identity:
    cert = entry.certificate
    return Identity(
        alias=entry.alias,
        private_key=entry.private_key,
        certificate_chain=(cert,),
        not_before=cert.not_valid_before_utc,
        not_after=cert.not_valid_after_utc,
    )
