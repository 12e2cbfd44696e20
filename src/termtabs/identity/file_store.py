"""Directory-backed key store.

Keeps each entry as two PEM files, ``<alias>.key.pem`` (owner-only) and
``<alias>.crt.pem``. Keys are EC P-256; the certificate is self-signed and
restricted to TLS client authentication.
"""

from __future__ import annotations

import contextlib
import logging
import os
from datetime import datetime
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from termtabs.errors import KeyStoreError
from termtabs.identity.base import KeyEntry, KeyStore

logger = logging.getLogger(__name__)

KEY_SUFFIX = ".key.pem"
CERT_SUFFIX = ".crt.pem"


class FileKeyStore(KeyStore):
    """Stores key entries as PEM files in a private directory."""

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def key_path(self, alias: str) -> Path:
        return self._directory / f"{alias}{KEY_SUFFIX}"

    def cert_path(self, alias: str) -> Path:
        return self._directory / f"{alias}{CERT_SUFFIX}"

    def aliases(self) -> list[str]:
        if not self._directory.exists():
            return []
        try:
            names = sorted(p.name for p in self._directory.iterdir())
        except OSError as e:
            raise KeyStoreError(f"Cannot list key store {self._directory}: {e}") from e
        return [n[: -len(KEY_SUFFIX)] for n in names if n.endswith(KEY_SUFFIX)]

    def contains_alias(self, alias: str) -> bool:
        return self.key_path(alias).exists()

    def get_entry(self, alias: str) -> KeyEntry | None:
        if not self.contains_alias(alias):
            return None

        private_key = None
        certificate = None
        try:
            key_data = self.key_path(alias).read_bytes()
            cert_path = self.cert_path(alias)
            cert_data = cert_path.read_bytes() if cert_path.exists() else None
        except OSError as e:
            raise KeyStoreError(f"Cannot read key entry: {e}", alias=alias) from e

        try:
            loaded = serialization.load_pem_private_key(key_data, password=None)
        except (ValueError, TypeError) as e:
            logger.warning("Private key for %r is unreadable: %s", alias, e)
        else:
            if isinstance(loaded, ec.EllipticCurvePrivateKey):
                private_key = loaded
            else:
                logger.warning("Private key for %r has unexpected type %s", alias, type(loaded).__name__)

        if cert_data is not None:
            try:
                certificate = x509.load_pem_x509_certificate(cert_data)
            except ValueError as e:
                logger.warning("Certificate for %r is unreadable: %s", alias, e)

        return KeyEntry(alias=alias, private_key=private_key, certificate=certificate)

    def generate_key_pair(
        self,
        alias: str,
        *,
        common_name: str,
        not_before: datetime,
        not_after: datetime,
    ) -> None:
        key = ec.generate_private_key(ec.SECP256R1())
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
        cert = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(x509.KeyUsage(
                digital_signature=True, content_commitment=False, key_encipherment=False,
                data_encipherment=False, key_agreement=False, key_cert_sign=False,
                crl_sign=False, encipher_only=False, decipher_only=False,
            ), critical=True)
            .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.CLIENT_AUTH]), critical=False)
            .sign(key, hashes.SHA256())
        )

        key_pem = key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
        cert_pem = cert.public_bytes(serialization.Encoding.PEM)

        try:
            self._directory.mkdir(parents=True, exist_ok=True, mode=0o700)
            _save(self.key_path(alias), key_pem, 0o600)
            _save(self.cert_path(alias), cert_pem, 0o644)
        except OSError as e:
            raise KeyStoreError(f"Cannot write key entry: {e}", alias=alias) from e

        logger.info("Generated key pair %r (valid until %s)", alias, not_after.isoformat())

    def delete_entry(self, alias: str) -> None:
        try:
            for path in (self.key_path(alias), self.cert_path(alias)):
                path.unlink(missing_ok=True)
        except OSError as e:
            raise KeyStoreError(f"Cannot delete key entry: {e}", alias=alias) from e
        logger.debug("Deleted key entry %r", alias)


def _save(path: Path, data: bytes, mode: int) -> None:
    """Write ``data`` to ``path`` through a temp file so readers never see half a PEM."""
    tmp = path.with_name(path.name + ".tmp")
    fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp, path)
    except OSError:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise
