"""Abstract base class for secure key storage.

All key store backends must conform to this interface, so the identity
logic can run against a file-backed store, a platform keystore, or a test
double without changing anything else.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class KeyEntry(BaseModel):
    """A key pair and certificate as read back from a key store.

    Either member may be None when the stored material is missing or can
    no longer be parsed; callers treat that as a corrupted entry.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    alias: str
    private_key: ec.EllipticCurvePrivateKey | rsa.RSAPrivateKey | None = Field(default=None)
    certificate: x509.Certificate | None = Field(default=None)

    @property
    def is_complete(self) -> bool:
        return self.private_key is not None and self.certificate is not None


class KeyStore(ABC):
    """Abstract interface for a store of named key pairs.

    Implementations generate the key pair and a self-signed certificate
    themselves, the way platform keystores do, so private key material
    never has to be handed in from outside.

    Example usage::

        store = FileKeyStore("/var/lib/termtabs/keystore")
        if not store.contains_alias("ttyd"):
            store.generate_key_pair("ttyd", common_name="client",
                                    not_before=start, not_after=end)
        entry = store.get_entry("ttyd")
    """

    @abstractmethod
    def aliases(self) -> list[str]:
        """List the aliases that currently have an entry.

        Raises:
            KeyStoreError: If the storage cannot be read.
        """
        ...

    @abstractmethod
    def contains_alias(self, alias: str) -> bool:
        """Whether an entry exists for ``alias``.

        Raises:
            KeyStoreError: If the storage cannot be read.
        """
        ...

    @abstractmethod
    def get_entry(self, alias: str) -> KeyEntry | None:
        """Read the entry for ``alias``.

        Returns:
            None when no entry exists. An entry whose members are None
            when the stored material is unreadable.

        Raises:
            KeyStoreError: If the storage cannot be read.
        """
        ...

    @abstractmethod
    def generate_key_pair(
        self,
        alias: str,
        *,
        common_name: str,
        not_before: datetime,
        not_after: datetime,
    ) -> None:
        """Generate a key pair and self-signed certificate under ``alias``.

        Replaces any existing entry.

        Raises:
            KeyStoreError: If the entry cannot be written.
            cryptography.exceptions.UnsupportedAlgorithm: If the backend
                cannot generate the key type.
        """
        ...

    @abstractmethod
    def delete_entry(self, alias: str) -> None:
        """Destroy the entry for ``alias``. No-op if absent.

        Raises:
            KeyStoreError: If the entry cannot be removed.
        """
        ...
