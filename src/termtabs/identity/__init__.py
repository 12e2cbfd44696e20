"""Client identity provisioning for termtabs.

Creates and persists the key pair and self-signed certificate the client
presents to the local terminal server over mutual TLS.

Public API:
    KeyStore -- Abstract base class for key storage backends
    FileKeyStore -- PEM files in a private directory
    IdentityStore -- Lazy, thread-safe provisioning of the identity
"""

from termtabs.identity.base import KeyEntry, KeyStore
from termtabs.identity.file_store import FileKeyStore
from termtabs.identity.store import IdentityStore

__all__ = ["FileKeyStore", "IdentityStore", "KeyEntry", "KeyStore"]
