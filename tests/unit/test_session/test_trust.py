"""Tests for the loopback TLS trust policy."""

from __future__ import annotations

import ssl
from unittest.mock import MagicMock

import pytest

from termtabs.errors import IdentityProvisioningError, UntrustedPeerError
from termtabs.identity.store import IdentityStore
from termtabs.session.trust import LoopbackTrustPolicy, is_loopback_url


@pytest.mark.parametrize(
    "url, expected",
    [
        ("http://127.0.0.1:7681", True),
        ("https://127.0.0.1:7681/", True),
        ("https://127.8.9.10", True),
        ("https://localhost:7681", True),
        ("https://LOCALHOST", True),
        ("https://[::1]:7681", True),
        ("https://192.168.1.10:7681", False),
        ("https://example.com", False),
        ("https://localhost.example.com", False),
        ("not a url", False),
        ("", False),
    ],
)
def test_is_loopback_url(url: str, expected: bool) -> None:
    assert is_loopback_url(url) is expected


class TestServerTrust:
    def test_loopback_context_skips_verification(self, trust_policy) -> None:
        ctx = trust_policy.ssl_context("https://127.0.0.1:7681")
        assert ctx.verify_mode == ssl.CERT_NONE
        assert ctx.check_hostname is False

    def test_remote_peer_rejected(self, trust_policy) -> None:
        assert trust_policy.accepts_server_certificate("https://example.com") is False
        with pytest.raises(UntrustedPeerError):
            trust_policy.ssl_context("https://example.com")

    def test_verifying_context(self, trust_policy) -> None:
        ctx = trust_policy.verifying_context()
        assert ctx.verify_mode == ssl.CERT_REQUIRED
        assert ctx.check_hostname is True


class TestClientCredentials:
    def test_credentials_match_identity(self, trust_policy, identity_store) -> None:
        credentials = trust_policy.client_credentials()
        identity = identity_store.get_or_create_identity()
        assert credentials.identity is identity
        assert credentials.certificate_chain == identity.certificate_chain
        assert credentials.private_key is identity.private_key

    def test_credentials_load_into_context(self, trust_policy) -> None:
        credentials = trust_policy.client_credentials()
        ctx = trust_policy.ssl_context("https://localhost:7681", credentials)
        assert ctx.verify_mode == ssl.CERT_NONE

    def test_provisioning_failure_propagates(self) -> None:
        store = MagicMock(spec=IdentityStore)
        store.get_or_create_identity.side_effect = IdentityProvisioningError("no keys")
        with pytest.raises(IdentityProvisioningError):
            LoopbackTrustPolicy(store).client_credentials()
