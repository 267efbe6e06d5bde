"""Shared fixtures for credential tests.

Provides:
  - A CredentialLocation inside tmp_path
  - Real self-signed certificate/key pairs (EC P-256) written to that location
  - A helper that rotates the pair in place and returns the new cert PEM
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from rotation_credentials.issue import issue_self_signed, write_pair_atomically
from rotation_shared.credential_models import CertificateRequestInfo, CredentialLocation


@pytest.fixture
def fingerprint_of() -> Callable[[bytes], str]:
    """SHA-256 fingerprint of the first certificate in a PEM blob."""

    def _fingerprint(cert_pem: bytes) -> str:
        return x509.load_pem_x509_certificate(cert_pem).fingerprint(hashes.SHA256()).hex()

    return _fingerprint


@pytest.fixture
def location(tmp_path: Path) -> CredentialLocation:
    certs = tmp_path / "certs"
    certs.mkdir()
    return CredentialLocation(cert_path=certs / "client.pem", key_path=certs / "client.key")


@pytest.fixture
def pair(location: CredentialLocation) -> tuple[bytes, bytes]:
    """A valid pair already written to `location`."""
    cert_pem, key_pem = issue_self_signed("fixture-client")
    write_pair_atomically(location, cert_pem, key_pem)
    return cert_pem, key_pem


@pytest.fixture
def rotate_pair(location: CredentialLocation) -> Callable[[str], bytes]:
    """Rotate the pair at `location`; returns the new cert PEM."""

    def _rotate(common_name: str = "rotated-client") -> bytes:
        cert_pem, key_pem = issue_self_signed(common_name)
        write_pair_atomically(location, cert_pem, key_pem)
        return cert_pem

    return _rotate


@pytest.fixture
def handshake() -> CertificateRequestInfo:
    return CertificateRequestInfo(target_host="example.tmprl.cloud:7233")
