"""Credential contract types shared between the provider and the connection layer.

Design choices:
  - Credential is frozen. A rotation on disk produces a new Credential value
    on the next load; nothing ever patches an existing one in place.
  - The private key is a SecretBytes so it never shows up in repr(), str(),
    tracebacks or log records. Call private_key_pem() when the transport
    actually needs the bytes.
  - CredentialLocation names where the pair lives, not what it contains. Its
    identity is fixed at startup; only the file contents change.
  - The two protocols are single-method capability interfaces. Anything with a
    matching method qualifies, no inheritance required.
"""

from __future__ import annotations

import ssl
from datetime import datetime
from pathlib import Path
from typing import Literal, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, SecretBytes


class CredentialLocation(BaseModel):
    """Where a certificate/key pair lives on disk."""

    model_config = ConfigDict(frozen=True)

    cert_path: Path
    key_path: Path

    def log_fields(self) -> dict[str, str]:
        """Non-secret identifiers for structured log records."""
        return {"cert_path": str(self.cert_path), "key_path": str(self.key_path)}


class Credential(BaseModel):
    """A loaded client certificate chain and its matching private key."""

    model_config = ConfigDict(frozen=True)

    certificate_chain: tuple[bytes, ...]  # DER, leaf first
    private_key: SecretBytes  # PKCS#8 PEM
    cert_path: str
    key_path: str
    subject: str
    fingerprint_sha256: str
    not_valid_after: datetime

    def certificate_pem(self) -> bytes:
        """Re-encode the chain as concatenated PEM blocks."""
        return "".join(ssl.DER_cert_to_PEM_cert(der) for der in self.certificate_chain).encode()

    def private_key_pem(self) -> bytes:
        return self.private_key.get_secret_value()


class CertificateRequestInfo(BaseModel):
    """Context handed to a provider when a dial needs a client certificate."""

    model_config = ConfigDict(frozen=True)

    target_host: str
    reason: Literal["connect", "reconnect"] = "connect"
    attempt: int = 1


@runtime_checkable
class CertificateProvider(Protocol):
    """Supplies the current client certificate at handshake time."""

    def get_client_certificate(self, info: CertificateRequestInfo) -> Credential: ...


@runtime_checkable
class CredentialSource(Protocol):
    """Reads a certificate/key pair from wherever it physically lives."""

    def load(self, location: CredentialLocation) -> Credential: ...
