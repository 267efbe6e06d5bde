"""File-backed credential source.

Reads a certificate/key pair from two paths on every call. There is no cache
and no internal retry: each load() is a single attempt that either returns a
fully parsed, matching pair or raises a CredentialLoadError.

Torn reads: a rotation replaces two files, and a load that lands between the
two replacements would otherwise pair the new certificate with the old key.
The source stats both files before and after reading them and re-reads when
anything changed underneath it. If the pair never settles within
max_read_attempts, the load fails as UNREADABLE. A pair that reads
consistently but still does not match fails as MALFORMED.
"""

from __future__ import annotations

import os
from pathlib import Path

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes
from pydantic import SecretBytes
from rotation_shared.credential_models import Credential, CredentialLocation
from rotation_shared.errors import (
    CredentialMalformedError,
    CredentialNotFoundError,
    CredentialUnreadableError,
)

_PEM_MARKER = b"-----BEGIN"

# (inode, mtime_ns, size) for the cert and the key
_PairStamp = tuple[tuple[int, int, int], tuple[int, int, int]]


def _stamp(path: Path) -> tuple[int, int, int]:
    try:
        st = os.stat(path)
    except FileNotFoundError as e:
        raise CredentialNotFoundError("Credential file does not exist", path) from e
    except OSError as e:
        raise CredentialUnreadableError(f"Cannot stat credential file: {e.strerror}", path) from e
    return (st.st_ino, st.st_mtime_ns, st.st_size)


def _read(path: Path) -> bytes:
    try:
        data = path.read_bytes()
    except FileNotFoundError as e:
        raise CredentialNotFoundError("Credential file does not exist", path) from e
    except OSError as e:
        raise CredentialUnreadableError(f"Cannot read credential file: {e.strerror}", path) from e
    if not data.strip():
        raise CredentialUnreadableError("Credential file is empty", path)
    return data


def parse_certificates(data: bytes, path: Path | str | None = None) -> list[x509.Certificate]:
    """Parse a PEM bundle (leaf first) or a single DER certificate."""
    try:
        if _PEM_MARKER in data:
            return x509.load_pem_x509_certificates(data)
        return [x509.load_der_x509_certificate(data)]
    except ValueError as e:
        raise CredentialMalformedError(f"Not a valid X.509 certificate: {e}", path) from e


def parse_private_key(data: bytes, path: Path | str | None = None) -> PrivateKeyTypes:
    """Parse an unencrypted PEM or DER private key."""
    try:
        if _PEM_MARKER in data:
            return serialization.load_pem_private_key(data, password=None)
        return serialization.load_der_private_key(data, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        # TypeError is what cryptography raises for an encrypted key without a password
        raise CredentialMalformedError(f"Not a usable private key: {e}", path) from e


def _spki(key: object) -> bytes:
    return key.public_bytes(  # type: ignore[attr-defined]
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def build_credential(cert_data: bytes, key_data: bytes, location: CredentialLocation) -> Credential:
    """Parse both artifacts and check that the key belongs to the leaf certificate."""
    chain = parse_certificates(cert_data, location.cert_path)
    key = parse_private_key(key_data, location.key_path)
    leaf = chain[0]

    try:
        matches = _spki(leaf.public_key()) == _spki(key.public_key())
    except (ValueError, UnsupportedAlgorithm) as e:
        raise CredentialMalformedError(f"Cannot compare key with certificate: {e}", location.key_path) from e
    if not matches:
        raise CredentialMalformedError("Private key does not match the certificate", location.key_path)

    return Credential(
        certificate_chain=tuple(cert.public_bytes(serialization.Encoding.DER) for cert in chain),
        private_key=SecretBytes(
            key.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.PKCS8,
                serialization.NoEncryption(),
            )
        ),
        cert_path=str(location.cert_path),
        key_path=str(location.key_path),
        subject=leaf.subject.rfc4514_string(),
        fingerprint_sha256=leaf.fingerprint(hashes.SHA256()).hex(),
        not_valid_after=leaf.not_valid_after_utc,
    )


class FileCredentialSource:
    """Loads a Credential from a cert path and a key path on disk."""

    def __init__(self, max_read_attempts: int = 3) -> None:
        if max_read_attempts < 1:
            raise ValueError("max_read_attempts must be at least 1")
        self.max_read_attempts = max_read_attempts

    def _pair_stamp(self, location: CredentialLocation) -> _PairStamp:
        return (_stamp(location.cert_path), _stamp(location.key_path))

    def read_pair(self, location: CredentialLocation) -> tuple[bytes, bytes]:
        """Read both files as one consistent snapshot."""
        for _ in range(self.max_read_attempts):
            before = self._pair_stamp(location)
            cert_data = _read(location.cert_path)
            key_data = _read(location.key_path)
            if self._pair_stamp(location) == before:
                return cert_data, key_data
        raise CredentialUnreadableError(
            f"Credential pair kept changing across {self.max_read_attempts} reads",
            location.cert_path,
        )

    def load(self, location: CredentialLocation) -> Credential:
        cert_data, key_data = self.read_pair(location)
        return build_credential(cert_data, key_data, location)
