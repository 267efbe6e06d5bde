"""Dev certificate issuance and in-place rotation.

Produces self-signed EC P-256 client certificates for local testing, and
writes a pair into its CredentialLocation the way a rotation job should: each
file goes to a temp file in the same directory and is then os.replace()d over
the old one, so a reader never sees a half-written file.

Self-signed certificates are for dev servers and tests. Temporal Cloud needs
a certificate chained to the CA uploaded for the namespace.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID
from rotation_shared.credential_models import CredentialLocation


def issue_self_signed(
    common_name: str = "rotation-demo-client",
    valid_days: int = 30,
) -> tuple[bytes, bytes]:
    """Return (cert_pem, key_pem) for a fresh self-signed client certificate."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(UTC)

    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=valid_days))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.CLIENT_AUTH]), critical=False)
        .sign(key, hashes.SHA256())
    )

    cert_pem = cert.public_bytes(serialization.Encoding.PEM)
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    return cert_pem, key_pem


def _replace_atomically(path: Path, data: bytes, mode: int) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise


def write_pair_atomically(location: CredentialLocation, cert_pem: bytes, key_pem: bytes) -> None:
    """Replace both files at the location. Key first, then certificate."""
    _replace_atomically(location.key_path, key_pem, 0o600)
    _replace_atomically(location.cert_path, cert_pem, 0o644)


def rotate(
    location: CredentialLocation,
    common_name: str = "rotation-demo-client",
    valid_days: int = 30,
) -> tuple[bytes, bytes]:
    """Issue a new self-signed pair and write it over the location."""
    cert_pem, key_pem = issue_self_signed(common_name, valid_days)
    write_pair_atomically(location, cert_pem, key_pem)
    return cert_pem, key_pem
