"""Issue, rotate and inspect the dev client certificate.

Writes a fresh self-signed client certificate/key pair over the configured
location using atomic replaces, the same way a real rotation job should. A
running worker picks the new pair up on its next reconnect (set
TEMPORAL_TLS_REFRESH_SECONDS to have it redial on a timer).

Paths default to TEMPORAL_TLS_CERT / TEMPORAL_TLS_KEY (from the environment
or `.env`).

Usage:
  python scripts/rotate_dev_cert.py rotate --cn rotation-demo-client --days 7
  python scripts/rotate_dev_cert.py show
  python scripts/rotate_dev_cert.py show --cert certs/client.pem --key certs/client.key
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from rotation_credentials.issue import rotate
from rotation_credentials.source import FileCredentialSource
from rotation_shared.credential_models import CredentialLocation
from rotation_shared.errors import CredentialLoadError
from rotation_shared.settings import ENV_TLS_CERT, ENV_TLS_KEY


def _location(args: argparse.Namespace) -> CredentialLocation:
    cert = args.cert or os.environ.get(ENV_TLS_CERT)
    key = args.key or os.environ.get(ENV_TLS_KEY)
    if not cert or not key:
        print(f"Pass --cert/--key or set {ENV_TLS_CERT} and {ENV_TLS_KEY}", file=sys.stderr)
        sys.exit(1)
    return CredentialLocation(cert_path=Path(cert), key_path=Path(key))


def cmd_rotate(args: argparse.Namespace) -> None:
    """Write a new self-signed pair over the location."""
    location = _location(args)
    rotate(location, common_name=args.cn, valid_days=args.days)
    cmd_show(args)


def cmd_show(args: argparse.Namespace) -> None:
    """Load the pair exactly as the worker would and print its identity."""
    location = _location(args)
    try:
        credential = FileCredentialSource().load(location)
    except CredentialLoadError as e:
        print(f"Cannot load credential: {e}", file=sys.stderr)
        sys.exit(1)
    print(f"subject:     {credential.subject}")
    print(f"sha256:      {credential.fingerprint_sha256}")
    print(f"expires:     {credential.not_valid_after.isoformat()}")
    print(f"chain depth: {len(credential.certificate_chain)}")


def main() -> None:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Manage the dev client certificate")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (("rotate", "Issue a new pair in place"), ("show", "Inspect the current pair")):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("--cert", help=f"Certificate path (default: ${ENV_TLS_CERT})")
        p.add_argument("--key", help=f"Private key path (default: ${ENV_TLS_KEY})")
        if name == "rotate":
            p.add_argument("--cn", default="rotation-demo-client", help="Subject common name")
            p.add_argument("--days", type=int, default=30, help="Validity in days (default: 30)")

    args = parser.parse_args()

    if args.command == "rotate":
        cmd_rotate(args)
    elif args.command == "show":
        cmd_show(args)


if __name__ == "__main__":
    main()
