"""Error taxonomy for the rotation demo.

Two families with different blast radius:

  - CredentialLoadError is recoverable at the handshake level. The dial that
    needed the certificate fails, the process keeps running, and the next
    reconnect tries again. It is never replaced by a stale credential.
  - TemporalConnectionError, RegistrationError and RunLoopError are fatal at
    startup. The runner logs the cause and exits non-zero.
"""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path


class RotationDemoError(Exception):
    """Base class for every error raised by this project."""


class CredentialLoadReason(StrEnum):
    NOT_FOUND = "not_found"
    UNREADABLE = "unreadable"
    MALFORMED = "malformed"


class CredentialLoadError(RotationDemoError):
    """A certificate/key pair could not be loaded from its location."""

    reason: CredentialLoadReason = CredentialLoadReason.UNREADABLE

    def __init__(self, message: str, path: Path | str | None = None) -> None:
        super().__init__(message)
        self.path = str(path) if path is not None else None

    def __str__(self) -> str:
        base = super().__str__()
        if self.path:
            return f"{base} ({self.reason.value}: {self.path})"
        return f"{base} ({self.reason.value})"


class CredentialUnreadableError(CredentialLoadError):
    """The file exists but could not be read consistently."""

    reason = CredentialLoadReason.UNREADABLE


class CredentialNotFoundError(CredentialUnreadableError):
    """The certificate or key file does not exist."""

    reason = CredentialLoadReason.NOT_FOUND


class CredentialMalformedError(CredentialLoadError):
    """The bytes are not a valid certificate/key, or the pair does not match."""

    reason = CredentialLoadReason.MALFORMED


class TemporalConnectionError(RotationDemoError):
    """The initial dial to the Temporal service failed."""

    def __init__(self, address: str, cause: BaseException) -> None:
        super().__init__(f"Unable to connect to Temporal at '{address}': {cause}")
        self.address = address
        self.cause = cause


class RegistrationError(RotationDemoError):
    """A handler could not be registered (duplicate name or frozen registry)."""


class RunLoopError(RotationDemoError):
    """The worker could not start or its run loop failed."""
