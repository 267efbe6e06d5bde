"""Rotating client certificate provider.

The provider is what the connection layer calls whenever a dial needs a
client certificate. It re-reads the pair from its CredentialSource on every
call and hands back whatever is on disk right now. No cache, no TTL, no file
watcher: a rotation is visible on the very next handshake.

The only state is the immutable location, the source and the retry policy, so
concurrent calls from several threads are independent and need no lock.

Load failures always propagate. Falling back to an older certificate would
hide an expired or revoked credential behind a connection that looks healthy.

Retry is opt-in. With load_attempts > 1, tenacity retries CredentialLoadError
with a fixed wait, which covers a rotation writer that is briefly mid-write.

Usage:
    provider = RotatingCertificateProvider(settings.credential_location)
    credential = provider.get_client_certificate(info)
"""

from __future__ import annotations

import logging

from rotation_shared.credential_models import (
    CertificateRequestInfo,
    Credential,
    CredentialLocation,
    CredentialSource,
)
from rotation_shared.errors import CredentialLoadError
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from rotation_credentials.source import FileCredentialSource

logger = logging.getLogger(__name__)


class RotatingCertificateProvider:
    """Loads the current certificate/key pair on every handshake."""

    def __init__(
        self,
        location: CredentialLocation,
        source: CredentialSource | None = None,
        *,
        load_attempts: int = 1,
        retry_wait_seconds: float = 0.5,
    ) -> None:
        if load_attempts < 1:
            raise ValueError("load_attempts must be at least 1")
        self.location = location
        self.source = source if source is not None else FileCredentialSource()
        self.load_attempts = load_attempts
        self.retry_wait_seconds = retry_wait_seconds

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"Certificate load attempt {retry_state.attempt_number}/{self.load_attempts} failed: {exc}",
            extra=self.location.log_fields(),
        )

    def _load(self) -> Credential:
        if self.load_attempts == 1:
            return self.source.load(self.location)

        retrying = Retrying(
            retry=retry_if_exception_type(CredentialLoadError),
            stop=stop_after_attempt(self.load_attempts),
            wait=wait_fixed(self.retry_wait_seconds),
            before_sleep=self._log_retry,
            reraise=True,
        )
        return retrying(self.source.load, self.location)

    def get_client_certificate(self, info: CertificateRequestInfo) -> Credential:
        """Return the credential currently stored at the location.

        Raises:
            CredentialLoadError: The pair is missing, unreadable or malformed.
        """
        fields = {
            **self.location.log_fields(),
            "target_host": info.target_host,
            "reason": info.reason,
            "attempt": info.attempt,
        }
        logger.info(
            f"Loading client certificate for '{info.target_host}' ({info.reason} #{info.attempt})",
            extra=fields,
        )

        try:
            credential = self._load()
        except CredentialLoadError as e:
            logger.warning(f"Client certificate load failed: {e}", extra=fields)
            raise

        logger.info(
            f"Loaded client certificate '{credential.subject}' "
            f"(sha256={credential.fingerprint_sha256[:16]}, "
            f"expires {credential.not_valid_after.isoformat()})",
            extra={**fields, "fingerprint_sha256": credential.fingerprint_sha256},
        )
        return credential

    def __call__(self, info: CertificateRequestInfo) -> Credential:
        return self.get_client_certificate(info)
