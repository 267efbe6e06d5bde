"""Tests for RotatingCertificateProvider.

Verifies:
  - Every invocation returns the pair currently on disk (freshness, no caching)
  - Load failures surface as CredentialLoadError, never anything else
  - A deleted key fails one handshake and recovers once restored
  - Concurrent invocations are independent
  - Log records carry location identifiers but never key material
  - Opt-in retry via load_attempts
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor

import pytest
from rotation_credentials.provider import RotatingCertificateProvider
from rotation_credentials.source import FileCredentialSource
from rotation_shared.credential_models import (
    CertificateProvider,
    CertificateRequestInfo,
    Credential,
    CredentialLocation,
)
from rotation_shared.errors import (
    CredentialLoadError,
    CredentialLoadReason,
    CredentialMalformedError,
    CredentialNotFoundError,
    CredentialUnreadableError,
)


class CountingSource:
    """Wraps FileCredentialSource and counts loads."""

    def __init__(self) -> None:
        self.inner = FileCredentialSource()
        self.loads = 0

    def load(self, location: CredentialLocation) -> Credential:
        self.loads += 1
        return self.inner.load(location)


class FlakySource:
    """Fails `failures` times with the given error, then delegates."""

    def __init__(self, failures: int, error: CredentialLoadError) -> None:
        self.inner = FileCredentialSource()
        self.failures = failures
        self.error = error
        self.calls = 0

    def load(self, location: CredentialLocation) -> Credential:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.inner.load(location)


class BrokenSource:
    """A source with a bug: raises something that is not a load error."""

    def load(self, location: CredentialLocation) -> Credential:
        raise KeyError("boom")


class TestFreshness:
    def test_nth_invocation_returns_nth_version(
        self, location, pair, rotate_pair, handshake, fingerprint_of
    ) -> None:
        provider = RotatingCertificateProvider(location)
        expected = [fingerprint_of(pair[0])]
        seen = [provider.get_client_certificate(handshake).fingerprint_sha256]

        for n in range(5):
            expected.append(fingerprint_of(rotate_pair(f"client-v{n + 2}")))
            seen.append(provider.get_client_certificate(handshake).fingerprint_sha256)

        assert seen == expected

    def test_rereads_on_every_call(self, location, pair, handshake) -> None:
        source = CountingSource()
        provider = RotatingCertificateProvider(location, source)
        for _ in range(25):
            provider.get_client_certificate(handshake)
        assert source.loads == 25

    def test_different_contents_give_different_credentials(
        self, location, pair, rotate_pair, handshake
    ) -> None:
        provider = RotatingCertificateProvider(location)
        first = provider.get_client_certificate(handshake)
        rotate_pair("second")
        second = provider.get_client_certificate(handshake)

        assert first != second
        assert first.subject == "CN=fixture-client"
        assert second.subject == "CN=second"

    def test_callable_form_matches_method(self, location, pair, handshake) -> None:
        provider = RotatingCertificateProvider(location)
        assert provider(handshake) == provider.get_client_certificate(handshake)

    def test_satisfies_certificate_provider_protocol(self, location) -> None:
        assert isinstance(RotatingCertificateProvider(location), CertificateProvider)


class TestFailurePropagation:
    def test_missing_pair_raises_load_error(self, location, handshake) -> None:
        provider = RotatingCertificateProvider(location)
        with pytest.raises(CredentialLoadError):
            provider.get_client_certificate(handshake)

    def test_malformed_pair_raises_malformed(self, location, pair, handshake) -> None:
        location.cert_path.write_bytes(b"garbage")
        provider = RotatingCertificateProvider(location)
        with pytest.raises(CredentialMalformedError):
            provider.get_client_certificate(handshake)

    def test_source_error_is_passed_through_unchanged(self, location, handshake) -> None:
        error = CredentialUnreadableError("disk on fire", location.cert_path)
        provider = RotatingCertificateProvider(location, FlakySource(failures=1, error=error))
        with pytest.raises(CredentialUnreadableError) as exc_info:
            provider.get_client_certificate(handshake)
        assert exc_info.value is error

    def test_no_fallback_to_previous_credential(self, location, pair, handshake) -> None:
        provider = RotatingCertificateProvider(location)
        provider.get_client_certificate(handshake)
        location.cert_path.write_bytes(b"garbage")
        with pytest.raises(CredentialMalformedError):
            provider.get_client_certificate(handshake)

    def test_non_load_errors_are_not_wrapped(self, location, handshake) -> None:
        provider = RotatingCertificateProvider(location, BrokenSource())
        with pytest.raises(KeyError):
            provider.get_client_certificate(handshake)


class TestKeyDeletedThenRestored:
    def test_fails_then_recovers(self, location, pair, handshake) -> None:
        provider = RotatingCertificateProvider(location)
        _, key_pem = pair

        location.key_path.unlink()
        with pytest.raises(CredentialUnreadableError) as exc_info:
            provider.get_client_certificate(handshake)
        assert isinstance(exc_info.value, CredentialNotFoundError)
        assert exc_info.value.reason is CredentialLoadReason.NOT_FOUND

        location.key_path.write_bytes(key_pem)
        credential = provider.get_client_certificate(handshake)
        assert credential.subject == "CN=fixture-client"


class TestConcurrency:
    def test_parallel_threads_all_succeed(self, location, pair, handshake) -> None:
        provider = RotatingCertificateProvider(location)
        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(lambda _: provider(handshake), range(64)))

        assert len(results) == 64
        assert len({r.fingerprint_sha256 for r in results}) == 1
        assert all(r.private_key_pem() == results[0].private_key_pem() for r in results)

    @pytest.mark.asyncio
    async def test_simultaneous_reconnects(self, location, pair) -> None:
        provider = RotatingCertificateProvider(location)
        infos = [
            CertificateRequestInfo(target_host="example.tmprl.cloud:7233", reason="reconnect", attempt=i)
            for i in range(1, 33)
        ]
        results = await asyncio.gather(
            *(asyncio.to_thread(provider.get_client_certificate, info) for info in infos)
        )
        assert all(isinstance(r, Credential) for r in results)
        assert len({r.fingerprint_sha256 for r in results}) == 1


class TestLogging:
    def _key_lines(self, key_pem: bytes) -> list[str]:
        return [
            line
            for line in key_pem.decode().splitlines()
            if line and not line.startswith("-----")
        ]

    def test_logs_location_without_key_material(self, location, pair, handshake, caplog) -> None:
        _, key_pem = pair
        caplog.set_level(logging.INFO, logger="rotation_credentials.provider")

        credential = RotatingCertificateProvider(location).get_client_certificate(handshake)

        records = [r for r in caplog.records if r.name == "rotation_credentials.provider"]
        assert records, "expected at least one provider log record"
        assert records[0].levelno == logging.INFO
        assert records[0].cert_path == str(location.cert_path)
        assert records[0].key_path == str(location.key_path)

        secret_lines = self._key_lines(key_pem) + self._key_lines(credential.private_key_pem())
        for record in records:
            rendered = record.getMessage() + repr(vars(record))
            for line in secret_lines:
                assert line not in rendered

    def test_logs_attempt_even_when_load_fails(self, location, handshake, caplog) -> None:
        caplog.set_level(logging.INFO, logger="rotation_credentials.provider")
        with pytest.raises(CredentialLoadError):
            RotatingCertificateProvider(location).get_client_certificate(handshake)

        levels = [r.levelno for r in caplog.records if r.name == "rotation_credentials.provider"]
        assert logging.INFO in levels
        assert logging.WARNING in levels


class TestRetry:
    def test_single_attempt_by_default(self, location, pair, handshake) -> None:
        source = FlakySource(failures=1, error=CredentialNotFoundError("mid-rotation"))
        provider = RotatingCertificateProvider(location, source)
        with pytest.raises(CredentialNotFoundError):
            provider.get_client_certificate(handshake)
        assert source.calls == 1

    def test_retries_until_success(self, location, pair, handshake) -> None:
        source = FlakySource(failures=2, error=CredentialNotFoundError("mid-rotation"))
        provider = RotatingCertificateProvider(
            location, source, load_attempts=3, retry_wait_seconds=0
        )
        credential = provider.get_client_certificate(handshake)
        assert credential.subject == "CN=fixture-client"
        assert source.calls == 3

    def test_gives_up_after_load_attempts(self, location, pair, handshake) -> None:
        source = FlakySource(failures=5, error=CredentialMalformedError("half written"))
        provider = RotatingCertificateProvider(
            location, source, load_attempts=2, retry_wait_seconds=0
        )
        with pytest.raises(CredentialMalformedError):
            provider.get_client_certificate(handshake)
        assert source.calls == 2

    def test_rejects_zero_attempts(self, location) -> None:
        with pytest.raises(ValueError):
            RotatingCertificateProvider(location, load_attempts=0)
