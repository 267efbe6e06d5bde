"""Worker settings, built once at process start.

The worker reads its configuration from environment variables exactly once,
in the entrypoint, and passes the resulting WorkerSettings down explicitly.
Nothing else in the codebase reads os.environ.

Two connection modes, decided by whether TLS paths are present:

1. **Local dev**: no TEMPORAL_TLS_CERT / TEMPORAL_TLS_KEY. Plaintext dial to
   TEMPORAL_ADDRESS (default `localhost:7233`), e.g. `temporal server start-dev`.

2. **mTLS (Temporal Cloud or self-hosted)**: both paths set. The certificate
   pair is re-read from those paths on every dial, so rotating the files in
   place is picked up on the next reconnect without a restart. The
   connection is redialed every TEMPORAL_TLS_REFRESH_SECONDS (default 300);
   `0` turns the periodic redial off.

Setting only one of the two paths is a configuration error.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, model_validator

from rotation_shared.credential_models import CredentialLocation
from rotation_shared.task_queues import GREETING_QUEUE

# Environment variable names
ENV_ADDRESS = "TEMPORAL_ADDRESS"
ENV_NAMESPACE = "TEMPORAL_NAMESPACE"
ENV_TLS_CERT = "TEMPORAL_TLS_CERT"
ENV_TLS_KEY = "TEMPORAL_TLS_KEY"
ENV_TLS_CA = "TEMPORAL_TLS_CA"
ENV_TLS_SERVER_NAME = "TEMPORAL_TLS_SERVER_NAME"
ENV_TASK_QUEUE = "TEMPORAL_TASK_QUEUE"
ENV_TLS_REFRESH_SECONDS = "TEMPORAL_TLS_REFRESH_SECONDS"
ENV_TLS_LOAD_ATTEMPTS = "TEMPORAL_TLS_LOAD_ATTEMPTS"

DEFAULT_TLS_REFRESH_SECONDS = 300.0


class WorkerSettings(BaseModel):
    """Everything the worker needs to connect and poll."""

    model_config = ConfigDict(frozen=True)

    address: str = "localhost:7233"
    namespace: str = "default"
    task_queue: str = GREETING_QUEUE
    tls_cert_path: Path | None = None
    tls_key_path: Path | None = None
    tls_ca_path: Path | None = None
    tls_server_name: str | None = None
    tls_refresh_seconds: float | None = Field(default=None, ge=0)
    tls_load_attempts: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def _cert_and_key_together(self) -> WorkerSettings:
        if (self.tls_cert_path is None) != (self.tls_key_path is None):
            raise ValueError(
                f"{ENV_TLS_CERT} and {ENV_TLS_KEY} must be set together "
                "(both for mTLS, neither for a local plaintext dev server)."
            )
        return self

    @property
    def tls_enabled(self) -> bool:
        return self.tls_cert_path is not None

    @property
    def credential_location(self) -> CredentialLocation | None:
        if self.tls_cert_path is None or self.tls_key_path is None:
            return None
        return CredentialLocation(cert_path=self.tls_cert_path, key_path=self.tls_key_path)

    @property
    def refresh_interval(self) -> float | None:
        """Seconds between certificate refresh redials, or None when there is none.

        Unset means DEFAULT_TLS_REFRESH_SECONDS under mTLS; 0 disables it.
        """
        if not self.tls_enabled or self.tls_refresh_seconds == 0:
            return None
        if self.tls_refresh_seconds is None:
            return DEFAULT_TLS_REFRESH_SECONDS
        return self.tls_refresh_seconds

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> WorkerSettings:
        """Build settings from environment variables.

        Empty strings count as unset, so `TEMPORAL_TLS_CA=` in a .env file
        behaves like leaving the line out.

        Raises:
            ValueError: A value failed validation (pydantic's ValidationError
                is a ValueError subclass).
        """
        env = os.environ if environ is None else environ
        mapping = {
            "address": ENV_ADDRESS,
            "namespace": ENV_NAMESPACE,
            "task_queue": ENV_TASK_QUEUE,
            "tls_cert_path": ENV_TLS_CERT,
            "tls_key_path": ENV_TLS_KEY,
            "tls_ca_path": ENV_TLS_CA,
            "tls_server_name": ENV_TLS_SERVER_NAME,
            "tls_refresh_seconds": ENV_TLS_REFRESH_SECONDS,
            "tls_load_attempts": ENV_TLS_LOAD_ATTEMPTS,
        }
        values = {field: env[var] for field, var in mapping.items() if env.get(var)}
        return cls(**values)
