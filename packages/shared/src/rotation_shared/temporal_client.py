"""Temporal connection manager.

Owns the single long-lived Temporal client for the process and handles the
two connection modes transparently:

1. **Local dev**: plaintext dial to `localhost:7233` (or TEMPORAL_ADDRESS), the
   dev server started by `temporal server start-dev`. No certificate.

2. **mTLS**: every dial asks the CertificateProvider for the current client
   certificate and builds a fresh TLSConfig from it. The SDK fixes TLS
   material for the lifetime of a connection, so rotation is picked up by
   dialing again: `reconnect()` re-invokes the provider, swaps in the new
   client, and tells listeners (the worker) to use it. A background task
   does this every `settings.refresh_interval` seconds (5 minutes unless
   configured otherwise).

Usage:
    async with ConnectionManager(settings, provider) as client:
        ...

The Python SDK has no explicit close on Client; the underlying connection is
released when the last reference goes away. close() drops ours, stops the
refresh task, and is safe to call more than once.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Literal

from temporalio.client import Client
from temporalio.service import TLSConfig

from rotation_shared.credential_models import CertificateProvider, CertificateRequestInfo
from rotation_shared.errors import CredentialLoadError, TemporalConnectionError
from rotation_shared.settings import WorkerSettings

logger = logging.getLogger(__name__)

ReconnectListener = Callable[[Client], None]


class ConnectionManager:
    """Creates, refreshes and releases the process's Temporal client."""

    def __init__(
        self,
        settings: WorkerSettings,
        provider: CertificateProvider | None = None,
    ) -> None:
        if settings.tls_enabled and provider is None:
            raise ValueError("TLS is configured but no CertificateProvider was supplied")
        self.settings = settings
        self.provider = provider
        self._client: Client | None = None
        self._closed = False
        self._dial_count = 0
        self._listeners: list[ReconnectListener] = []
        self._refresh_task: asyncio.Task[None] | None = None

    @property
    def client(self) -> Client:
        if self._client is None:
            raise RuntimeError("ConnectionManager is not connected")
        return self._client

    @property
    def dial_count(self) -> int:
        return self._dial_count

    def add_reconnect_listener(self, listener: ReconnectListener) -> None:
        """Register a callback invoked with the new client after each reconnect."""
        self._listeners.append(listener)

    async def _tls_config(self, reason: Literal["connect", "reconnect"]) -> TLSConfig | bool:
        if self.provider is None:
            return False

        info = CertificateRequestInfo(
            target_host=self.settings.address,
            reason=reason,
            attempt=self._dial_count,
        )
        # File reads block, keep them off the event loop
        credential = await asyncio.to_thread(self.provider.get_client_certificate, info)

        server_root_ca_cert = None
        if self.settings.tls_ca_path is not None:
            server_root_ca_cert = await asyncio.to_thread(self.settings.tls_ca_path.read_bytes)

        return TLSConfig(
            client_cert=credential.certificate_pem(),
            client_private_key=credential.private_key_pem(),
            server_root_ca_cert=server_root_ca_cert,
            domain=self.settings.tls_server_name,
        )

    async def _dial(self, reason: Literal["connect", "reconnect"]) -> Client:
        self._dial_count += 1
        tls = await self._tls_config(reason)
        return await Client.connect(
            self.settings.address,
            namespace=self.settings.namespace,
            tls=tls,
        )

    async def connect(self) -> Client:
        """Dial once. Any failure here is fatal for the caller.

        Raises:
            TemporalConnectionError: The certificate could not be loaded or
                the dial failed. The original error is in `.cause`.
        """
        if self._closed:
            raise RuntimeError("ConnectionManager has been closed")
        if self._client is not None:
            return self._client

        try:
            self._client = await self._dial("connect")
        except Exception as e:
            raise TemporalConnectionError(self.settings.address, e) from e

        logger.info(
            f"Connected to Temporal at '{self.settings.address}' "
            f"(namespace={self.settings.namespace}, tls={self.settings.tls_enabled})"
        )

        interval = self.settings.refresh_interval
        if self.provider is not None and interval is not None:
            self._refresh_task = asyncio.create_task(
                self._refresh_periodically(interval),
                name="temporal-tls-refresh",
            )
        return self._client

    async def reconnect(self) -> Client:
        """Dial again with a freshly loaded certificate and swap the client in.

        On failure the current client stays in place and the error propagates.

        Raises:
            CredentialLoadError: The provider could not load the pair.
            TemporalConnectionError: The new dial failed.
        """
        if self._closed or self._client is None:
            raise RuntimeError("reconnect() requires an open connection")

        try:
            client = await self._dial("reconnect")
        except CredentialLoadError:
            raise
        except Exception as e:
            raise TemporalConnectionError(self.settings.address, e) from e

        self._client = client
        for listener in list(self._listeners):
            try:
                listener(client)
            except Exception:
                logger.exception(f"Reconnect listener {listener!r} failed")
        logger.info(f"Reconnected to Temporal at '{self.settings.address}' (dial #{self._dial_count})")
        return client

    async def _refresh_periodically(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.reconnect()
            except (CredentialLoadError, TemporalConnectionError) as e:
                # The current connection keeps serving; the next tick tries again
                logger.warning(f"Certificate refresh failed, keeping current connection: {e}")
            except Exception:
                logger.exception("Unexpected error during certificate refresh")

    async def close(self) -> None:
        """Release the connection. Idempotent."""
        if self._closed:
            return
        self._closed = True

        if self._refresh_task is not None:
            task, self._refresh_task = self._refresh_task, None
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Certificate refresh task had failed")

        had_client = self._client is not None
        self._client = None
        self._listeners.clear()
        if had_client:
            logger.info(f"Released Temporal connection to '{self.settings.address}'")

    async def __aenter__(self) -> Client:
        return await self.connect()

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
