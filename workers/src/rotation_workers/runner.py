"""Worker runner entrypoint.

Usage:
  python -m rotation_workers.runner
  rotation-worker

Configuration comes from TEMPORAL_* environment variables (a `.env` file in
the working directory is loaded first). See rotation_shared.settings for the
full list.

This starts a Temporal worker that polls TEMPORAL_TASK_QUEUE (default
`greeting-tasks`) and hosts the handlers from the registry. The worker runs
until SIGINT/SIGTERM, then shuts down gracefully and releases the connection.

Exit codes: 0 after a clean interrupt, 1 if the configuration is invalid,
the connection cannot be established, or the worker cannot run.
"""

import asyncio
import contextlib
import logging
import signal
import sys

from dotenv import load_dotenv
from rotation_credentials.provider import RotatingCertificateProvider
from rotation_shared.errors import RunLoopError, TemporalConnectionError
from rotation_shared.settings import WorkerSettings
from rotation_shared.temporal_client import ConnectionManager
from temporalio.client import Client
from temporalio.worker import Worker

from rotation_workers.registry import HandlerRegistry, default_registry

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def run(
    manager: ConnectionManager,
    task_queue: str,
    registry: HandlerRegistry,
    interrupt: asyncio.Event,
) -> None:
    """Poll `task_queue` until `interrupt` is set.

    The worker follows the manager's reconnects, so a client redialed with a
    rotated certificate takes over without restarting the worker.

    Raises:
        RunLoopError: Nothing is registered, the worker could not be built,
            or its run loop failed.
    """
    if len(registry) == 0:
        raise RunLoopError(f"No workflows or activities registered for queue '{task_queue}'")
    registry.freeze()

    workflows = registry.workflows()
    activities = registry.activities()
    try:
        worker = Worker(
            manager.client,
            task_queue=task_queue,
            workflows=workflows,
            activities=activities,
        )
    except Exception as e:
        raise RunLoopError(f"Unable to create worker for queue '{task_queue}': {e}") from e

    def _use_client(client: Client) -> None:
        worker.client = client

    manager.add_reconnect_listener(_use_client)

    logger.info(
        f"Starting worker on queue '{task_queue}' "
        f"(workflows={len(workflows)}, activities={len(activities)})"
    )

    run_task = asyncio.create_task(worker.run(), name="temporal-worker")
    interrupt_task = asyncio.create_task(interrupt.wait(), name="worker-interrupt")
    try:
        done, _ = await asyncio.wait(
            {run_task, interrupt_task}, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        interrupt_task.cancel()
        await worker.shutdown()
        raise

    if run_task in done:
        interrupt_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await interrupt_task
        exc = run_task.exception()
        if exc is not None:
            raise RunLoopError(f"Worker on queue '{task_queue}' failed: {exc}") from exc
        logger.info(f"Worker on queue '{task_queue}' exited")
        return

    logger.info(f"Interrupt received, shutting down worker on queue '{task_queue}'")
    await worker.shutdown()
    try:
        await run_task
    except Exception as e:
        raise RunLoopError(f"Worker on queue '{task_queue}' failed during shutdown: {e}") from e
    logger.info("Worker stopped")


async def serve(settings: WorkerSettings, interrupt: asyncio.Event) -> None:
    """Connect with the configured credentials and run until interrupted."""
    provider = None
    location = settings.credential_location
    if location is not None:
        provider = RotatingCertificateProvider(location, load_attempts=settings.tls_load_attempts)

    manager = ConnectionManager(settings, provider)
    async with manager:
        await run(manager, settings.task_queue, default_registry(), interrupt)


def install_signal_handlers(interrupt: asyncio.Event) -> None:
    """Set `interrupt` on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # add_signal_handler is unavailable on Windows event loops
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, interrupt.set)


async def _serve_until_signal(settings: WorkerSettings) -> None:
    interrupt = asyncio.Event()
    install_signal_handlers(interrupt)
    await serve(settings, interrupt)


def main() -> None:
    """CLI entrypoint: load settings, run, map fatal errors to exit code 1."""
    load_dotenv()

    try:
        settings = WorkerSettings.from_env()
    except ValueError as e:
        logger.error(f"Invalid worker configuration: {e}")
        sys.exit(1)

    try:
        asyncio.run(_serve_until_signal(settings))
    except TemporalConnectionError as e:
        logger.error(f"Unable to connect to Temporal: {e}", extra={"cause": repr(e.cause)})
        sys.exit(1)
    except RunLoopError as e:
        cause = e.__cause__ if e.__cause__ is not None else e
        logger.error(f"Unable to run worker: {e}", extra={"cause": repr(cause)})
        sys.exit(1)


if __name__ == "__main__":
    main()
