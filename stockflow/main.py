"""Headless sync daemon.

Runs the sync core without the desktop UI: probes the remote API, drains the
offline queue on reconnection and on the sync timer, and logs every
notification.  Optionally exposes Prometheus metrics.

    python -m stockflow
"""

import asyncio
import logging
import signal
from contextlib import suppress

from prometheus_client import start_http_server

from stockflow.config import Settings
from stockflow.config import get_settings
from stockflow.runtime import runtime_scope
from stockflow.utils.log import configure_logging

logger = logging.getLogger(__name__)


async def serve(settings: Settings, shutdown_event: asyncio.Event) -> None:
    """Run until *shutdown_event* is set."""
    async with runtime_scope(settings) as runtime:
        logger.info(
            f"Sync daemon running: {runtime.queue_size} queued actions, "
            f"connected={runtime.connection_state.is_connected}"
        )
        await shutdown_event.wait()
        logger.info("Shutdown requested")


async def _main(settings: Settings) -> None:
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on every platform (e.g. Windows event loops)
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, shutdown_event.set)
    await serve(settings, shutdown_event)


def run() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)

    if settings.metrics_port:
        start_http_server(settings.metrics_port)
        logger.info(f"Prometheus metrics exposed on port {settings.metrics_port}")

    with suppress(KeyboardInterrupt):
        asyncio.run(_main(settings))
