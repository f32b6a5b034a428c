"""Run the delivery scheduler and retention loops as a standalone process."""

from __future__ import annotations

import asyncio
import signal

from courier.config import Settings
from courier.logging import configure_logging, get_logger
from courier.service import WebhookService

logger = get_logger(__name__)


async def serve(settings: Settings | None = None) -> None:
    """Run until SIGINT or SIGTERM, then stop after the in-flight tick."""
    settings = settings or Settings()
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops do not support signal handlers
            pass

    async with WebhookService.create(settings) as service:
        await service.start()
        await stop.wait()
        logger.info("shutdown_requested")


def main() -> None:
    """Entry point for ``python -m courier``."""
    settings = Settings()
    configure_logging(level=settings.log_level, format=settings.log_format)
    asyncio.run(serve(settings))
