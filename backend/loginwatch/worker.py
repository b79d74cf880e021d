"""Standalone worker process running the login attempt retention schedule."""

import asyncio
import logging
import signal

from loginwatch.core.redis import close_redis
from loginwatch.services.scheduler import scheduler_service

logger = logging.getLogger(__name__)


class Worker:
    """Keeps the scheduler alive until a shutdown signal arrives."""

    def __init__(self):
        self._stop = asyncio.Event()

    def shutdown(self):
        """Signal graceful shutdown."""
        logger.info("Shutdown signal received")
        self._stop.set()

    async def run(self):
        """Main worker loop."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self.shutdown)

        logger.info("Retention worker starting")
        scheduler_service.start()

        # Run one cycle immediately so a restarted worker does not wait a full interval
        await scheduler_service.run_retention_now()

        await self._stop.wait()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)

        logger.info("Retention worker shutting down")
        scheduler_service.stop()
        await scheduler_service.dispose()
        await close_redis()


def main():
    """Entry point for worker process."""
    from loginwatch.core.logging import setup_logging
    setup_logging()

    asyncio.run(Worker().run())


if __name__ == "__main__":
    main()
