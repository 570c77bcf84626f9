"""
Long-running worker hosting the ETL scheduler until SIGINT/SIGTERM
"""

import asyncio
import signal
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.logging import setup_logging
from ingestion.scheduler import ETLScheduler

logger = logging.getLogger(__name__)


async def run_worker():
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop_event.set))

    scheduler = ETLScheduler(settings)
    scheduler.start()
    logger.info("ETL worker started; press Ctrl+C to stop")

    try:
        await stop_event.wait()
    finally:
        logger.info("ETL worker stopping")
        scheduler.stop()


if __name__ == "__main__":
    setup_logging(settings)
    asyncio.run(run_worker())
