"""
Polling worker for page generation requests.

Checks the generation_queue table every poll interval, claims the oldest
pending item, and runs it through generate -> validate/repair -> persist.
Items are processed one at a time per worker; several worker processes may
share the same database, the claim is atomic.

Usage:
    python -m infographics.worker
    infographics-worker
"""

import asyncio
import logging
from typing import Callable, Optional

from .core.config import settings, ConfigurationError
from .core.logging_config import setup_logging
from .database import SessionLocal, init_db
from .services.generation_worker import GenerationWorker

logger = logging.getLogger("infographics.worker")


async def run_forever(
    worker: GenerationWorker,
    poll_interval: float,
    error_backoff: float,
    should_stop: Optional[Callable[[], bool]] = None,
) -> None:
    """Poll for pending items and process them sequentially.

    Sleeps ``poll_interval`` after an empty poll and ``error_backoff`` after
    an unexpected error; an item that was found is followed immediately by
    the next poll. ``should_stop`` is checked before every cycle.
    """
    should_stop = should_stop or (lambda: False)
    logger.info(f"Worker started, polling every {poll_interval}s")

    while not should_stop():
        try:
            item = await worker.process_next()
            if item is None:
                await asyncio.sleep(poll_interval)
        except Exception as e:
            logger.error(f"Worker error: {e}")
            await asyncio.sleep(error_backoff)

    logger.info("Worker stopped")


def main() -> None:
    setup_logging(settings.log_level, settings.log_format)
    init_db()

    try:
        worker = GenerationWorker.from_settings(settings, SessionLocal)
    except ConfigurationError as e:
        logger.critical(f"Cannot start worker: {e}")
        raise SystemExit(1)

    logger.info(
        f"Generation model: {settings.generation_model}, "
        f"repair model: {settings.get_repair_model()}, "
        f"max fix iterations: {settings.max_html_fix_iter}"
    )

    try:
        asyncio.run(run_forever(
            worker,
            poll_interval=settings.worker_poll_interval,
            error_backoff=settings.worker_error_backoff,
        ))
    except KeyboardInterrupt:
        logger.info("Worker shutting down")


if __name__ == "__main__":
    main()
