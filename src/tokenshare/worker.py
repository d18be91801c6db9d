"""Main entry point for the background worker."""

import asyncio
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from tortoise import Tortoise

from tokenshare.config import settings
from tokenshare.core.db import TORTOISE_ORM
from tokenshare.core.repositories.contribution import ContributionRepository
from tokenshare.core.repositories.purchase import PurchaseRepository
from tokenshare.services.integrity import IntegrityService
from tokenshare.services.scheduler import SchedulerService

logger = logging.getLogger(__name__)


async def on_startup() -> SchedulerService:
    """Initializes the database and starts scheduled jobs."""
    logger.info("Initializing database...")
    await Tortoise.init(config=TORTOISE_ORM)
    logger.info("Database initialized.")

    integrity_service = IntegrityService(
        purchase_repo=PurchaseRepository(),
        contribution_repo=ContributionRepository(),
    )
    scheduler_service = SchedulerService(
        integrity_service=integrity_service,
        scheduler=AsyncIOScheduler(),
    )
    scheduler_service.start()
    return scheduler_service


async def on_shutdown(scheduler_service: SchedulerService | None):
    """Stops jobs and closes connections."""
    if scheduler_service is not None:
        scheduler_service.shutdown()
    logger.info("Closing connections...")
    await Tortoise.close_connections()
    logger.info("Connections closed.")


async def main():
    """Initializes and runs the worker until cancelled."""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
    logger.info("Starting worker initialization...")

    scheduler_service = None
    try:
        scheduler_service = await on_startup()
        logger.info("Worker started.")
        await asyncio.Event().wait()
    finally:
        await on_shutdown(scheduler_service)


def run():
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        logger.info("Worker stopped manually.")


if __name__ == "__main__":
    run()
