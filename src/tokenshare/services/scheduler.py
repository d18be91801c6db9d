"""Service for scheduling background jobs."""

from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from tokenshare.config import settings
from tokenshare.services.integrity import IntegrityService

logger = logging.getLogger(__name__)


class SchedulerService:
    """Manages scheduled tasks for the application."""

    def __init__(
        self,
        integrity_service: IntegrityService,
        scheduler: AsyncIOScheduler,
    ):
        self._integrity_service = integrity_service
        self._scheduler = scheduler

    def start(self):
        """Starts the scheduler and adds jobs."""
        logger.info("Starting scheduler...")
        self._scheduler.add_job(
            self._run_integrity_audit,
            trigger=CronTrigger(
                hour=settings.INTEGRITY_AUDIT_HOUR,
                minute=settings.INTEGRITY_AUDIT_MINUTE,
            ),
            id="integrity_audit",
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("Scheduler started.")

    def shutdown(self):
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped.")

    async def _run_integrity_audit(self):
        """Audits the purchase chain and logs the outcome."""
        logger.info("Starting integrity audit job.")
        try:
            report = await self._integrity_service.audit()
        except Exception as e:
            logger.error(f"Integrity audit failed: {e}", exc_info=True)
            return

        if report.healthy:
            logger.info(
                f"Integrity audit found no issues across {report.total_purchases} "
                "purchases."
            )
        else:
            logger.warning(
                f"Integrity audit found {len(report.issues)} issue(s) across "
                f"{report.total_purchases} purchases."
            )
        logger.info("Integrity audit job finished.")
