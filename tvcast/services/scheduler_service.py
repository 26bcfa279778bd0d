import logging
from datetime import datetime
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from tvcast.config import settings
from tvcast.services.refresh_service import RefreshService


logger = logging.getLogger(__name__)

REFRESH_JOB_ID = "iptv_refresh"


class RefreshScheduler:
    """Scheduler for the periodic forced refresh cycle"""

    def __init__(self, refresh_service: RefreshService, interval_minutes: int | None = None):
        self.refresh_service = refresh_service
        self.interval_minutes = interval_minutes or settings.refresh_iptv_minutes
        self.scheduler: AsyncIOScheduler | None = None

    async def _refresh_job(self) -> None:
        """Background job that runs the refresh cycle"""
        logger.info("Scheduled refresh triggered")
        try:
            await self.refresh_service.run_cycle()
        except Exception as e:
            logger.error(f"Exception in scheduled refresh: {e}", exc_info=True)

    def configure(self, interval_minutes: int | None = None) -> None:
        """
        (Re)install the refresh job, replacing any existing one.

        Starts the scheduler on first use.
        """
        if interval_minutes:
            self.interval_minutes = interval_minutes

        if self.scheduler is None:
            self.scheduler = AsyncIOScheduler(timezone="UTC")

        self.scheduler.add_job(
            self._refresh_job,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=REFRESH_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        if not self.scheduler.running:
            self.scheduler.start()

        next_time = self.get_next_run_time()
        logger.info(
            "Refresh scheduled every %s minutes. Next refresh: %s",
            self.interval_minutes,
            next_time.isoformat() if next_time else "unknown"
        )

    def start(self) -> None:
        """Start the scheduler with the refresh job"""
        if self.scheduler and self.scheduler.running:
            logger.warning("Scheduler already running")
            return
        self.configure()

    def shutdown(self) -> None:
        """Shutdown the scheduler"""
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        self.scheduler = None

    def get_next_run_time(self) -> datetime | None:
        """Get next scheduled refresh time"""
        if not self.scheduler:
            return None
        job = self.scheduler.get_job(REFRESH_JOB_ID)
        return job.next_run_time if job else None
