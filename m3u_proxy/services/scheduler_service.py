"""
Refresh Scheduler

Runs a full refresh on the REFRESH_CRON schedule while the HTTP service is
up, and optionally once right after startup.
"""
import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from m3u_proxy.config import settings
from m3u_proxy.services.source_pipeline_service import refresh_and_process


logger = logging.getLogger(__name__)

CRON_JOB_ID = "refresh"
STARTUP_JOB_ID = "refresh-startup"


class RefreshScheduler:
    """Owns the AsyncIOScheduler and its refresh jobs"""

    def __init__(self):
        self.scheduler: AsyncIOScheduler | None = None

    async def _refresh_job(self) -> None:
        logger.info("Scheduled refresh triggered")
        try:
            result = await refresh_and_process(trigger="scheduler")
        except Exception as e:
            logger.error(f"Exception in scheduled refresh: {e}", exc_info=True)
            return

        if "error" in result:
            logger.error(f"Scheduled refresh failed: {result['error']}")
        elif result.get("status") == "skipped":
            logger.info("Scheduled refresh skipped, a refresh is already running")
        else:
            logger.info(
                "Scheduled refresh done: %s/%s source(s) succeeded",
                result.get("sources_succeeded", 0),
                result.get("sources_processed", 0),
            )

    def start(self) -> None:
        """
        Start the scheduler

        Nothing is started when neither REFRESH_CRON nor REFRESH_ON_STARTUP
        is set.
        """
        if self.running:
            logger.warning("Scheduler already running")
            return

        if not settings.refresh_cron and not settings.refresh_on_startup:
            logger.info("REFRESH_CRON not set - scheduled refreshes disabled")
            return

        self.scheduler = AsyncIOScheduler(timezone='UTC')

        if settings.refresh_cron:
            try:
                trigger = CronTrigger.from_crontab(settings.refresh_cron, timezone='UTC')
            except (ValueError, KeyError) as exc:
                logger.error("Invalid cron expression '%s': %s", settings.refresh_cron, exc)
                self.scheduler = None
                raise
            self.scheduler.add_job(
                self._refresh_job,
                trigger=trigger,
                id=CRON_JOB_ID,
                max_instances=1,
                coalesce=True,
                misfire_grace_time=settings.refresh_misfire_grace_sec,
            )

        if settings.refresh_on_startup:
            # One-shot date job, run as soon as the loop is free
            self.scheduler.add_job(
                self._refresh_job,
                trigger="date",
                id=STARTUP_JOB_ID,
                misfire_grace_time=None,
            )
            logger.info("Initial refresh queued")

        self.scheduler.start()
        next_time = self.get_next_run_time()
        logger.info(
            "Scheduler started (%s). Next scheduled refresh: %s",
            settings.refresh_cron or "startup only",
            next_time.isoformat() if next_time else "none",
        )

    def shutdown(self) -> None:
        if self.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        self.scheduler = None

    @property
    def running(self) -> bool:
        return bool(self.scheduler and self.scheduler.running)

    def get_next_run_time(self) -> datetime | None:
        """Next cron refresh, None when no cron job is registered"""
        if not self.scheduler:
            return None
        job = self.scheduler.get_job(CRON_JOB_ID)
        return job.next_run_time if job else None

    def status(self) -> dict:
        next_run = self.get_next_run_time()
        return {
            "scheduler_running": self.running,
            "refresh_cron": settings.refresh_cron,
            "next_refresh": next_run.isoformat() if next_run else None,
        }


refresh_scheduler = RefreshScheduler()
