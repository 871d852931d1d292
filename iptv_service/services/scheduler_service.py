import logging
from datetime import datetime, timezone
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from iptv_service.errors import IptvError
from iptv_service.services.channel_directory import ChannelDirectory
from iptv_service.services.epg_aggregator import GuideCache
from iptv_service.services.refresh_coordinator import RefreshCoordinator


logger = logging.getLogger(__name__)

CHANNEL_JOB_ID = "channel_refresh"
GUIDE_JOB_ID = "guide_refresh"


class RefreshScheduler:
    """Scheduler for automatic channel and guide refreshes"""

    def __init__(
        self,
        directory: ChannelDirectory,
        guide: GuideCache,
        coordinator: RefreshCoordinator,
        *,
        retry_wait: float = 30.0,
        misfire_grace_sec: int = 600,
    ):
        self.directory = directory
        self.guide = guide
        self.coordinator = coordinator
        self.retry_wait = retry_wait
        self.misfire_grace_sec = misfire_grace_sec
        self.scheduler: AsyncIOScheduler | None = None

    async def _channel_job(self, max_retries: int) -> None:
        """Background job that refreshes the channel directory"""
        logger.info("Scheduled channel refresh triggered")
        result = await self.coordinator.execute(
            "channels",
            lambda: self.directory.refresh_with_retry(max_retries, self.retry_wait),
        )
        if result["status"] != "success":
            return
        if not result["result"]:
            logger.error("Scheduled channel refresh gave up for this cycle")
        elif self.guide.current() is None:
            # First channel snapshot: build the guide without waiting for the cron slot
            await self._guide_job()

    async def _guide_job(self) -> None:
        """Background job that refreshes the program guide"""
        logger.info("Scheduled guide refresh triggered")
        try:
            await self.coordinator.execute("epg", lambda: self.guide.refresh(self.directory))
        except IptvError as e:
            logger.error(f"Scheduled guide refresh failed: {e}")
        except Exception as e:
            logger.error(f"Exception in scheduled guide refresh: {e}", exc_info=True)

    def _ensure_scheduler(self) -> AsyncIOScheduler:
        if self.scheduler is None:
            self.scheduler = AsyncIOScheduler(timezone="UTC")
        return self.scheduler

    def start_auto_refresh(self, interval_minutes: int, max_retries: int) -> None:
        """Schedule channel refreshes, the first one immediately"""
        scheduler = self._ensure_scheduler()
        scheduler.add_job(
            self._channel_job,
            trigger=IntervalTrigger(minutes=interval_minutes),
            args=[max_retries],
            id=CHANNEL_JOB_ID,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.misfire_grace_sec,
            next_run_time=datetime.now(timezone.utc),
            replace_existing=True,
        )

    def schedule_guide_refresh(self, cron: str) -> None:
        """Schedule guide refreshes on a crontab expression"""
        try:
            trigger = CronTrigger.from_crontab(cron)
        except (ValueError, KeyError) as exc:
            logger.error("Invalid cron expression '%s': %s", cron, exc)
            raise

        scheduler = self._ensure_scheduler()
        scheduler.add_job(
            self._guide_job,
            trigger=trigger,
            id=GUIDE_JOB_ID,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.misfire_grace_sec,
            replace_existing=True,
        )

    def start(self, *, interval_minutes: int, max_retries: int, guide_cron: str) -> None:
        """Start the scheduler with channel and guide jobs"""
        if self.scheduler and self.scheduler.running:
            logger.warning("Scheduler already running")
            return

        self.start_auto_refresh(interval_minutes, max_retries)
        self.schedule_guide_refresh(guide_cron)
        self._ensure_scheduler().start()

        next_channels = self.get_next_run_time(CHANNEL_JOB_ID)
        next_guide = self.get_next_run_time(GUIDE_JOB_ID)
        logger.info(
            "Scheduler started. Next channel refresh: %s, next guide refresh: %s",
            next_channels.isoformat() if next_channels else "unknown",
            next_guide.isoformat() if next_guide else "unknown",
        )

    def shutdown(self) -> None:
        """Shutdown the scheduler"""
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Scheduler stopped")
        self.scheduler = None

    @property
    def running(self) -> bool:
        return bool(self.scheduler and self.scheduler.running)

    def get_next_run_time(self, job_id: str) -> datetime | None:
        """Get next scheduled run time of a job"""
        if not self.scheduler:
            return None
        job = self.scheduler.get_job(job_id)
        return job.next_run_time if job else None
