import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

CYCLE_JOB_ID = "market_sync_cycle"


class SyncScheduler:
    def __init__(self, service, timezone: str = "UTC"):
        self.service = service
        self.timezone = timezone
        self.scheduler = BackgroundScheduler(timezone=timezone)

    def _job(self):
        try:
            report = self.service.run_once()
            if report.skipped:
                logger.info("Scheduled sync skipped, previous cycle still running")
        except Exception as e:
            logger.exception(f"Scheduled sync failed: {e}")

    def start(self, cron: str, run_on_start: bool = False):
        trigger = CronTrigger.from_crontab(cron, timezone=self.timezone)
        # One instance at a time; missed fire times collapse into one run.
        self.scheduler.add_job(
            self._job,
            trigger,
            id=CYCLE_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        if run_on_start:
            self.scheduler.add_job(self._job, id=f"{CYCLE_JOB_ID}_initial", replace_existing=True)

        if not self.scheduler.running:
            self.scheduler.start()
        logger.info(f"Sync scheduled with cron '{cron}' ({self.timezone})")

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
