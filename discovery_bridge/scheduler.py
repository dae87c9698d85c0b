"""Background scheduler for periodic sync"""

import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from discovery_bridge.services.runner import SyncAlreadyRunning, SyncRunner

logger = logging.getLogger(__name__)

JOB_ID = "jpd_gitlab_sync"


class SyncScheduler:
    """Scheduler for periodic reconciliation runs"""

    def __init__(self, runner: SyncRunner, interval_minutes: int):
        self.runner = runner
        self.interval_minutes = interval_minutes
        self.scheduler = BackgroundScheduler()

    def start(self):
        """Start the scheduler"""
        self.scheduler.start()
        logger.info("Sync scheduler started")
        self.schedule(self.interval_minutes)

    def stop(self):
        """Stop the scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("Sync scheduler stopped")

    def schedule(self, interval_minutes: int):
        """(Re)schedule the sync job"""
        existing = self.scheduler.get_job(JOB_ID)
        if existing is not None:
            self.scheduler.remove_job(JOB_ID)

        # A run never overlaps the previous one; missed runs collapse into one.
        self.scheduler.add_job(
            func=self._sync_job,
            trigger=IntervalTrigger(minutes=interval_minutes),
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.interval_minutes = interval_minutes
        logger.info(f"Scheduled sync every {interval_minutes} minutes")

    def next_run_time(self) -> Optional[str]:
        job = self.scheduler.get_job(JOB_ID)
        if job is None or job.next_run_time is None:
            return None
        return job.next_run_time.isoformat()

    def _sync_job(self):
        """Job function to run one sync"""
        try:
            logger.info("Running scheduled sync")
            summary = self.runner.run()
            logger.info(f"Scheduled sync finished ({summary.status}): {summary.stats()}")
        except SyncAlreadyRunning:
            logger.info("Skipping scheduled sync: a run is already in progress")
        except Exception as e:
            logger.error(f"Scheduled sync failed: {e}")
