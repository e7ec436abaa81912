"""Background scheduler for periodic sync"""

import logging
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from prioritysync.config import Settings
from prioritysync.runner import run_once

logger = logging.getLogger(__name__)

JOB_ID = "priority_sync"


class SyncScheduler:
    """Runs the priority sync every `sync_interval_minutes`, one run at a time"""

    def __init__(self, settings: Settings, session_factory: Optional[Callable[[], Session]] = None):
        self.settings = settings
        self.session_factory = session_factory
        self.scheduler = BackgroundScheduler()

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            func=self._sync_job,
            trigger=IntervalTrigger(minutes=self.settings.sync_interval_minutes),
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(f"Sync scheduler started, running every {self.settings.sync_interval_minutes} minutes")

    def stop(self):
        """Stop the scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("Sync scheduler stopped")

    def _sync_job(self):
        """Job function to run one sync"""
        try:
            logger.info("Running scheduled priority sync")
            result = run_once(self.settings, self.session_factory)
            logger.info(f"Scheduled sync completed: {result}")
        except Exception as e:
            logger.error(f"Scheduled sync failed: {e}")
