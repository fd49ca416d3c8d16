"""
Scheduler - Orchestration Layer

Recurring execution of ingestion runs on a daily cadence.
"""

import schedule
import time
from typing import Optional

import logging

from ..transformation.schemas import MasterRunEntry
from .coordinator import RunCoordinator

logger = logging.getLogger(__name__)


class IngestionScheduler:
    """Runs the coordinator every day at a fixed time"""

    def __init__(
        self,
        coordinator: RunCoordinator,
        run_time: str = "06:00",
        concurrency_limit: Optional[int] = None,
        poll_seconds: int = 60,
    ):
        self.coordinator = coordinator
        self.run_time = run_time
        self.concurrency_limit = concurrency_limit
        self.poll_seconds = poll_seconds
        self.scheduler = schedule.Scheduler()
        self.running = False
        self.last_run: Optional[MasterRunEntry] = None

    def run_scheduled_ingestion(self) -> Optional[MasterRunEntry]:
        """Scheduled job: one ingestion run; errors are logged so the loop keeps going"""
        logger.info("🔄 Running scheduled ingestion...")

        try:
            self.last_run = self.coordinator.run_all(self.concurrency_limit)
        except Exception as e:
            logger.error(f"❌ Scheduled ingestion failed: {e}")
            return None

        logger.info(f"✅ Scheduled ingestion finished: {self.last_run.summary()}")
        return self.last_run

    def register_jobs(self):
        """Register the daily ingestion job"""
        self.scheduler.clear()
        self.scheduler.every().day.at(self.run_time).do(self.run_scheduled_ingestion)

    def start(self):
        """Start the scheduler"""
        logger.info("🚀 Starting ingestion scheduler...")

        self.register_jobs()
        self.running = True
        logger.info(f"📅 Scheduler started - Daily ingestion at {self.run_time}")

        try:
            while self.running:
                self.scheduler.run_pending()
                time.sleep(self.poll_seconds)

        except KeyboardInterrupt:
            logger.info("🛑 Scheduler stopped by user")
            self.running = False

    def stop(self):
        """Stop the scheduler"""
        logger.info("🛑 Stopping scheduler...")
        self.running = False

    def run_now(self) -> MasterRunEntry:
        """
        Run ingestion immediately, outside the schedule

        Returns:
            MasterRunEntry: Final master log entry
        """
        logger.info("🔄 Running ingestion now...")
        master = self.coordinator.run_all(self.concurrency_limit)
        self.last_run = master
        logger.info(f"✅ Ingestion completed: {master.summary()}")
        return master


def create_scheduler(
    coordinator: RunCoordinator,
    run_time: str = "06:00",
    concurrency_limit: Optional[int] = None,
) -> IngestionScheduler:
    """
    Create a new ingestion scheduler

    Args:
        coordinator: Coordinator executing each run
        run_time: Daily run time (HH:MM)
        concurrency_limit: Parallel copy tasks per run

    Returns:
        IngestionScheduler: New scheduler instance
    """
    return IngestionScheduler(coordinator, run_time=run_time, concurrency_limit=concurrency_limit)
