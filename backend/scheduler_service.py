"""
Scheduler for the Real Estate CRM background jobs
- Reminder scan every REMINDER_SCAN_INTERVAL_MINUTES (first run at startup)
- Hourly maintenance: expired dedup keys, stale presence entries
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import (
    REMINDER_SCAN_INTERVAL_MINUTES,
    SCAN_FAILURE_ALERT_THRESHOLD,
    SCHEDULER_TIMEZONE,
    db,
    now_iso,
)
from email_service import email_service
from services.presence import presence_tracker
from services.reminder_service import reminder_service

logger = logging.getLogger("scheduler")

REMINDER_JOB_ID = "reminder_scan"
CLEANUP_JOB_ID = "reminder_cleanup"


class TaskScheduler:
    """Scheduled jobs of the reminder core"""

    def __init__(self, reminder_service, presence, db, email_sender,
                 interval_minutes: int = REMINDER_SCAN_INTERVAL_MINUTES,
                 alert_threshold: int = SCAN_FAILURE_ALERT_THRESHOLD):
        self.scheduler = None
        self.reminder_service = reminder_service
        self.presence = presence
        self.db = db
        self.email_sender = email_sender
        self.interval_minutes = interval_minutes
        self.alert_threshold = alert_threshold
        self._inflight = set()

    def start(self):
        """Register the jobs and start the scheduler (inside the running loop)"""
        self.scheduler = AsyncIOScheduler(timezone=SCHEDULER_TIMEZONE)

        # max_instances=1 + coalesce: a slow scan delays the next one, never overlaps it
        self.scheduler.add_job(
            self.run_reminder_scan,
            IntervalTrigger(minutes=self.interval_minutes),
            id=REMINDER_JOB_ID,
            name="Reminder scan",
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
            replace_existing=True
        )

        self.scheduler.add_job(
            self.run_cleanup,
            IntervalTrigger(hours=1),
            id=CLEANUP_JOB_ID,
            name="Reminder cleanup",
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        self.scheduler.start()
        logger.info(f"Scheduler started (reminder scan every {self.interval_minutes} min)")

    async def stop(self):
        """Stop the timer; a scan already running is awaited, not cancelled"""
        if not self.running:
            return

        # no new runs from here on
        self.scheduler.pause()
        if self._inflight:
            logger.info(f"Waiting for {len(self._inflight)} running job(s) before shutdown")
            await asyncio.wait(set(self._inflight))

        self.scheduler.shutdown(wait=False)
        # AsyncIOScheduler.shutdown runs on the next loop iteration
        await asyncio.sleep(0)
        logger.info("Scheduler stopped")

    @property
    def running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running

    def status(self) -> dict:
        job = self.scheduler.get_job(REMINDER_JOB_ID) if self.running else None
        return {
            "running": self.running,
            "interval_minutes": self.interval_minutes,
            "next_run_time": job.next_run_time.isoformat() if job and job.next_run_time else None,
        }

    # ==================== JOBS ====================

    async def run_reminder_scan(self):
        """Job callback: never raises"""
        task = asyncio.current_task()
        self._inflight.add(task)
        try:
            report = await self.reminder_service.check_reminders()
            if report.failed and self.reminder_service.consecutive_failures == self.alert_threshold:
                await self.raise_scan_alert(report.error)
        except Exception as e:
            logger.error(f"Reminder job error: {str(e)}")
        finally:
            self._inflight.discard(task)

    async def run_cleanup(self):
        try:
            now = datetime.now(timezone.utc)
            purged = self.reminder_service.dedup_cache.purge_expired(now)
            stale = self.presence.cleanup(now=now)
            logger.info(f"Cleanup: {purged} dedup keys purged, {stale} presence entries dropped")
        except Exception as e:
            logger.error(f"Cleanup job error: {str(e)}")

    async def raise_scan_alert(self, error: str):
        """Reminder scan failed `alert_threshold` ticks in a row"""
        message = f"Reminder scan failed {self.alert_threshold} times in a row: {error}"
        logger.critical(message)

        await self.db.system_alerts.insert_one({
            "id": str(uuid.uuid4()),
            "level": "CRITICAL",
            "category": "SCHEDULER_ERROR",
            "message": message,
            "details": {"job": REMINDER_JOB_ID, "error": error},
            "created_at": now_iso(),
            "resolved": False
        })

        await asyncio.to_thread(
            self.email_sender.send_critical_alert,
            "SCHEDULER_ERROR",
            message,
            {"job": REMINDER_JOB_ID, "consecutive_failures": self.alert_threshold}
        )


# Global instance
task_scheduler = TaskScheduler(reminder_service, presence_tracker, db, email_service)
