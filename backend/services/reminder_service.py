"""
╔══════════════════════════════════════════════════════════════════════╗
║  Real Estate CRM - Reminder scan                                     ║
║                                                                      ║
║  Each tick:                                                          ║
║    1. load leads with a pending reminder AND an assigned owner       ║
║    2. per lead:                                                      ║
║       - hours_left <= 0  -> mark completed (once), no notification   ║
║       - else resolve the owner's ladder, pick one rung               ║
║       - claim (lead, rung) in the dedup cache, then fan out          ║
║    3. per-lead failures are logged and skipped, never fatal          ║
║                                                                      ║
║  A tick that starts while another is running is skipped.             ║
║  check_reminders() never raises.                                     ║
╚══════════════════════════════════════════════════════════════════════╝
"""

import asyncio
import logging
import re
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Callable, Optional

from config import DELIVERY_TIMEOUT_SECONDS, REMINDER_DEDUP_WINDOW_HOURS, now_iso, parse_iso, utcnow
from services.dedup_cache import NotificationDedupCache
from services.errors import ReminderDataError
from services.event_logger import log_event
from services.notification_service import notification_service
from services.reminder_intervals import dedup_key, evaluate_reminder, hours_left
from services.stores import lead_store, user_store

logger = logging.getLogger("reminder_service")

# check_lead_reminder outcomes
FIRED = "fired"
COMPLETED = "completed"
ALREADY_COMPLETED = "already_completed"
SUPPRESSED = "suppressed"
WAITING = "waiting"
UNDELIVERED = "undelivered"


@dataclass
class ScanReport:
    started_at: str
    finished_at: Optional[str] = None
    scanned: int = 0
    fired: int = 0
    completed: int = 0
    suppressed: int = 0
    waiting: int = 0
    undelivered: int = 0
    errors: int = 0
    failed: bool = False
    skipped: bool = False
    error: Optional[str] = None

    def count(self, outcome: str):
        if outcome == FIRED:
            self.fired += 1
        elif outcome == COMPLETED:
            self.completed += 1
        elif outcome == SUPPRESSED:
            self.suppressed += 1
        elif outcome == WAITING:
            self.waiting += 1
        elif outcome == UNDELIVERED:
            self.undelivered += 1

    def to_dict(self) -> dict:
        return asdict(self)


class ReminderService:

    def __init__(
        self,
        lead_store,
        user_store,
        notification_service,
        dedup_cache: NotificationDedupCache = None,
        audit: Callable = None,
        window_hours: float = REMINDER_DEDUP_WINDOW_HOURS,
        timeout: float = DELIVERY_TIMEOUT_SECONDS
    ):
        self.lead_store = lead_store
        self.user_store = user_store
        self.notification_service = notification_service
        self.dedup_cache = dedup_cache if dedup_cache is not None else NotificationDedupCache(window_hours)
        self.audit = audit
        self.window_hours = window_hours
        self.timeout = timeout

        self._scan_lock = asyncio.Lock()
        self.last_report: Optional[ScanReport] = None
        self.consecutive_failures = 0
        self.total_scans = 0

    # ==================== SCAN ====================

    async def check_reminders(self, now: datetime = None) -> ScanReport:
        """One scan tick. `now` pins the clock (tests); default is utcnow() per lead."""
        if self._scan_lock.locked():
            logger.warning("Reminder scan already running, tick skipped")
            return ScanReport(started_at=now_iso(), finished_at=now_iso(), skipped=True)

        async with self._scan_lock:
            report = ScanReport(started_at=now_iso())
            try:
                await self._run_scan(report, now)
            except Exception as e:
                report.failed = True
                report.error = str(e) or e.__class__.__name__
                self.consecutive_failures += 1
                logger.error(
                    f"Reminder scan failed ({self.consecutive_failures} in a row): {report.error}"
                )

            report.finished_at = now_iso()
            self.total_scans += 1
            self.last_report = report
            return report

    async def _run_scan(self, report: ScanReport, now: Optional[datetime]):
        leads = await asyncio.wait_for(self.lead_store.find_leads_with_pending_reminders(), self.timeout)
        self.consecutive_failures = 0
        report.scanned = len(leads)

        for lead in leads:
            lead_id = lead.get("id")
            try:
                outcome = await self.check_lead_reminder(lead, now or utcnow())
                report.count(outcome)
            except ReminderDataError as e:
                report.errors += 1
                logger.error(f"Skipping reminder: {str(e)}")
            except Exception as e:
                report.errors += 1
                logger.error(f"Reminder check failed for lead {lead_id}: {str(e)}")

        logger.info(
            f"Reminder scan: {report.scanned} leads, {report.fired} fired, "
            f"{report.completed} completed, {report.suppressed} suppressed, {report.errors} errors"
        )

    # ==================== PER LEAD ====================

    async def check_lead_reminder(self, lead: dict, now: datetime) -> str:
        lead_id = lead["id"]
        reminder = lead.get("reminder") or {}

        try:
            due = parse_iso(reminder.get("date"))
        except (ValueError, TypeError) as e:
            raise ReminderDataError(lead_id, f"invalid reminder date {reminder.get('date')!r} ({e})")

        if hours_left(due, now) <= 0:
            return await self._retire(lead)

        user_id = lead.get("assigned_to")
        timeline = await asyncio.wait_for(self.user_store.get_reminder_timeline(user_id), self.timeout)
        if timeline is None:
            raise ReminderDataError(lead_id, f"assigned user {user_id} not found")

        decision = evaluate_reminder(due, now, timeline)
        if not decision.should_fire:
            logger.debug(f"Lead {lead_id}: {decision.hours_left:.2f}h left, above every rung")
            return WAITING

        key = dedup_key(lead_id, decision.interval.hours)
        if not self.dedup_cache.check_and_record(key, now, decision.hold_hours(self.window_hours)):
            logger.debug(f"Lead {lead_id}: {key} already sent")
            return SUPPRESSED

        try:
            user = await asyncio.wait_for(self.user_store.get_user(user_id), self.timeout)
            if user is None:
                raise ReminderDataError(lead_id, f"assigned user {user_id} not found")
        except Exception:
            self.dedup_cache.release(key)
            raise

        # past this point a channel may already have delivered: the claim is kept
        # unless the result proves nothing reached the user
        result = await self.notification_service.deliver_lead_reminder(lead, user, decision, now)

        if not result.delivered:
            # nothing reached the user, let the next tick try again
            self.dedup_cache.release(key)
            logger.warning(f"Lead {lead_id}: reminder {key} not delivered on any channel")
            return UNDELIVERED

        logger.info(
            f"⏰ Reminder fired for lead {lead_id} ({decision.interval.label or key}, "
            f"{decision.hours_left:.2f}h left)"
        )
        await self._audit(
            "reminder_fired",
            lead,
            user=user_id,
            details={
                "interval_hours": decision.interval.hours,
                "hours_left": round(decision.hours_left, 2),
                "uses_default": decision.uses_default,
                "persisted": result.persisted,
                "pushed": result.pushed,
                "emailed": result.emailed,
            },
            related={"notification_id": (result.notification or {}).get("id")}
        )
        return FIRED

    async def _retire(self, lead: dict) -> str:
        lead_id = lead["id"]
        flipped = await asyncio.wait_for(self.lead_store.mark_reminder_completed(lead_id), self.timeout)
        if not flipped:
            return ALREADY_COMPLETED

        logger.info(f"Reminder completed for lead {lead_id}")
        await self._audit("reminder_completed", lead, user=lead.get("assigned_to") or "system")
        return COMPLETED

    async def _audit(self, action: str, lead: dict, user: str = "system", details: dict = None, related: dict = None):
        if self.audit is None:
            return
        try:
            await self.audit(
                action,
                "lead",
                lead["id"],
                user=user,
                company_id=lead.get("company_id") or "",
                details=details,
                related=related
            )
        except Exception as e:
            logger.warning(f"Audit write failed ({action}): {str(e)}")

    def forget_lead(self, lead_id: str) -> int:
        """Drop the sent-keys of a lead whose reminder was set again or cleared"""
        pattern = re.compile(rf"reminder_[\d.e+-]+h_{re.escape(lead_id)}")
        return self.dedup_cache.release_where(lambda key: pattern.fullmatch(key) is not None)

    # ==================== STATUS ====================

    def status(self) -> dict:
        return {
            "running": self._scan_lock.locked(),
            "total_scans": self.total_scans,
            "consecutive_failures": self.consecutive_failures,
            "last_report": self.last_report.to_dict() if self.last_report else None,
            "dedup_keys": len(self.dedup_cache),
            "dedup_window_hours": self.window_hours,
        }


# Global instance
reminder_service = ReminderService(
    lead_store,
    user_store,
    notification_service,
    NotificationDedupCache(REMINDER_DEDUP_WINDOW_HOURS),
    audit=log_event
)
