"""
Real Estate CRM - Notification delivery (fan-out)

A fired reminder produces up to three independent effects:
1. persisted notification (durable, what the user sees on next login)
2. real-time push to the user's live session (no-op when offline)
3. email, when the user has the category enabled

Each channel is bounded by DELIVERY_TIMEOUT_SECONDS and fails on its own:
a failed email never undoes the persisted notification, a failed persist
never blocks the push. Nothing is retried; failures are logged, counted in
DeliveryStats and written to the audit trail.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Optional

from config import DELIVERY_TIMEOUT_SECONDS, now_iso, utcnow
from email_service import email_service
from models.notification import NotificationPlatform, NotificationPriority, NotificationType
from models.user import UserDocument
from services.errors import DeliveryError
from services.event_logger import log_event
from services.realtime import connection_manager
from services.reminder_intervals import ReminderDecision
from services.stores import notification_store

logger = logging.getLogger("notification_service")

REMINDER_TITLE = "Lead Reminder"

PERSIST = "persist"
PUSH = "push"
EMAIL = "email"
CHANNELS = (PERSIST, PUSH, EMAIL)

# notification type -> users.notification_settings.email.<category>
EMAIL_CATEGORIES = {
    NotificationType.LEAD_REMINDER.value: "lead_reminders",
    NotificationType.LEAD_ASSIGNMENT.value: "lead_assignments",
    NotificationType.TASK_ASSIGNMENT.value: "task_assignments",
    NotificationType.LEAD.value: "new_leads",
    NotificationType.PLATFORM_INTEGRATION.value: "new_leads",
    NotificationType.PROPERTY.value: "new_properties",
    NotificationType.TASK.value: "new_tasks",
    NotificationType.SYSTEM.value: "system_updates",
}


def get_category_for_type(notification_type: str) -> str:
    return EMAIL_CATEGORIES.get(notification_type, "new_leads")


def email_enabled_for(user: dict, category: str) -> bool:
    return UserDocument(**user).notification_settings.email.allows(category)


def reminder_priority(hours: int) -> str:
    if hours <= 2:
        return NotificationPriority.HIGH.value
    if hours <= 24:
        return NotificationPriority.MEDIUM.value
    return NotificationPriority.LOW.value


# ==================== RESULTS / STATS ====================

@dataclass
class DeliveryResult:
    notification: Optional[dict] = None
    persisted: bool = False
    pushed: bool = False
    emailed: bool = False
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def delivered(self) -> bool:
        """At least one channel reached the user"""
        return self.persisted or self.pushed or self.emailed


class DeliveryStats:
    """Per-channel counters, exposed on /system/reminders"""

    def __init__(self):
        self.reset()

    def reset(self):
        self.counters = {c: {"sent": 0, "skipped": 0, "failed": 0} for c in CHANNELS}
        self.last_errors: Dict[str, dict] = {}

    def record(self, channel: str, outcome: str, error: str = None):
        self.counters[channel][outcome] += 1
        if outcome == "failed":
            self.last_errors[channel] = {"error": error, "at": now_iso()}

    def snapshot(self) -> dict:
        return {
            "channels": {c: dict(v) for c, v in self.counters.items()},
            "last_errors": dict(self.last_errors),
        }


# ==================== SERVICE ====================

class NotificationService:

    def __init__(
        self,
        notification_store,
        transport,
        email_sender,
        audit: Callable = None,
        timeout: float = DELIVERY_TIMEOUT_SECONDS
    ):
        self.notification_store = notification_store
        self.transport = transport
        self.email_sender = email_sender
        self.audit = audit
        self.timeout = timeout
        self.stats = DeliveryStats()

    def build_reminder_notification(self, lead: dict, user: dict, decision: ReminderDecision, now: datetime = None) -> dict:
        reminder = lead.get("reminder") or {}
        hours = math.ceil(decision.hours_left)
        hours_text = f"{hours} hour left" if hours == 1 else f"{hours} hours left"
        interval = decision.interval

        return {
            "company_id": lead.get("company_id"),
            "user_id": user["id"],
            "type": NotificationType.LEAD_REMINDER.value,
            "title": REMINDER_TITLE,
            "message": f"Reminder: {lead.get('name', '')} - {reminder.get('message') or 'Follow up required'} ({hours_text})",
            "platform": NotificationPlatform.SYSTEM.value,
            "priority": reminder_priority(hours),
            "metadata": {
                "lead_id": lead["id"],
                "reminder_date": reminder.get("date"),
                "hours_left": round(decision.hours_left, 2),
                "interval_hours": interval.hours if interval else None,
                "interval_label": interval.label if interval else None,
                "fired_at": (now or utcnow()).isoformat(),
            },
            "data": {
                "lead_name": lead.get("name"),
                "lead_email": lead.get("email"),
                "lead_phone": lead.get("phone"),
                "lead_source": lead.get("source"),
                "lead_status": lead.get("status"),
                "reminder_message": reminder.get("message"),
                "reminder_date": reminder.get("date"),
                "hours_left": hours,
            },
        }

    async def deliver_lead_reminder(
        self,
        lead: dict,
        user: dict,
        decision: ReminderDecision,
        now: datetime = None
    ) -> DeliveryResult:
        """Fan out one fired reminder. Never raises: channel failures land in result.errors"""
        result = DeliveryResult()
        fields = self.build_reminder_notification(lead, user, decision, now)
        user_id = user["id"]

        # 1. Persist
        try:
            result.notification = await asyncio.wait_for(
                self.notification_store.create_notification(fields), self.timeout
            )
            result.persisted = True
            self.stats.record(PERSIST, "sent")
        except Exception as e:
            await self._channel_failed(result, PERSIST, e, lead, user_id)

        payload = result.notification or fields

        # 2. Push
        try:
            pushed = await asyncio.wait_for(
                self.transport.push_to_user(user_id, {"type": "notification", "data": payload}),
                self.timeout
            )
            result.pushed = bool(pushed)
            self.stats.record(PUSH, "sent" if pushed else "skipped")
            if not pushed:
                logger.debug(f"User {user_id} offline, push skipped for lead {lead['id']}")
        except Exception as e:
            await self._channel_failed(result, PUSH, e, lead, user_id)

        # 3. Email
        await self._send_email(result, payload, lead, user)

        logger.info(
            f"Reminder delivered for lead {lead['id']} to user {user_id}: "
            f"persisted={result.persisted} pushed={result.pushed} emailed={result.emailed}"
        )
        return result

    async def _send_email(self, result: DeliveryResult, notification: dict, lead: dict, user: dict):
        category = get_category_for_type(notification.get("type", ""))

        try:
            # a malformed user document only costs the email channel
            profile = UserDocument(**user)
            to_email = profile.delivery_email
            if not to_email:
                logger.debug(f"No email address for user {user['id']}")
                self.stats.record(EMAIL, "skipped")
                return
            if not profile.notification_settings.email.allows(category):
                logger.debug(f"Email disabled for user {user['id']} ({category})")
                self.stats.record(EMAIL, "skipped")
                return

            subject, html_content, text_content = self.email_sender.render_reminder_email(notification, lead)
            # SendGrid client is blocking
            response = await asyncio.wait_for(
                asyncio.to_thread(self.email_sender.send_email, to_email, subject, html_content, text_content),
                self.timeout
            )
            if not response.get("success"):
                raise DeliveryError(EMAIL, response.get("error") or "unknown email error")
            result.emailed = True
            self.stats.record(EMAIL, "sent")
        except Exception as e:
            await self._channel_failed(result, EMAIL, e, lead, user["id"])

    async def _channel_failed(self, result: DeliveryResult, channel: str, error: Exception, lead: dict, user_id: str):
        if isinstance(error, asyncio.TimeoutError):
            reason = f"timeout after {self.timeout}s"
        elif isinstance(error, DeliveryError):
            reason = error.reason
        else:
            reason = str(error) or error.__class__.__name__

        result.errors[channel] = reason
        self.stats.record(channel, "failed", reason)
        logger.error(f"❌ {channel} failed for lead {lead.get('id')} (user {user_id}): {reason}")

        if self.audit is None:
            return
        try:
            await self.audit(
                "reminder_delivery_failed",
                "lead",
                lead.get("id"),
                user=user_id,
                company_id=lead.get("company_id") or "",
                details={"channel": channel, "error": reason}
            )
        except Exception as e:
            logger.warning(f"Audit write failed: {str(e)}")


# Global instance
notification_service = NotificationService(
    notification_store,
    connection_manager,
    email_service,
    audit=log_event
)
