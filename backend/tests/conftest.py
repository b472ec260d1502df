"""
Shared fixtures: in-memory stores, email sender, websocket and audit recorder.
No MongoDB, no SendGrid: every collaborator of the reminder core is faked here.
"""

import asyncio
import copy
import time
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from config import now_iso, utcnow
from email_service import EmailService
from models import NotificationDocument, ReminderTimeline
from services.dedup_cache import NotificationDedupCache
from services.notification_service import NotificationService
from services.presence import PresenceTracker
from services.realtime import ConnectionManager
from services.reminder_service import ReminderService

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)
COMPANY_ID = "company-1"


def at(hours: float) -> datetime:
    """NOW shifted by `hours`"""
    return NOW + timedelta(hours=hours)


def make_lead(lead_id="lead-1", due=None, assigned_to="user-1", message="Call back about the flat",
              company_id=COMPANY_ID, is_completed=False):
    lead = {
        "id": lead_id,
        "company_id": company_id,
        "name": f"Lead {lead_id}",
        "email": f"{lead_id}@example.com",
        "phone": "+33600000000",
        "source": "website",
        "status": "new",
        "assigned_to": assigned_to,
    }
    if due is not None:
        lead["reminder"] = {
            "date": due.isoformat() if isinstance(due, datetime) else due,
            "message": message,
            "is_completed": is_completed,
        }
    return lead


def make_user(user_id="user-1", intervals=None, enabled=True, email_prefs=None,
              notification_email=None, company_id=COMPANY_ID, role="agent"):
    settings = {"email": email_prefs or {}}
    if intervals is not None:
        settings["reminder_timeline"] = {"enabled": enabled, "intervals": intervals}
    return {
        "id": user_id,
        "company_id": company_id,
        "name": f"User {user_id}",
        "email": f"{user_id}@agency.example",
        "notification_email": notification_email,
        "role": role,
        "notification_settings": settings,
    }


# ==================== FAKE STORES ====================

class FakeLeadStore:

    def __init__(self, leads=None):
        self.leads = {lead["id"]: lead for lead in leads or []}
        self.fail_with = None
        self.completed_calls = []

    def add(self, lead):
        self.leads[lead["id"]] = lead
        return lead

    async def find_leads_with_pending_reminders(self):
        await asyncio.sleep(0)
        if self.fail_with:
            raise self.fail_with
        return [
            copy.deepcopy(lead) for lead in self.leads.values()
            if lead.get("reminder")
            and lead["reminder"].get("date") is not None
            and lead["reminder"].get("is_completed") is False
            and lead.get("assigned_to") is not None
        ]

    async def mark_reminder_completed(self, lead_id):
        await asyncio.sleep(0)
        self.completed_calls.append(lead_id)
        reminder = (self.leads.get(lead_id) or {}).get("reminder")
        if not reminder or reminder.get("is_completed"):
            return False
        reminder["is_completed"] = True
        reminder["completed_at"] = now_iso()
        return True

    async def get_lead(self, lead_id, company_id=None):
        lead = self.leads.get(lead_id)
        if not lead or (company_id and lead.get("company_id") != company_id):
            return None
        return copy.deepcopy(lead)

    async def set_reminder(self, lead_id, date_iso, message=""):
        if lead_id not in self.leads:
            return False
        self.leads[lead_id]["reminder"] = {"date": date_iso, "message": message, "is_completed": False}
        return True

    async def clear_reminder(self, lead_id):
        if lead_id not in self.leads:
            return False
        self.leads[lead_id].pop("reminder", None)
        return True


class FakeUserStore:

    def __init__(self, users=None):
        self.users = {user["id"]: user for user in users or []}

    def add(self, user):
        self.users[user["id"]] = user
        return user

    async def get_user(self, user_id):
        await asyncio.sleep(0)
        user = self.users.get(user_id)
        return copy.deepcopy(user) if user else None

    async def get_reminder_timeline(self, user_id):
        await asyncio.sleep(0)
        user = self.users.get(user_id)
        if user is None:
            return None
        raw = (user.get("notification_settings") or {}).get("reminder_timeline") or {}
        return ReminderTimeline(**raw)

    async def update_reminder_timeline(self, user_id, timeline):
        user = self.users.get(user_id)
        if user is None:
            return False
        user.setdefault("notification_settings", {})["reminder_timeline"] = timeline.model_dump()
        return True


class FakeNotificationStore:

    def __init__(self):
        self.notifications = []
        self.fail_with = None
        self.delay = 0

    async def create_notification(self, fields):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with:
            raise self.fail_with
        doc = {
            "id": str(uuid.uuid4()),
            "platform": "manual",
            "priority": "medium",
            "metadata": {},
            "data": {},
            **fields,
            "is_read": False,
            "is_archived": False,
            "read_at": None,
            "created_at": now_iso(),
            "expires_at": utcnow() + timedelta(days=30),
        }
        doc = NotificationDocument(**doc).model_dump()
        self.notifications.append(doc)
        return doc

    def _visible(self, company_id, user_id):
        return [
            n for n in self.notifications
            if n["company_id"] == company_id and n["user_id"] == user_id and not n["is_archived"]
        ]

    async def list_for_user(self, company_id, user_id, limit=20, skip=0, unread_only=False):
        items = self._visible(company_id, user_id)
        if unread_only:
            items = [n for n in items if not n["is_read"]]
        items = sorted(items, key=lambda n: n["created_at"], reverse=True)
        return items[skip:skip + limit]

    async def get_unread_count(self, company_id, user_id):
        return len([n for n in self._visible(company_id, user_id) if not n["is_read"]])

    async def mark_as_read(self, notification_ids, user_id):
        updated = 0
        for n in self.notifications:
            if n["id"] in notification_ids and n["user_id"] == user_id and not n["is_read"]:
                n["is_read"] = True
                n["read_at"] = now_iso()
                updated += 1
        return updated

    async def mark_all_as_read(self, company_id, user_id):
        ids = [n["id"] for n in self._visible(company_id, user_id)]
        return await self.mark_as_read(ids, user_id)

    async def archive(self, notification_id, user_id):
        for n in self.notifications:
            if n["id"] == notification_id and n["user_id"] == user_id:
                n["is_archived"] = True
                return True
        return False


class FakeSessionStore:

    def __init__(self, users_by_token=None):
        self.users_by_token = users_by_token or {}

    async def get_user_for_token(self, token):
        user = self.users_by_token.get(token)
        return copy.deepcopy(user) if user else None


# ==================== FAKE TRANSPORT / EMAIL / AUDIT ====================

class FakeWebSocket:

    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    def of_type(self, event_type):
        return [m for m in self.sent if m.get("type") == event_type]


class FakeEmailSender(EmailService):
    """
    EmailService with the SendGrid call replaced.
    mode: "ok" | "fail" (returns success=False) | "raise" | "slow"
    """

    def __init__(self, mode="ok", delay=0.5):
        super().__init__(api_key="test-key", sender="noreply@test.example", alert_recipient="ops@test.example")
        self.mode = mode
        self.delay = delay
        self.sent = []

    def send_email(self, to_email, subject, html_content, text_content=None):
        if self.mode == "raise":
            raise ConnectionError("SendGrid unreachable")
        if self.mode == "slow":
            time.sleep(self.delay)
        self.sent.append({"to": to_email, "subject": subject, "html": html_content, "text": text_content})
        if self.mode == "fail":
            return {"success": False, "error": "SendGrid status 500"}
        return {"success": True, "error": None}


class AuditRecorder:

    def __init__(self):
        self.events = []

    async def __call__(self, action, entity_type, entity_id, **kwargs):
        self.events.append({"action": action, "entity_type": entity_type, "entity_id": entity_id, **kwargs})

    def actions(self, action):
        return [e for e in self.events if e["action"] == action]


# ==================== FIXTURES ====================

@pytest.fixture
def lead_store():
    return FakeLeadStore()


@pytest.fixture
def user_store():
    return FakeUserStore([make_user()])


@pytest.fixture
def notification_store():
    return FakeNotificationStore()


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def audit():
    return AuditRecorder()


@pytest.fixture
def presence():
    return PresenceTracker()


@pytest.fixture
def manager(presence):
    return ConnectionManager(presence)


@pytest.fixture
def dedup():
    return NotificationDedupCache(default_window_hours=2)


@pytest.fixture
def notification_service(notification_store, manager, email_sender, audit):
    return NotificationService(notification_store, manager, email_sender, audit=audit, timeout=0.2)


@pytest.fixture
def reminder_service(lead_store, user_store, notification_service, dedup, audit):
    return ReminderService(
        lead_store,
        user_store,
        notification_service,
        dedup,
        audit=audit,
        window_hours=2,
        timeout=1
    )
