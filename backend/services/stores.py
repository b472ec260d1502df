"""
Real Estate CRM - MongoDB stores used by the reminder core

Thin Motor wrappers around the collections the scheduler reads and writes:
- leads          (pending reminder scan, completion)
- users          (reminder timeline, email preferences)
- notifications  (persisted notifications, recipient read/archive flags)
- sessions       (token -> user for HTTP and websocket auth)
"""

import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional

from config import NOTIFICATION_TTL_DAYS, db, now_iso, utcnow
from models.notification import NotificationDocument
from models.user import ReminderTimeline


PENDING_REMINDER_QUERY = {
    "reminder.date": {"$exists": True, "$ne": None},
    "reminder.is_completed": False,
    "assigned_to": {"$exists": True, "$ne": None},
}


async def ensure_indexes(db):
    await db.leads.create_index("id", unique=True)
    await db.leads.create_index([("reminder.is_completed", 1), ("reminder.date", 1)])
    await db.leads.create_index("assigned_to")
    await db.users.create_index("id", unique=True)
    await db.sessions.create_index("token")
    await db.sessions.create_index("expires_at")
    await db.notifications.create_index("id", unique=True)
    await db.notifications.create_index([("company_id", 1), ("user_id", 1), ("is_read", 1)])
    await db.notifications.create_index([("company_id", 1), ("type", 1), ("created_at", -1)])
    await db.notifications.create_index("expires_at", expireAfterSeconds=0)
    await db.event_log.create_index("created_at")


# ==================== LEADS ====================

class LeadStore:

    def __init__(self, db):
        self.db = db

    async def find_leads_with_pending_reminders(self) -> List[dict]:
        return await self.db.leads.find(PENDING_REMINDER_QUERY, {"_id": 0}).to_list(None)

    async def mark_reminder_completed(self, lead_id: str) -> bool:
        """True only for the call that actually flipped the flag"""
        result = await self.db.leads.update_one(
            {"id": lead_id, "reminder.is_completed": False},
            {"$set": {
                "reminder.is_completed": True,
                "reminder.completed_at": now_iso(),
                "updated_at": now_iso()
            }}
        )
        return result.modified_count == 1

    async def get_lead(self, lead_id: str, company_id: str = None) -> Optional[dict]:
        query = {"id": lead_id}
        if company_id:
            query["company_id"] = company_id
        return await self.db.leads.find_one(query, {"_id": 0})

    async def set_reminder(self, lead_id: str, date_iso: str, message: str = "") -> bool:
        result = await self.db.leads.update_one(
            {"id": lead_id},
            {"$set": {
                "reminder": {"date": date_iso, "message": message, "is_completed": False},
                "updated_at": now_iso()
            }}
        )
        return result.matched_count == 1

    async def clear_reminder(self, lead_id: str) -> bool:
        result = await self.db.leads.update_one(
            {"id": lead_id},
            {"$unset": {"reminder": ""}, "$set": {"updated_at": now_iso()}}
        )
        return result.matched_count == 1


# ==================== USERS ====================

class UserStore:

    def __init__(self, db):
        self.db = db

    async def get_user(self, user_id: str) -> Optional[dict]:
        return await self.db.users.find_one({"id": user_id}, {"_id": 0, "password": 0})

    async def get_reminder_timeline(self, user_id: str) -> Optional[ReminderTimeline]:
        """None when the user does not exist; default (disabled) timeline when unset"""
        user = await self.db.users.find_one(
            {"id": user_id},
            {"_id": 0, "notification_settings.reminder_timeline": 1}
        )
        if user is None:
            return None
        raw = (user.get("notification_settings") or {}).get("reminder_timeline") or {}
        return ReminderTimeline(**raw)

    async def update_reminder_timeline(self, user_id: str, timeline: ReminderTimeline) -> bool:
        result = await self.db.users.update_one(
            {"id": user_id},
            {"$set": {
                "notification_settings.reminder_timeline": timeline.model_dump(),
                "updated_at": now_iso()
            }}
        )
        return result.matched_count == 1


# ==================== NOTIFICATIONS ====================

class NotificationStore:

    def __init__(self, db):
        self.db = db

    async def create_notification(self, fields: Dict[str, Any]) -> dict:
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
        }
        doc.setdefault("expires_at", utcnow() + timedelta(days=NOTIFICATION_TTL_DAYS))
        doc = NotificationDocument(**doc).model_dump()

        # insert_one adds _id to the dict it is given
        await self.db.notifications.insert_one(dict(doc))
        return doc

    def _visible_query(self, company_id: str, user_id: str) -> dict:
        return {
            "company_id": company_id,
            "user_id": user_id,
            "is_archived": False,
            "expires_at": {"$gt": utcnow()},
        }

    async def list_for_user(
        self,
        company_id: str,
        user_id: str,
        limit: int = 20,
        skip: int = 0,
        unread_only: bool = False
    ) -> List[dict]:
        query = self._visible_query(company_id, user_id)
        if unread_only:
            query["is_read"] = False
        return await self.db.notifications.find(query, {"_id": 0}) \
            .sort("created_at", -1) \
            .skip(skip) \
            .limit(limit) \
            .to_list(limit)

    async def get_unread_count(self, company_id: str, user_id: str) -> int:
        query = self._visible_query(company_id, user_id)
        query["is_read"] = False
        return await self.db.notifications.count_documents(query)

    async def mark_as_read(self, notification_ids: List[str], user_id: str) -> int:
        result = await self.db.notifications.update_many(
            {"id": {"$in": notification_ids}, "user_id": user_id, "is_read": False},
            {"$set": {"is_read": True, "read_at": now_iso()}}
        )
        return result.modified_count

    async def mark_all_as_read(self, company_id: str, user_id: str) -> int:
        result = await self.db.notifications.update_many(
            {"company_id": company_id, "user_id": user_id, "is_read": False},
            {"$set": {"is_read": True, "read_at": now_iso()}}
        )
        return result.modified_count

    async def archive(self, notification_id: str, user_id: str) -> bool:
        result = await self.db.notifications.update_one(
            {"id": notification_id, "user_id": user_id},
            {"$set": {"is_archived": True}}
        )
        return result.matched_count == 1


# ==================== SESSIONS ====================

class SessionStore:

    def __init__(self, db):
        self.db = db

    async def get_user_for_token(self, token: str) -> Optional[dict]:
        session = await self.db.sessions.find_one({
            "token": token,
            "expires_at": {"$gt": now_iso()}
        })
        if not session:
            return None
        return await self.db.users.find_one(
            {"id": session["user_id"]},
            {"_id": 0, "password": 0}
        )


# Global instances
lead_store = LeadStore(db)
user_store = UserStore(db)
notification_store = NotificationStore(db)
session_store = SessionStore(db)
