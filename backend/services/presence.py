"""
Real Estate CRM - User presence tracker

In-memory map user -> {status, last_seen, session_id, company_id}, plus the
reverse index session -> user. One entry per user: a new session overwrites the
previous one (most recent session wins). Valid for a single process only.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from config import utcnow

logger = logging.getLogger("presence")

ONLINE = "online"
OFFLINE = "offline"


class PresenceTracker:

    def __init__(self):
        self._statuses: Dict[str, dict] = {}
        self._sessions: Dict[str, str] = {}
        self._lock = threading.Lock()

    # ==================== WRITES ====================

    def set_online(self, user_id: str, session_id: str, company_id: str = None):
        now = utcnow()
        with self._lock:
            previous = self._statuses.get(user_id)
            if previous and previous.get("session_id"):
                # replaced session no longer maps to this user
                self._sessions.pop(previous["session_id"], None)
            self._statuses[user_id] = {
                "status": ONLINE,
                "last_seen": now,
                "session_id": session_id,
                "company_id": company_id,
            }
            self._sessions[session_id] = user_id
        logger.info(f"User {user_id} is now online (session: {session_id})")

    def set_offline(self, session_id: str) -> Optional[str]:
        """
        Flip the owner of `session_id` offline.
        Returns the user id, or None when the session is unknown or was replaced.
        """
        with self._lock:
            user_id = self._sessions.pop(session_id, None)
            if user_id is None:
                return None
            current = self._statuses.get(user_id, {})
            self._statuses[user_id] = {
                "status": OFFLINE,
                "last_seen": utcnow(),
                "session_id": None,
                "company_id": current.get("company_id"),
            }
        logger.info(f"User {user_id} is now offline")
        return user_id

    def update_last_seen(self, user_id: str):
        with self._lock:
            status = self._statuses.get(user_id)
            if status:
                status["last_seen"] = utcnow()

    # ==================== READS ====================

    def is_online(self, user_id: str) -> bool:
        status = self._statuses.get(user_id)
        return bool(status) and status["status"] == ONLINE

    def get_session_id(self, user_id: str) -> Optional[str]:
        status = self._statuses.get(user_id)
        if not status or status["status"] != ONLINE:
            return None
        return status["session_id"]

    def get_status(self, user_id: str) -> dict:
        status = self._statuses.get(user_id)
        if not status:
            return {"status": OFFLINE, "last_seen": None, "session_id": None}
        return {
            "status": status["status"],
            "last_seen": status["last_seen"],
            "session_id": status["session_id"],
        }

    def get_statuses(self, user_ids: Iterable[str]) -> Dict[str, dict]:
        return {user_id: self.get_status(user_id) for user_id in user_ids}

    def get_online_users(self, company_id: str = None) -> List[dict]:
        with self._lock:
            items = list(self._statuses.items())
        return [
            {"user_id": user_id, "last_seen": status["last_seen"]}
            for user_id, status in items
            if status["status"] == ONLINE
            and (company_id is None or status.get("company_id") == company_id)
        ]

    def get_active_users(self, minutes: int = 5, now: datetime = None) -> List[dict]:
        """Online users seen within the last `minutes`"""
        threshold = (now or utcnow()) - timedelta(minutes=minutes)
        return [u for u in self.get_online_users() if u["last_seen"] > threshold]

    def get_stats(self) -> dict:
        total = len(self._statuses)
        online = len(self.get_online_users())
        return {
            "total_users": total,
            "online_users": online,
            "offline_users": total - online,
        }

    # ==================== MAINTENANCE ====================

    def cleanup(self, max_offline_hours: float = 24, now: datetime = None) -> int:
        """Drop offline entries not seen for `max_offline_hours`"""
        threshold = (now or utcnow()) - timedelta(hours=max_offline_hours)
        with self._lock:
            stale = [
                user_id for user_id, status in self._statuses.items()
                if status["status"] == OFFLINE and status["last_seen"] < threshold
            ]
            for user_id in stale:
                del self._statuses[user_id]
        if stale:
            logger.info(f"Cleaned up {len(stale)} stale presence entries")
        return len(stale)


# Global instance
presence_tracker = PresenceTracker()
