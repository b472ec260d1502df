"""
Real Estate CRM - Notification dedup cache

Process-local, time-windowed set of "already sent" reminder keys.
Lost on restart: a restart inside a window can re-send one reminder.

check_and_record() is the only write path and runs the check and the insert
under one lock, so two overlapping scans can never both win the same key.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Dict

logger = logging.getLogger("dedup_cache")


class NotificationDedupCache:

    def __init__(self, default_window_hours: float = 2.0):
        self.default_window = timedelta(hours=default_window_hours)
        self._expiry: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    def check_and_record(self, key: str, now: datetime, hold_hours: float = None) -> bool:
        """
        Atomically claim `key`.
        Returns True if the caller may send (key was absent or expired),
        False if a notification for this key is still inside its window.
        """
        hold = timedelta(hours=hold_hours) if hold_hours is not None else self.default_window
        with self._lock:
            expires_at = self._expiry.get(key)
            if expires_at is not None and expires_at > now:
                return False
            self._expiry[key] = now + hold
            return True

    def release(self, key: str):
        """Drop a claim (the send it guarded never happened)"""
        with self._lock:
            self._expiry.pop(key, None)

    def release_where(self, predicate) -> int:
        """Drop every claim whose key matches `predicate`"""
        with self._lock:
            keys = [k for k in self._expiry if predicate(k)]
            for key in keys:
                del self._expiry[key]
        return len(keys)

    def is_suppressed(self, key: str, now: datetime) -> bool:
        with self._lock:
            expires_at = self._expiry.get(key)
            return expires_at is not None and expires_at > now

    def purge_expired(self, now: datetime) -> int:
        with self._lock:
            expired = [k for k, exp in self._expiry.items() if exp <= now]
            for key in expired:
                del self._expiry[key]
        if expired:
            logger.debug(f"Purged {len(expired)} expired reminder keys")
        return len(expired)

    def clear(self):
        with self._lock:
            self._expiry.clear()

    def __len__(self) -> int:
        return len(self._expiry)
