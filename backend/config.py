"""
Configuration and shared helpers
"""

import os
import secrets
from datetime import datetime, timezone
from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
from pathlib import Path

# Load .env
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'realestate_crm')

client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]


# ==================== REMINDERS ====================

# Must stay <= 30 so the smallest default rung (0.5h) is always observed
REMINDER_SCAN_INTERVAL_MINUTES = int(os.environ.get('REMINDER_SCAN_INTERVAL_MINUTES', '30'))
REMINDER_DEDUP_WINDOW_HOURS = float(os.environ.get('REMINDER_DEDUP_WINDOW_HOURS', '2'))
NOTIFICATION_TTL_DAYS = int(os.environ.get('NOTIFICATION_TTL_DAYS', '30'))
DELIVERY_TIMEOUT_SECONDS = float(os.environ.get('DELIVERY_TIMEOUT_SECONDS', '10'))
SCAN_FAILURE_ALERT_THRESHOLD = int(os.environ.get('SCAN_FAILURE_ALERT_THRESHOLD', '3'))
SCHEDULER_TIMEZONE = os.environ.get('SCHEDULER_TIMEZONE', 'UTC')

# Frontend URL (links in reminder emails)
APP_BASE_URL = os.environ.get('APP_BASE_URL', 'http://localhost:5173')

CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')


# ==================== HELPERS ====================

def generate_token() -> str:
    """Secure random token (sessions, websocket session ids)"""
    return secrets.token_urlsafe(32)

def utcnow() -> datetime:
    """Current time, timezone-aware UTC"""
    return datetime.now(timezone.utc)

def now_iso() -> str:
    """Current time as an ISO string"""
    return utcnow().isoformat()

def parse_iso(value) -> datetime:
    """
    Parse a stored timestamp into an aware UTC datetime.

    Accepts ISO strings (as written by now_iso) and datetimes (BSON dates come
    back naive from Motor and are UTC). Raises ValueError on anything else.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        dt = datetime.fromisoformat(raw)
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
