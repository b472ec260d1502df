"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Real Estate CRM - Lead model (reminder fields)                              ║
║                                                                              ║
║  RULES:                                                                      ║
║  1. At most ONE reminder per lead (not a list)                               ║
║  2. A reminder is created in the future, never in the past                   ║
║  3. is_completed flips to true by user action OR by the reminder scan        ║
║     once the due time has passed                                             ║
║  4. Leads without assigned_to are never scanned                              ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from datetime import datetime, timezone
from pydantic import BaseModel, field_validator

from config import utcnow


class ReminderSet(BaseModel):
    """Body of PUT /leads/{id}/reminder"""
    date: datetime
    message: str = ""

    @field_validator("date")
    @classmethod
    def validate_future_date(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        v = v.astimezone(timezone.utc)
        if v <= utcnow():
            raise ValueError("Reminder date must be in the future")
        return v

    @field_validator("message")
    @classmethod
    def strip_message(cls, v: str) -> str:
        return v.strip()
