"""
Real Estate CRM - User notification settings

users.notification_settings = {
    "email": {"lead_reminders": true, "new_leads": false, ...},
    "reminder_timeline": {
        "enabled": true,
        "intervals": [{"hours": 3, "label": "3 hours"}]
    }
}
"""

from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ReminderInterval(BaseModel):
    """One rung of a reminder ladder: fire once hours_left drops to `hours`"""
    hours: float = Field(gt=0)
    label: str = ""


class ReminderTimeline(BaseModel):
    """
    Per-user override of the default ladder.
    enabled=False (or an empty ladder) means "use the system default".
    """
    model_config = ConfigDict(extra="ignore")

    enabled: bool = False
    intervals: List[ReminderInterval] = []

    @field_validator("enabled", mode="before")
    @classmethod
    def null_enabled(cls, v):
        return False if v is None else v

    @field_validator("intervals", mode="before")
    @classmethod
    def null_intervals(cls, v):
        return [] if v is None else v

    @property
    def uses_default(self) -> bool:
        return not self.enabled or not self.intervals

    def ordered_intervals(self) -> List[ReminderInterval]:
        """Intervals sorted by hours, largest first"""
        return sorted(self.intervals, key=lambda i: i.hours, reverse=True)


class EmailPreferences(BaseModel):
    """Email opt-in per notification category (missing or null = enabled, only false opts out)"""
    model_config = ConfigDict(extra="ignore")

    new_leads: bool = True
    lead_assignments: bool = True
    lead_reminders: bool = True
    task_assignments: bool = True
    new_tasks: bool = True
    new_properties: bool = True
    system_updates: bool = True

    @field_validator("*", mode="before")
    @classmethod
    def null_is_enabled(cls, v):
        return True if v is None else v

    def allows(self, category: str) -> bool:
        return getattr(self, category, True) is not False


class NotificationSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: EmailPreferences = Field(default_factory=EmailPreferences)
    reminder_timeline: ReminderTimeline = Field(default_factory=ReminderTimeline)

    @field_validator("email", "reminder_timeline", mode="before")
    @classmethod
    def null_section(cls, v):
        return {} if v is None else v


class UserDocument(BaseModel):
    """User document as read by the notification core"""
    model_config = ConfigDict(extra="ignore")

    id: str
    company_id: Optional[str] = ""
    name: Optional[str] = ""
    email: Optional[str] = ""
    notification_email: Optional[str] = None
    notification_settings: NotificationSettings = Field(default_factory=NotificationSettings)

    @field_validator("notification_settings", mode="before")
    @classmethod
    def null_settings(cls, v):
        return {} if v is None else v

    @property
    def delivery_email(self) -> Optional[str]:
        return self.notification_email or self.email or None


class ReminderTimelineUpdate(BaseModel):
    """Body of PUT /notifications/settings/reminder-timeline"""
    enabled: bool
    intervals: List[ReminderInterval] = Field(default_factory=list, max_length=10)
