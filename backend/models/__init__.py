"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Real Estate CRM - Models Package                                            ║
║                                                                              ║
║  from models import ReminderSet, ReminderTimeline, NotificationType, ...     ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

# Lead
from .lead import (
    ReminderSet,
)

# User
from .user import (
    ReminderInterval,
    ReminderTimeline,
    EmailPreferences,
    NotificationSettings,
    UserDocument,
    ReminderTimelineUpdate,
)

# Notification
from .notification import (
    NotificationType,
    NotificationPlatform,
    NotificationPriority,
    NotificationDocument,
    MarkReadRequest,
)

__all__ = [
    # Lead
    "ReminderSet",
    # User
    "ReminderInterval",
    "ReminderTimeline",
    "EmailPreferences",
    "NotificationSettings",
    "UserDocument",
    "ReminderTimelineUpdate",
    # Notification
    "NotificationType",
    "NotificationPlatform",
    "NotificationPriority",
    "NotificationDocument",
    "MarkReadRequest",
]
