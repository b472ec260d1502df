"""
Real Estate CRM - Notification model

Persisted in the `notifications` collection. Immutable once created except for
is_read / read_at / is_archived, which only the recipient changes.
expires_at is a BSON date: the TTL index drops the document after 30 days.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class NotificationType(str, Enum):
    LEAD = "lead"
    PROPERTY = "property"
    TASK = "task"
    SYSTEM = "system"
    PLATFORM_INTEGRATION = "platform_integration"
    LEAD_ASSIGNMENT = "lead_assignment"
    TASK_ASSIGNMENT = "task_assignment"
    LEAD_REMINDER = "lead_reminder"


class NotificationPlatform(str, Enum):
    WEBSITE = "website"
    GOOGLE_ADS = "google_ads"
    META_ADS = "meta_ads"
    HUBSPOT = "hubspot"
    SALESFORCE = "salesforce"
    ZAPIER = "zapier"
    MANUAL = "manual"
    API = "api"
    SYSTEM = "system"
    WEBHOOK = "webhook"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class NotificationDocument(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    id: str
    company_id: str
    user_id: str
    type: NotificationType
    title: str
    message: str
    platform: NotificationPlatform = NotificationPlatform.MANUAL
    priority: NotificationPriority = NotificationPriority.MEDIUM
    metadata: Dict[str, Any] = Field(default_factory=dict)
    data: Dict[str, Any] = Field(default_factory=dict)
    is_read: bool = False
    is_archived: bool = False
    read_at: Optional[str] = None
    created_at: str
    expires_at: datetime


class MarkReadRequest(BaseModel):
    notification_ids: List[str] = Field(min_length=1)
