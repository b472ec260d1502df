"""
Real Estate CRM - Notification routes
Inbox of the current user (read / archive) and the reminder timeline setting.
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from models import MarkReadRequest, ReminderTimeline, ReminderTimelineUpdate
from routes.auth import get_current_user
from services.reminder_intervals import DEFAULT_REMINDER_INTERVALS, resolve_intervals
from services.stores import notification_store, user_store

router = APIRouter(prefix="/notifications", tags=["Notifications"])


def get_notification_store():
    return notification_store


def get_user_store():
    return user_store


# ==================== INBOX ====================

@router.get("")
async def list_notifications(
    limit: int = Query(20, ge=1, le=100),
    skip: int = Query(0, ge=0),
    unread_only: bool = False,
    user: dict = Depends(get_current_user),
    store=Depends(get_notification_store)
):
    notifications = await store.list_for_user(
        user.get("company_id", ""), user["id"], limit=limit, skip=skip, unread_only=unread_only
    )
    unread = await store.get_unread_count(user.get("company_id", ""), user["id"])
    return {"notifications": notifications, "count": len(notifications), "unread_count": unread}


@router.get("/unread-count")
async def unread_count(user: dict = Depends(get_current_user), store=Depends(get_notification_store)):
    return {"unread_count": await store.get_unread_count(user.get("company_id", ""), user["id"])}


@router.post("/read")
async def mark_read(
    data: MarkReadRequest,
    user: dict = Depends(get_current_user),
    store=Depends(get_notification_store)
):
    updated = await store.mark_as_read(data.notification_ids, user["id"])
    return {"success": True, "updated": updated}


@router.post("/read-all")
async def mark_all_read(user: dict = Depends(get_current_user), store=Depends(get_notification_store)):
    updated = await store.mark_all_as_read(user.get("company_id", ""), user["id"])
    return {"success": True, "updated": updated}


@router.post("/{notification_id}/archive")
async def archive_notification(
    notification_id: str,
    user: dict = Depends(get_current_user),
    store=Depends(get_notification_store)
):
    if not await store.archive(notification_id, user["id"]):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True}


# ==================== REMINDER TIMELINE ====================

@router.get("/settings/reminder-timeline")
async def get_reminder_timeline(user: dict = Depends(get_current_user), users=Depends(get_user_store)):
    """The user's ladder plus the one actually in effect"""
    timeline = await users.get_reminder_timeline(user["id"]) or ReminderTimeline()
    effective, uses_default = resolve_intervals(timeline)
    return {
        "reminder_timeline": timeline.model_dump(),
        "effective_intervals": [i.model_dump() for i in effective],
        "uses_default": uses_default,
        "default_intervals": [i.model_dump() for i in DEFAULT_REMINDER_INTERVALS],
    }


@router.put("/settings/reminder-timeline")
async def update_reminder_timeline(
    data: ReminderTimelineUpdate,
    user: dict = Depends(get_current_user),
    users=Depends(get_user_store)
):
    if data.enabled and not data.intervals:
        raise HTTPException(status_code=400, detail="An enabled timeline needs at least one interval")

    hours = [i.hours for i in data.intervals]
    if len(set(hours)) != len(hours):
        raise HTTPException(status_code=400, detail="Interval hours must be unique")

    timeline = ReminderTimeline(enabled=data.enabled, intervals=data.intervals)
    if not await users.update_reminder_timeline(user["id"], timeline):
        raise HTTPException(status_code=404, detail="User not found")

    return {"success": True, "reminder_timeline": timeline.model_dump()}
