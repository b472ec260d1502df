"""
Real Estate CRM - System Health Endpoint
Reminder core state: scheduler, last scan, dedup cache, delivery channels, presence.
"""

from fastapi import APIRouter, Depends, Query

from config import now_iso
from routes.auth import get_current_user, require_admin
from scheduler_service import task_scheduler
from services.notification_service import notification_service
from services.presence import presence_tracker
from services.reminder_service import reminder_service

router = APIRouter(prefix="/system", tags=["System"])


def get_task_scheduler():
    return task_scheduler


def get_reminder_service():
    return reminder_service


def get_notification_service():
    return notification_service


def get_presence_tracker():
    return presence_tracker


@router.get("/reminders")
async def reminder_health(
    user: dict = Depends(require_admin),
    scheduler=Depends(get_task_scheduler),
    reminders=Depends(get_reminder_service),
    notifications=Depends(get_notification_service),
    presence=Depends(get_presence_tracker)
):
    """
    Aggregated reminder health:
    - scheduler state and next run
    - last scan report, consecutive failed scans
    - dedup cache size
    - per-channel delivery counters and last errors
    - presence stats
    """
    scan = reminders.status()
    delivery = notifications.stats.snapshot()

    status = "healthy"
    if not scheduler.status()["running"]:
        status = "stopped"
    elif scan["consecutive_failures"] > 0 or delivery["channels"]["persist"]["failed"] > 0:
        status = "degraded"

    return {
        "status": status,
        "timestamp": now_iso(),
        "scheduler": scheduler.status(),
        "scan": scan,
        "delivery": delivery,
        "presence": presence.get_stats(),
    }


@router.get("/presence")
async def online_users(
    active_minutes: int = Query(None, ge=1, le=1440),
    user: dict = Depends(get_current_user),
    presence=Depends(get_presence_tracker)
):
    """Online members of the current user's company"""
    if active_minutes:
        company_online = {u["user_id"] for u in presence.get_online_users(user.get("company_id"))}
        users = [u for u in presence.get_active_users(active_minutes) if u["user_id"] in company_online]
    else:
        users = presence.get_online_users(user.get("company_id"))
    return {"users": users, "count": len(users)}
