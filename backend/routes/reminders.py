"""
Real Estate CRM - Lead reminder routes
Set / clear / complete the single reminder of a lead.
"""

import logging
from fastapi import APIRouter, Depends, HTTPException

from models import ReminderSet
from routes.auth import get_current_user
from services.event_logger import log_event
from services.reminder_service import reminder_service
from services.stores import lead_store

router = APIRouter(tags=["Reminders"])
logger = logging.getLogger("reminders")


def get_lead_store():
    return lead_store


def get_reminder_service():
    return reminder_service


def get_audit():
    return log_event


async def _get_company_lead(leads, lead_id: str, user: dict) -> dict:
    lead = await leads.get_lead(lead_id, user.get("company_id"))
    if not lead:
        raise HTTPException(status_code=404, detail="Lead not found")
    return lead


@router.put("/leads/{lead_id}/reminder")
async def set_reminder(
    lead_id: str,
    data: ReminderSet,
    user: dict = Depends(get_current_user),
    leads=Depends(get_lead_store),
    reminders=Depends(get_reminder_service),
    audit=Depends(get_audit)
):
    """Set (or replace) the lead's reminder. The date must be in the future."""
    lead = await _get_company_lead(leads, lead_id, user)
    if not lead.get("assigned_to"):
        logger.warning(f"Reminder set on unassigned lead {lead_id}: it will not be scanned")

    date_iso = data.date.isoformat()
    await leads.set_reminder(lead_id, date_iso, data.message)
    # a new date starts a fresh ladder
    reminders.forget_lead(lead_id)

    await audit(
        "reminder_set", "lead", lead_id,
        user=user["id"],
        company_id=lead.get("company_id", ""),
        details={"date": date_iso, "message": data.message}
    )
    return {
        "success": True,
        "reminder": {"date": date_iso, "message": data.message, "is_completed": False},
    }


@router.delete("/leads/{lead_id}/reminder")
async def clear_reminder(
    lead_id: str,
    user: dict = Depends(get_current_user),
    leads=Depends(get_lead_store),
    reminders=Depends(get_reminder_service),
    audit=Depends(get_audit)
):
    lead = await _get_company_lead(leads, lead_id, user)
    await leads.clear_reminder(lead_id)
    reminders.forget_lead(lead_id)

    await audit("reminder_cleared", "lead", lead_id, user=user["id"], company_id=lead.get("company_id", ""))
    return {"success": True}


@router.post("/leads/{lead_id}/reminder/complete")
async def complete_reminder(
    lead_id: str,
    user: dict = Depends(get_current_user),
    leads=Depends(get_lead_store),
    audit=Depends(get_audit)
):
    """Mark the reminder done by hand. Idempotent."""
    lead = await _get_company_lead(leads, lead_id, user)
    if not lead.get("reminder"):
        raise HTTPException(status_code=400, detail="Lead has no reminder")

    flipped = await leads.mark_reminder_completed(lead_id)
    if flipped:
        await audit("reminder_completed", "lead", lead_id, user=user["id"], company_id=lead.get("company_id", ""))
    return {"success": True, "completed": flipped}
