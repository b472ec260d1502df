"""
Real Estate CRM - Reminder audit trail

One document per reminder event in `event_log`:
    reminder_fired            entity=lead, details: rung, hours_left, channels reached
    reminder_completed        entity=lead, due time passed (scan) or user action
    reminder_delivery_failed  entity=lead, details: channel, error
    reminder_set              entity=lead, user edit from PUT /leads/{id}/reminder
    reminder_cleared          entity=lead, user edit from DELETE /leads/{id}/reminder

The scan and the fan-out pass log_event as their `audit` hook and only log a
warning when the write fails.
"""

import uuid
from config import db, now_iso


async def log_event(
    action: str,
    entity_type: str,
    entity_id: str,
    user: str = "system",
    company_id: str = "",
    details: dict = None,
    related: dict = None
):
    """
    Args:
        action: one of the actions listed above
        entity_type: "lead" for every reminder event
        entity_id: the lead id
        user: assigned user id, or "system" when no user is involved
        company_id: tenant of the lead
        details: per-action payload (see module docstring)
        related: linked ids, e.g. notification_id of a fired reminder
    """
    await db.event_log.insert_one({
        "id": str(uuid.uuid4()),
        "action": action,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "company_id": company_id,
        "user": user,
        "details": details or {},
        "related": related or {},
        "created_at": now_iso()
    })
