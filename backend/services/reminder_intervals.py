"""
Real Estate CRM - Reminder interval resolution

Pure decision logic, no I/O:
- hours_left = (reminder.date - now) / 1h, signed
- hours_left <= 0          -> retire the reminder, no notification
- otherwise pick the ladder (user override or DEFAULT_REMINDER_INTERVALS)
  and the rung the lead has most recently crossed: the smallest rung with
  hours >= hours_left. One rung per evaluation, never several.

A lead further out than the largest rung waits (no early heads-up).
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from models.user import ReminderInterval, ReminderTimeline

DEFAULT_REMINDER_INTERVALS = [
    ReminderInterval(hours=24, label="24 hours"),
    ReminderInterval(hours=2, label="2 hours"),
    ReminderInterval(hours=1, label="1 hour"),
    ReminderInterval(hours=0.5, label="30 minutes"),
]

FIRE = "fire"
RETIRE = "retire"
WAIT = "wait"


@dataclass
class ReminderDecision:
    action: str
    hours_left: float
    interval: Optional[ReminderInterval] = None
    # rung below the selected one (0 for the last rung): lower edge of its bracket
    next_lower_hours: float = 0.0
    uses_default: bool = True

    @property
    def should_fire(self) -> bool:
        return self.action == FIRE

    def hold_hours(self, window_hours: float) -> float:
        """How long the (lead, rung) dedup key must be held"""
        return max(window_hours, self.hours_left - self.next_lower_hours)


def hours_left(due: datetime, now: datetime) -> float:
    return (due - now).total_seconds() / 3600


def resolve_intervals(timeline: Optional[ReminderTimeline]) -> Tuple[List[ReminderInterval], bool]:
    """
    Returns (ladder sorted by hours desc, uses_default).
    """
    if timeline is None or timeline.uses_default:
        return DEFAULT_REMINDER_INTERVALS, True
    return timeline.ordered_intervals(), False


def select_trigger(left: float, intervals: List[ReminderInterval]) -> Tuple[Optional[ReminderInterval], float]:
    """
    Returns (rung, next_lower_hours) for a positive hours_left, or (None, 0)
    when hours_left is above every rung. `intervals` is sorted desc.
    """
    selected = None
    next_lower = 0.0
    for interval in intervals:
        if interval.hours >= left:
            selected = interval
        else:
            next_lower = interval.hours
            break
    if selected is None:
        return None, 0.0
    return selected, next_lower


def dedup_key(lead_id: str, interval_hours: float) -> str:
    return f"reminder_{interval_hours:g}h_{lead_id}"


def evaluate_reminder(
    due: datetime,
    now: datetime,
    timeline: Optional[ReminderTimeline] = None
) -> ReminderDecision:
    left = hours_left(due, now)

    if left <= 0:
        return ReminderDecision(action=RETIRE, hours_left=left)

    intervals, uses_default = resolve_intervals(timeline)
    interval, next_lower = select_trigger(left, intervals)

    if interval is None:
        return ReminderDecision(action=WAIT, hours_left=left, uses_default=uses_default)

    return ReminderDecision(
        action=FIRE,
        hours_left=left,
        interval=interval,
        next_lower_hours=next_lower,
        uses_default=uses_default
    )
