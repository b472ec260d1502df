"""
Reminder core exceptions
"""


class ReminderError(Exception):
    """Base class for reminder core failures"""
    pass


class ReminderDataError(ReminderError):
    """Lead data cannot be evaluated (bad reminder date, assigned user missing)"""

    def __init__(self, lead_id: str, reason: str):
        self.lead_id = lead_id
        self.reason = reason
        super().__init__(f"Lead {lead_id}: {reason}")


class DeliveryError(ReminderError):
    """A delivery channel (persist / push / email) failed"""

    def __init__(self, channel: str, reason: str):
        self.channel = channel
        self.reason = reason
        super().__init__(f"{channel} delivery failed: {reason}")
