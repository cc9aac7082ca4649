"""Notifier port — abstract interface for the notification collaborator.

The dispatch core decides *who* is told *what happened*; the collaborator owns
message content and channels (push, SMS, email, operator console).
"""

from abc import ABC, abstractmethod
from enum import Enum

OPERATORS = "operators"


class Topic(Enum):
    COURIER_ASSIGNED = "courier_assigned"
    PICKUP_CODE = "pickup_code"
    DELIVERY_CODE = "delivery_code"
    PICKUP_CONFIRMED = "pickup_confirmed"
    ORDER_DELIVERED = "order_delivered"
    ORDER_CANCELLED = "order_cancelled"
    DISPATCH_TIMED_OUT = "dispatch_timed_out"
    VERIFICATION_EXPIRED = "verification_expired"
    PAYOUT_REJECTED = "payout_rejected"
    PAYOUT_FAILED = "payout_failed"
    PAYOUT_COMPLETED = "payout_completed"


class NotifierPort(ABC):
    """Abstract interface for notifier adapters."""

    @abstractmethod
    def notify(self, recipient_id: str, topic: str, payload: dict) -> dict:
        """Hand a notification to the collaborator.

        ``recipient_id`` is an account id, or ``OPERATORS`` for the operator
        queue. Returns a dict with keys: notification_id, status ("sent" or
        "failed"), error (optional).
        """
        ...
