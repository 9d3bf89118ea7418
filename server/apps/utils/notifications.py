from datetime import datetime
import logging

from database import get_db
from apps.utils.background import run_in_background

logger = logging.getLogger(__name__)


class NotificationEvent:
    SESSION_BOOKED = "session_booked"
    SESSION_STARTED = "session_started"
    SESSION_COMPLETED = "session_completed"
    SESSION_CANCELLED = "session_cancelled"
    SESSION_RESCHEDULED = "session_rescheduled"
    CANCELLATION_FEE_CHARGED = "cancellation_fee_charged"
    SUBSCRIPTION_STARTED = "subscription_started"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"
    ACCOUNT_ACTIVATED = "account_activated"


class NotificationDispatcher:
    """
    In-app notification sink. Delivery over push/SMS/email is handled by
    other services reading the notifications collection.
    """

    def deliver(self, event, recipient_id, payload=None):
        get_db()["notifications"].insert_one({
            "recipient_id": recipient_id,
            "event": event,
            "payload": payload or {},
            "read": False,
            "created_at": datetime.utcnow(),
        })
        logger.debug(f"Notification {event} stored for {recipient_id}")

    def send(self, event, recipient_id, payload=None):
        """Fire-and-forget; errors are logged by the background runner"""
        if recipient_id is None:
            logger.warning(f"Dropping {event} notification without recipient")
            return
        run_in_background(self.deliver, event, recipient_id, payload)
