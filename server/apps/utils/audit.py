from datetime import datetime
import logging

from database import get_db

logger = logging.getLogger(__name__)


class AuditAction:
    THERAPIST_ACTIVATED = "therapist_activated"
    THERAPIST_DOCUMENT_VERIFIED = "therapist_document_verified"
    THERAPIST_DOCUMENT_REJECTED = "therapist_document_rejected"
    THERAPIST_CREDENTIALS_UPDATED = "therapist_credentials_updated"
    THERAPIST_RATE_UPDATED = "therapist_rate_updated"
    PRICING_UPDATED = "pricing_updated"
    PAYMENT_SPLIT_UPDATED = "payment_split_updated"
    RATE_CAPS_UPDATED = "rate_caps_updated"
    THERAPIST_RATES_RECLAMPED = "therapist_rates_reclamped"


def admin_logs_collection():
    return get_db()["admin_action_logs"]


class AdminActionLog:
    """Audit trail entry for an administrative action"""

    def __init__(self, actor_id, action, target_type, target_id, details=None):
        self.actor_id = actor_id
        self.action = action
        self.target_type = target_type  # therapist, client, system, document
        self.target_id = target_id
        self.details = details or {}
        self.created_at = datetime.utcnow()

    def save(self):
        result = admin_logs_collection().insert_one(self.__dict__)
        return result.inserted_id

    @staticmethod
    def record(actor_id, action, target_type, target_id, details=None):
        """
        Best-effort audit write. A failure here must never undo the action
        being audited, so it is logged and swallowed.
        """
        try:
            return AdminActionLog(actor_id, action, target_type, target_id, details).save()
        except Exception as e:
            logger.error(f"Failed to log admin action {action} on {target_id}: {str(e)}")
            return None

    @staticmethod
    def find_by_target(target_id, limit=50):
        return list(admin_logs_collection().find(
            {"target_id": target_id}
        ).sort("created_at", -1).limit(limit))
