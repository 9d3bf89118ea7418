from datetime import datetime
from bson import ObjectId
from pymongo import ReturnDocument, DESCENDING

from database import get_db
from apps.subscriptions.billing import next_billing_date


def subscriptions_collection():
    return get_db()["subscriptions"]


class SubscriptionStatus:
    PENDING = "pending"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    INACTIVE = "inactive"


SUPERSEDED_REASON = "superseded"


class Subscription:
    """
    A client's enrollment in a pricing tier.

    Only active subscriptions carry `active_client_id`; the unique sparse
    index on that field is what keeps a client to one active subscription.
    """

    def __init__(self, client_id, tier, tier_info, status=SubscriptionStatus.ACTIVE, start_date=None):
        start_date = start_date or datetime.utcnow()
        self.client_id = client_id
        self.tier = tier
        self.tier_name = tier_info.get("name", tier)
        self.price = tier_info.get("price", 0)
        self.billing_cycle = tier_info.get("billing_cycle")
        self.sessions_per_month = tier_info.get("sessions_per_month", 0)
        self.features = list(tier_info.get("features", []))
        self.status = status
        self.start_date = start_date
        self.next_billing_date = next_billing_date(self.billing_cycle, start_date)
        self.auto_renew = self.next_billing_date is not None
        self.cancelled_at = None
        self.cancellation_reason = None
        if status == SubscriptionStatus.ACTIVE:
            self.active_client_id = client_id
        self.created_at = start_date
        self.updated_at = start_date

    def save(self):
        data = dict(self.__dict__)
        result = subscriptions_collection().insert_one(data)
        data["_id"] = result.inserted_id
        return data

    @staticmethod
    def find_by_id(subscription_id):
        if isinstance(subscription_id, str):
            subscription_id = ObjectId(subscription_id)
        return subscriptions_collection().find_one({"_id": subscription_id})

    @staticmethod
    def find_active(client_id):
        return subscriptions_collection().find_one({"active_client_id": client_id})

    @staticmethod
    def find_by_client(client_id):
        """Every subscription the client has had, newest first"""
        return list(subscriptions_collection().find({"client_id": client_id}).sort("created_at", DESCENDING))

    @staticmethod
    def _cancel_update(at, reason):
        return {
            "$set": {
                "status": SubscriptionStatus.CANCELLED,
                "cancelled_at": at,
                "cancellation_reason": reason,
                "auto_renew": False,
                "updated_at": at,
            },
            "$unset": {"active_client_id": ""},
        }

    @staticmethod
    def supersede_active(client_id, at):
        """Cancel whatever subscription is currently active for the client"""
        result = subscriptions_collection().update_many(
            {"active_client_id": client_id},
            Subscription._cancel_update(at, SUPERSEDED_REASON),
        )
        return result.modified_count

    @staticmethod
    def cancel_if_active(subscription_id, reason, at):
        return subscriptions_collection().find_one_and_update(
            {"_id": subscription_id, "status": SubscriptionStatus.ACTIVE},
            Subscription._cancel_update(at, reason),
            return_document=ReturnDocument.AFTER,
        )

    @staticmethod
    def activate_if_pending(subscription_id, client_id, at):
        """Raises DuplicateKeyError if another subscription became active first"""
        return subscriptions_collection().find_one_and_update(
            {"_id": subscription_id, "status": SubscriptionStatus.PENDING},
            {"$set": {
                "status": SubscriptionStatus.ACTIVE,
                "active_client_id": client_id,
                "updated_at": at,
            }},
            return_document=ReturnDocument.AFTER,
        )

    @staticmethod
    def restore_superseded(client_id, at):
        """
        Undo `supersede_active(client_id, at)`. Raises DuplicateKeyError if
        another subscription has become active since.
        """
        restored = []
        for subscription in subscriptions_collection().find({
            "client_id": client_id,
            "status": SubscriptionStatus.CANCELLED,
            "cancellation_reason": SUPERSEDED_REASON,
            "cancelled_at": at,
        }):
            doc = subscriptions_collection().find_one_and_update(
                {"_id": subscription["_id"], "status": SubscriptionStatus.CANCELLED},
                {"$set": {
                    "status": SubscriptionStatus.ACTIVE,
                    "active_client_id": client_id,
                    "auto_renew": subscription.get("next_billing_date") is not None,
                    "cancelled_at": None,
                    "cancellation_reason": None,
                    "updated_at": at,
                }},
                return_document=ReturnDocument.AFTER,
            )
            if doc:
                restored.append(doc)
        return restored
