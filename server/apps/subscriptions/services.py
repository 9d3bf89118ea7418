"""
Subscription lifecycle: pending -> active -> cancelled, with a new
subscription superseding whatever the client had active before.
"""
import logging
from datetime import datetime

from pymongo.errors import DuplicateKeyError, PyMongoError

from apps.clients.models import Client
from apps.pricing.models import PlatformSettings
from apps.subscriptions import billing
from apps.subscriptions.models import Subscription, SubscriptionStatus
from apps.therapy_sessions.models import TherapySession
from apps.users.models import User, UserRole
from apps.utils.db_helper import to_object_id
from apps.utils.exceptions import Conflict, Forbidden, InvalidInput, NotFound
from apps.utils.notifications import NotificationDispatcher, NotificationEvent

logger = logging.getLogger(__name__)

MAX_SUBSCRIBE_ATTEMPTS = 5
DEFAULT_CANCELLATION_REASON = "User requested cancellation"


class SubscriptionLifecycle:

    def __init__(self, clock=None, notifier=None):
        self.clock = clock or datetime.utcnow
        self.notifier = notifier or NotificationDispatcher()

    @staticmethod
    def _get_client(client_id, actor=None):
        client = Client.find_by_id(to_object_id(client_id, "client ID"))
        if not client:
            raise NotFound("Client not found")
        if actor is not None and not User.has_role(actor, UserRole.ADMIN):
            if client.get("user_id") != User.actor_id(actor):
                raise Forbidden("You can only manage your own subscription")
        return client

    def subscribe(self, client_id, tier_key, actor=None, pending=False):
        """
        Enroll a client in a pricing tier.

        An active enrollment supersedes the client's current one. If another
        request activates a subscription for the same client between our
        supersede and insert, the unique index rejects our insert and we
        supersede again.
        """
        client = self._get_client(client_id, actor)
        tier_info = PlatformSettings.snapshot().pricing_tiers.get(tier_key)
        if not tier_info:
            raise InvalidInput(f"Unknown pricing tier {tier_key}")

        if pending:
            subscription = Subscription(
                client["_id"], tier_key, tier_info,
                status=SubscriptionStatus.PENDING, start_date=self.clock()
            ).save()
            logger.info(f"Pending subscription {subscription['_id']} created for client {client['_id']}")
            return subscription

        for attempt in range(MAX_SUBSCRIBE_ATTEMPTS):
            now = self.clock()
            superseded = Subscription.supersede_active(client["_id"], now)
            try:
                subscription = Subscription(client["_id"], tier_key, tier_info, start_date=now).save()
            except DuplicateKeyError:
                logger.warning(
                    f"Concurrent subscribe for client {client['_id']}, retrying (attempt {attempt + 1})"
                )
                continue
            except PyMongoError:
                logger.exception(f"Could not create subscription for client {client['_id']}")
                if superseded:
                    self._restore_superseded(client["_id"], now)
                raise

            if superseded:
                logger.info(f"Superseded {superseded} active subscription(s) for client {client['_id']}")
            logger.info(f"Subscription {subscription['_id']} ({tier_key}) active for client {client['_id']}")
            self.notifier.send(
                NotificationEvent.SUBSCRIPTION_STARTED, client.get("user_id"),
                {"subscription_id": str(subscription["_id"]), "tier": tier_key}
            )
            return subscription

        raise Conflict("Could not activate the subscription, please retry")

    @staticmethod
    def _restore_superseded(client_id, at):
        """Put back the subscription a failed subscribe had just superseded"""
        try:
            restored = Subscription.restore_superseded(client_id, at)
        except DuplicateKeyError:
            # Another subscription became active meanwhile; the client is covered
            logger.warning(f"Client {client_id} has a newer active subscription, not restoring")
            return
        except PyMongoError:
            logger.exception(f"Could not restore superseded subscription for client {client_id}")
            return
        for subscription in restored:
            logger.info(f"Restored subscription {subscription['_id']} for client {client_id}")

    def activate(self, subscription_id, actor=None):
        """Activate a pending subscription once its checkout has completed"""
        subscription = Subscription.find_by_id(to_object_id(subscription_id, "subscription ID"))
        if not subscription:
            raise NotFound("Subscription not found")
        client = self._get_client(subscription["client_id"], actor)
        if subscription["status"] != SubscriptionStatus.PENDING:
            raise Conflict(f"Cannot activate a {subscription['status']} subscription")

        for _ in range(MAX_SUBSCRIBE_ATTEMPTS):
            now = self.clock()
            superseded = Subscription.supersede_active(client["_id"], now)
            try:
                activated = Subscription.activate_if_pending(subscription["_id"], client["_id"], now)
            except DuplicateKeyError:
                continue
            except PyMongoError:
                logger.exception(f"Could not activate subscription {subscription['_id']}")
                if superseded:
                    self._restore_superseded(client["_id"], now)
                raise
            if not activated:
                if superseded:
                    self._restore_superseded(client["_id"], now)
                raise Conflict("Subscription is no longer pending")
            self.notifier.send(
                NotificationEvent.SUBSCRIPTION_STARTED, client.get("user_id"),
                {"subscription_id": str(activated["_id"]), "tier": activated["tier"]}
            )
            return activated

        raise Conflict("Could not activate the subscription, please retry")

    def cancel(self, subscription_id, reason=None, actor=None):
        subscription = Subscription.find_by_id(to_object_id(subscription_id, "subscription ID"))
        if not subscription:
            raise NotFound("Subscription not found")
        client = self._get_client(subscription["client_id"], actor)

        if subscription["status"] != SubscriptionStatus.ACTIVE:
            raise Conflict(f"Cannot cancel a {subscription['status']} subscription")

        cancelled = Subscription.cancel_if_active(
            subscription["_id"], reason or DEFAULT_CANCELLATION_REASON, self.clock()
        )
        if not cancelled:
            raise Conflict("Subscription is no longer active")

        logger.info(f"Subscription {cancelled['_id']} cancelled")
        self.notifier.send(
            NotificationEvent.SUBSCRIPTION_CANCELLED, client.get("user_id"),
            {"subscription_id": str(cancelled["_id"]), "reason": cancelled["cancellation_reason"]}
        )
        return cancelled

    def cancel_current(self, client_id, reason=None, actor=None):
        client = self._get_client(client_id, actor)
        subscription = Subscription.find_active(client["_id"])
        if not subscription:
            raise NotFound("No active subscription found")
        return self.cancel(subscription["_id"], reason, actor)

    def current_subscription(self, client_id, actor=None):
        client = self._get_client(client_id, actor)
        return Subscription.find_active(client["_id"])

    def subscription_history(self, client_id, actor=None):
        client = self._get_client(client_id, actor)
        return Subscription.find_by_client(client["_id"])

    def remaining_sessions(self, client_id, actor=None, now=None):
        """Quota for the client's current billing period"""
        client = self._get_client(client_id, actor)
        now = now or self.clock()

        subscription = Subscription.find_active(client["_id"])
        if not subscription:
            return {
                **billing.QuotaSnapshot(total=0, used=0, remaining=0, unlimited=False).to_dict(),
                "subscription": None,
            }

        period = billing.current_period(subscription, now)
        used = TherapySession.count_in_period(client["_id"], period)
        quota = billing.remaining(subscription, used)

        return {
            **quota.to_dict(),
            **period.to_dict(),
            "subscription": {
                "id": subscription["_id"],
                "tier": subscription["tier"],
                "tier_name": subscription.get("tier_name"),
                "billing_cycle": subscription.get("billing_cycle"),
                "next_billing_date": subscription.get("next_billing_date"),
            },
        }
