"""
Platform pricing configuration.

Rate caps, cancellation fees, subscription tiers and the payment split are
admin-editable. They live in one `platform_settings` document with a version
counter; every change is written conditionally on the version it was based
on and appended to `platform_settings_history`.

Readers take one PricingSnapshot per request so that every policy decision
within that request sees the same values.
"""
import copy
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime

from django.conf import settings
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from database import get_db
from apps.pricing.policies import CredentialTier
from apps.subscriptions.billing import BillingCycle
from apps.users.models import User
from apps.utils.audit import AdminActionLog, AuditAction
from apps.utils.exceptions import Conflict, InvalidInput, NotFound

logger = logging.getLogger(__name__)

SETTINGS_ID = "pricing"
MAX_RATE_CAP = 200
MAX_CANCELLATION_FEE = 100
MAX_WRITE_ATTEMPTS = 3
TIER_KEY_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


def settings_collection():
    return get_db()["platform_settings"]


def settings_history_collection():
    return get_db()["platform_settings_history"]


@dataclass(frozen=True)
class PricingSnapshot:
    rate_caps: dict
    cancellation_fees: dict
    payment_split: dict
    pricing_tiers: dict = field(default_factory=dict)
    version: int = 0

    @classmethod
    def defaults(cls):
        return cls(
            rate_caps=copy.deepcopy(settings.DEFAULT_RATE_CAPS),
            cancellation_fees=copy.deepcopy(settings.DEFAULT_CANCELLATION_FEES),
            payment_split=copy.deepcopy(settings.DEFAULT_PAYMENT_SPLIT),
            pricing_tiers=copy.deepcopy(settings.DEFAULT_PRICING_TIERS),
            version=0,
        )

    @classmethod
    def from_document(cls, doc):
        base = cls.defaults()
        if not doc:
            return base
        return cls(
            rate_caps={**base.rate_caps, **doc.get("rate_caps", {})},
            cancellation_fees={**base.cancellation_fees, **doc.get("cancellation_fees", {})},
            payment_split=doc.get("payment_split") or base.payment_split,
            pricing_tiers=doc["pricing_tiers"] if "pricing_tiers" in doc else base.pricing_tiers,
            version=doc.get("version", 0),
        )

    def as_document(self):
        return {
            "rate_caps": copy.deepcopy(self.rate_caps),
            "cancellation_fees": copy.deepcopy(self.cancellation_fees),
            "payment_split": copy.deepcopy(self.payment_split),
            "pricing_tiers": copy.deepcopy(self.pricing_tiers),
        }


class PlatformSettings:

    @staticmethod
    def snapshot():
        """Consistent view of the current pricing configuration"""
        return PricingSnapshot.from_document(
            settings_collection().find_one({"_id": SETTINGS_ID})
        )

    @staticmethod
    def history(limit=20):
        return list(settings_history_collection().find(
            {"settings_id": SETTINGS_ID}
        ).sort("version", -1).limit(limit))

    @staticmethod
    def _write(actor, action, build_changes):
        """
        Apply `build_changes(snapshot) -> dict` against the latest version.
        Retries when another admin wrote in between.
        """
        for _ in range(MAX_WRITE_ATTEMPTS):
            current = PlatformSettings.snapshot()
            changes = build_changes(current)
            updated = {**current.as_document(), **changes}
            now = datetime.utcnow()

            try:
                doc = settings_collection().find_one_and_update(
                    {"_id": SETTINGS_ID, "version": current.version},
                    {"$set": {**updated, "updated_at": now, "updated_by": User.actor_id(actor)},
                     "$inc": {"version": 1}},
                    upsert=True,
                    return_document=ReturnDocument.AFTER,
                )
            except DuplicateKeyError:
                # The document exists at another version; re-read and retry
                continue

            previous = {key: current.as_document()[key] for key in changes}
            settings_history_collection().insert_one({
                "settings_id": SETTINGS_ID,
                "action": action,
                "previous": previous,
                "changes": changes,
                "version": doc["version"],
                "actor_id": User.actor_id(actor),
                "created_at": now,
            })
            AdminActionLog.record(
                User.actor_id(actor), action, "system", SETTINGS_ID,
                {"previous": previous, "changes": changes}
            )
            logger.info(f"Platform settings updated ({action}) to version {doc['version']}")
            return PricingSnapshot.from_document(doc)

        raise Conflict("Pricing settings were modified concurrently, please retry")

    # ------------------------------------------------------------------
    # Rate caps and cancellation fees
    # ------------------------------------------------------------------

    @staticmethod
    def update_rate_caps(actor, rate_caps=None, cancellation_fees=None):
        rate_caps = rate_caps or {}
        cancellation_fees = cancellation_fees or {}

        for tier, cap in rate_caps.items():
            if not CredentialTier.is_valid(tier):
                raise InvalidInput(f"Unknown credential tier {tier}")
            if not isinstance(cap, (int, float)) or cap < 0 or cap > MAX_RATE_CAP:
                raise InvalidInput(f"{tier} rate cap must be between 0 and {MAX_RATE_CAP}")

        for tier, fee in cancellation_fees.items():
            if not CredentialTier.is_valid(tier):
                raise InvalidInput(f"Unknown credential tier {tier}")
            if not isinstance(fee, (int, float)) or fee < 0 or fee > MAX_CANCELLATION_FEE:
                raise InvalidInput(
                    f"{tier} cancellation fee must be between 0 and {MAX_CANCELLATION_FEE}"
                )

        if not rate_caps and not cancellation_fees:
            raise InvalidInput("Nothing to update")

        def build(current):
            changes = {}
            if rate_caps:
                changes["rate_caps"] = {**current.rate_caps, **rate_caps}
            if cancellation_fees:
                changes["cancellation_fees"] = {**current.cancellation_fees, **cancellation_fees}
            return changes

        return PlatformSettings._write(actor, AuditAction.RATE_CAPS_UPDATED, build)

    @staticmethod
    def update_payment_split(actor, platform_fee_percent):
        if not isinstance(platform_fee_percent, (int, float)) or not 0 <= platform_fee_percent <= 100:
            raise InvalidInput("Platform fee must be between 0 and 100")

        def build(current):
            return {"payment_split": {
                "platform_fee_percent": platform_fee_percent,
                "therapist_fee_percent": 100 - platform_fee_percent,
            }}

        return PlatformSettings._write(actor, AuditAction.PAYMENT_SPLIT_UPDATED, build)

    # ------------------------------------------------------------------
    # Subscription pricing tiers
    # ------------------------------------------------------------------

    @staticmethod
    def get_pricing_tiers():
        return PlatformSettings.snapshot().pricing_tiers

    @staticmethod
    def _validate_tier(data):
        if "billing_cycle" in data and data["billing_cycle"] not in BillingCycle.ALL:
            raise InvalidInput(
                f"Invalid billing cycle. Must be one of: {', '.join(BillingCycle.ALL)}"
            )
        if "price" in data and (not isinstance(data["price"], (int, float)) or data["price"] < 0):
            raise InvalidInput("Tier price must be a non-negative number")
        if "sessions_per_month" in data and not isinstance(data["sessions_per_month"], int):
            raise InvalidInput("sessions_per_month must be an integer")

    @staticmethod
    def create_pricing_tier(actor, tier_key, data):
        if not tier_key or not TIER_KEY_PATTERN.match(tier_key) or not data.get("name") or data.get("price") is None:
            raise InvalidInput("Tier key, name, and price are required")
        PlatformSettings._validate_tier(data)

        tier = {
            "name": data["name"],
            "price": data["price"],
            "duration": data.get("duration", 60),
            "billing_cycle": data.get("billing_cycle", BillingCycle.MONTHLY),
            "sessions_per_month": data.get("sessions_per_month", 0),
            "features": data.get("features", []),
        }

        def build(current):
            if tier_key in current.pricing_tiers:
                raise Conflict("Pricing tier already exists")
            return {"pricing_tiers": {**current.pricing_tiers, tier_key: tier}}

        return PlatformSettings._write(actor, AuditAction.PRICING_UPDATED, build).pricing_tiers[tier_key]

    @staticmethod
    def update_pricing_tier(actor, tier_key, updates):
        PlatformSettings._validate_tier(updates)

        def build(current):
            if tier_key not in current.pricing_tiers:
                raise NotFound("Pricing tier not found")
            merged = {**current.pricing_tiers[tier_key], **updates}
            return {"pricing_tiers": {**current.pricing_tiers, tier_key: merged}}

        return PlatformSettings._write(actor, AuditAction.PRICING_UPDATED, build).pricing_tiers[tier_key]

    @staticmethod
    def delete_pricing_tier(actor, tier_key):
        def build(current):
            if tier_key not in current.pricing_tiers:
                raise NotFound("Pricing tier not found")
            remaining = {k: v for k, v in current.pricing_tiers.items() if k != tier_key}
            return {"pricing_tiers": remaining}

        PlatformSettings._write(actor, AuditAction.PRICING_UPDATED, build)
        return True
