"""
Pricing policies applied to every priced transaction.

Both policies are pure: they read a PricingSnapshot and never touch storage
or raise. Unknown tiers degrade to a default instead of failing.
"""
import logging

logger = logging.getLogger(__name__)


class CredentialTier:
    FULL_LICENSURE = "SLP"
    SUPERVISED_ASSISTANT = "SLPA"

    ALL = (FULL_LICENSURE, SUPERVISED_ASSISTANT)

    @classmethod
    def is_valid(cls, tier):
        return tier in cls.ALL


class RateCapPolicy:
    """Maximum hourly rate per credential tier"""

    def __init__(self, snapshot):
        self.rate_caps = snapshot.rate_caps

    def max_rate(self, tier):
        # Unknown tiers fall back to the full-licensure cap
        if tier in self.rate_caps:
            return self.rate_caps[tier]
        return self.rate_caps[CredentialTier.FULL_LICENSURE]

    def clamp(self, requested_rate, tier):
        cap = self.max_rate(tier)
        if requested_rate > cap:
            logger.warning(
                f"Rate {requested_rate} exceeds {tier} cap {cap}; capping to {cap}"
            )
            return cap
        return requested_rate

    def exceeds(self, rate, tier):
        return rate is not None and rate > self.max_rate(tier)


class CancellationFeePolicy:
    """
    Flat fee owed when a clinician logs a client cancellation.
    Tiers without their own entry use the supervised-assistant fee.
    """

    def __init__(self, snapshot):
        self.fees = snapshot.cancellation_fees

    def fee(self, tier):
        if tier in self.fees:
            return self.fees[tier]
        return self.fees.get(CredentialTier.SUPERVISED_ASSISTANT, 0)


def payment_split(amount, snapshot):
    """Platform and clinician shares of an amount, in cents"""
    amount_in_cents = int(round(float(amount) * 100))
    platform_fee = int(round(amount_in_cents * snapshot.payment_split["platform_fee_percent"] / 100))
    return {
        "platform_fee": platform_fee,
        "therapist_fee": amount_in_cents - platform_fee,
    }
