"""
Unit tests for the rate-cap and cancellation-fee policies.
"""
from apps.pricing.models import PricingSnapshot
from apps.pricing.policies import CancellationFeePolicy, CredentialTier, RateCapPolicy, payment_split


def snapshot(**overrides):
    base = PricingSnapshot.defaults()
    return PricingSnapshot(
        rate_caps=overrides.get('rate_caps', base.rate_caps),
        cancellation_fees=overrides.get('cancellation_fees', base.cancellation_fees),
        payment_split=overrides.get('payment_split', base.payment_split),
        pricing_tiers=base.pricing_tiers,
    )


# =============================================================================
# RateCapPolicy
# =============================================================================

class TestRateCapPolicy:

    def test_default_caps(self):
        policy = RateCapPolicy(snapshot())
        assert policy.max_rate(CredentialTier.FULL_LICENSURE) == 75
        assert policy.max_rate(CredentialTier.SUPERVISED_ASSISTANT) == 55

    def test_unknown_tier_uses_full_licensure_cap(self):
        policy = RateCapPolicy(snapshot())
        assert policy.max_rate('CCC') == 75
        assert policy.max_rate(None) == 75

    def test_clamp_never_exceeds_cap_and_keeps_rates_under_it(self):
        policy = RateCapPolicy(snapshot())
        for tier in (*CredentialTier.ALL, 'unknown'):
            cap = policy.max_rate(tier)
            for rate in [0, 1, 10.5, 54.99, 55, 55.01, 74, 75, 76, 150, 10_000]:
                clamped = policy.clamp(rate, tier)
                assert clamped <= cap
                if rate <= cap:
                    assert clamped == rate

    def test_assistant_request_above_cap_is_capped(self):
        assert RateCapPolicy(snapshot()).clamp(75, CredentialTier.SUPERVISED_ASSISTANT) == 55

    def test_exceeds(self):
        policy = RateCapPolicy(snapshot())
        assert policy.exceeds(60, CredentialTier.SUPERVISED_ASSISTANT)
        assert not policy.exceeds(60, CredentialTier.FULL_LICENSURE)
        assert not policy.exceeds(None, CredentialTier.FULL_LICENSURE)

    def test_uses_configured_caps(self):
        policy = RateCapPolicy(snapshot(rate_caps={'SLP': 90, 'SLPA': 40}))
        assert policy.clamp(85, 'SLP') == 85
        assert policy.clamp(85, 'SLPA') == 40


# =============================================================================
# CancellationFeePolicy
# =============================================================================

class TestCancellationFeePolicy:

    def test_assistant_fee(self):
        assert CancellationFeePolicy(snapshot()).fee(CredentialTier.SUPERVISED_ASSISTANT) == 15

    def test_tier_without_entry_uses_assistant_fee(self):
        policy = CancellationFeePolicy(snapshot())
        assert policy.fee(CredentialTier.FULL_LICENSURE) == 15
        assert policy.fee('unknown') == 15

    def test_tier_specific_fee(self):
        policy = CancellationFeePolicy(snapshot(cancellation_fees={'SLPA': 15, 'SLP': 25}))
        assert policy.fee(CredentialTier.FULL_LICENSURE) == 25

    def test_flat_fee_not_percentage(self):
        # Same fee whatever the session would have cost
        policy = CancellationFeePolicy(snapshot())
        assert policy.fee('SLPA') == policy.fee('SLPA') == 15

    def test_no_fees_configured(self):
        assert CancellationFeePolicy(snapshot(cancellation_fees={})).fee('SLP') == 0


# =============================================================================
# payment_split
# =============================================================================

class TestPaymentSplit:

    def test_default_split_in_cents(self):
        assert payment_split(85, snapshot()) == {'platform_fee': 1700, 'therapist_fee': 6800}

    def test_shares_add_up(self):
        s = snapshot(payment_split={'platform_fee_percent': 33, 'therapist_fee_percent': 67})
        for amount in (0, 1, 15, 54.99, 55, 99.99):
            split = payment_split(amount, s)
            assert split['platform_fee'] + split['therapist_fee'] == int(round(amount * 100))
