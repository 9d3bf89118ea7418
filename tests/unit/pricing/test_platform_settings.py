"""
Unit tests for the versioned platform pricing configuration.
"""
import pytest

from apps.pricing.models import PlatformSettings
from apps.utils.audit import AuditAction
from apps.utils.exceptions import Conflict, InvalidInput, NotFound


class TestSnapshot:

    def test_defaults_before_any_update(self):
        snap = PlatformSettings.snapshot()
        assert snap.version == 0
        assert snap.rate_caps == {'SLP': 75, 'SLPA': 55}
        assert snap.cancellation_fees == {'SLPA': 15}
        assert set(snap.pricing_tiers) == {'rooted', 'flourish', 'bloom', 'evaluation'}

    def test_snapshot_is_not_affected_by_later_updates(self, admin):
        before = PlatformSettings.snapshot()
        PlatformSettings.update_rate_caps(admin, rate_caps={'SLPA': 60})
        assert before.rate_caps['SLPA'] == 55
        assert PlatformSettings.snapshot().rate_caps['SLPA'] == 60


class TestRateCapUpdates:

    def test_update_bumps_version_and_keeps_history(self, admin, db):
        PlatformSettings.update_rate_caps(admin, rate_caps={'SLP': 80})
        snap = PlatformSettings.update_rate_caps(admin, cancellation_fees={'SLPA': 20})

        assert snap.version == 2
        assert snap.rate_caps == {'SLP': 80, 'SLPA': 55}
        assert snap.cancellation_fees == {'SLPA': 20}

        history = PlatformSettings.history()
        assert [row['version'] for row in history] == [2, 1]
        assert history[1]['previous'] == {'rate_caps': {'SLP': 75, 'SLPA': 55}}
        assert history[1]['actor_id'] == admin['_id']

        actions = [log['action'] for log in db.admin_action_logs.find()]
        assert actions == [AuditAction.RATE_CAPS_UPDATED, AuditAction.RATE_CAPS_UPDATED]

    @pytest.mark.parametrize('caps', [{'SLP': -1}, {'SLP': 201}, {'SLP': 'high'}, {'XYZ': 50}])
    def test_rejects_invalid_caps(self, admin, caps):
        with pytest.raises(InvalidInput):
            PlatformSettings.update_rate_caps(admin, rate_caps=caps)
        assert PlatformSettings.snapshot().version == 0

    def test_rejects_fee_out_of_range(self, admin):
        with pytest.raises(InvalidInput):
            PlatformSettings.update_rate_caps(admin, cancellation_fees={'SLPA': 101})

    def test_rejects_empty_update(self, admin):
        with pytest.raises(InvalidInput):
            PlatformSettings.update_rate_caps(admin)

    def test_payment_split(self, admin):
        snap = PlatformSettings.update_payment_split(admin, 25)
        assert snap.payment_split == {'platform_fee_percent': 25, 'therapist_fee_percent': 75}
        with pytest.raises(InvalidInput):
            PlatformSettings.update_payment_split(admin, 120)


class TestPricingTiers:

    def test_create_update_delete(self, admin):
        tier = PlatformSettings.create_pricing_tier(admin, 'intensive', {
            'name': 'Intensive', 'price': 120, 'billing_cycle': 'monthly', 'sessions_per_month': 8,
        })
        assert tier['sessions_per_month'] == 8
        assert tier['features'] == []

        updated = PlatformSettings.update_pricing_tier(admin, 'intensive', {'price': 110})
        assert updated['price'] == 110
        assert updated['name'] == 'Intensive'

        assert PlatformSettings.delete_pricing_tier(admin, 'intensive') is True
        assert 'intensive' not in PlatformSettings.get_pricing_tiers()

    def test_duplicate_tier_conflicts(self, admin):
        with pytest.raises(Conflict):
            PlatformSettings.create_pricing_tier(admin, 'rooted', {'name': 'Again', 'price': 10})

    def test_missing_tier(self, admin):
        with pytest.raises(NotFound):
            PlatformSettings.update_pricing_tier(admin, 'nope', {'price': 10})
        with pytest.raises(NotFound):
            PlatformSettings.delete_pricing_tier(admin, 'nope')

    def test_invalid_tier_data(self, admin):
        with pytest.raises(InvalidInput):
            PlatformSettings.create_pricing_tier(admin, 'weekly', {
                'name': 'Weekly', 'price': 10, 'billing_cycle': 'weekly',
            })
        with pytest.raises(InvalidInput):
            PlatformSettings.create_pricing_tier(admin, 'Bad Key', {'name': 'Bad', 'price': 10})
