"""
Unit tests for billing-period windowing and the session quota.
"""
from datetime import datetime, timedelta

from apps.subscriptions.billing import (
    FOUR_WEEKS, UNLIMITED, BillingCycle, current_period, next_billing_date, remaining,
)


# =============================================================================
# current_period
# =============================================================================

class TestEveryFourWeeks:

    START = datetime(2026, 1, 5, 14, 30)

    def sub(self):
        return {'billing_cycle': BillingCycle.EVERY_4_WEEKS, 'start_date': self.START}

    def test_period_is_exactly_28_days_and_contains_now(self):
        for hours in range(0, 24 * 200, 7):
            now = self.START + timedelta(hours=hours)
            period = current_period(self.sub(), now)
            assert period.end - period.start == timedelta(days=28)
            assert period.contains(now)

    def test_consecutive_periods_tile(self):
        period = current_period(self.sub(), self.START)
        for _ in range(12):
            following = current_period(self.sub(), period.end)
            assert following.start == period.end
            assert not period.contains(period.end)
            period = following

    def test_boundary_instants(self):
        first = current_period(self.sub(), self.START)
        assert first.start == self.START
        assert first.end == self.START + FOUR_WEEKS

        just_before = current_period(self.sub(), self.START + FOUR_WEEKS - timedelta(seconds=1))
        assert just_before.start == self.START

    def test_date_filter_covers_whole_days(self):
        period = current_period(self.sub(), self.START + timedelta(days=3))
        # Day 0 counts even though the window opens at 14:30; day 28 belongs to the next window
        assert period.date_filter() == {'$gte': datetime(2026, 1, 5), '$lt': datetime(2026, 2, 2)}

        following = current_period(self.sub(), period.end)
        assert following.date_filter()['$gte'] == period.date_filter()['$lt']


class TestMonthly:

    def test_calendar_month(self):
        sub = {'billing_cycle': BillingCycle.MONTHLY, 'start_date': datetime(2025, 11, 20)}
        period = current_period(sub, datetime(2026, 2, 14, 8, 0))
        assert period.start == datetime(2026, 2, 1)
        assert period.end == datetime(2026, 2, 28, 23, 59, 59)
        assert period.contains(period.end)

    def test_december(self):
        sub = {'billing_cycle': BillingCycle.MONTHLY, 'start_date': datetime(2025, 1, 1)}
        period = current_period(sub, datetime(2025, 12, 31, 23, 0))
        assert period.start == datetime(2025, 12, 1)
        assert period.end == datetime(2025, 12, 31, 23, 59, 59)

    def test_window_does_not_need_start_date(self):
        sub = {'billing_cycle': BillingCycle.MONTHLY, 'next_billing_date': datetime(2026, 6, 1)}
        period = current_period(sub, datetime(2026, 2, 14, 8, 0))
        assert period.start == datetime(2026, 2, 1)
        assert period.end == datetime(2026, 2, 28, 23, 59, 59)

    def test_date_filter_includes_last_day(self):
        sub = {'billing_cycle': BillingCycle.MONTHLY, 'start_date': datetime(2025, 11, 20)}
        period = current_period(sub, datetime(2026, 2, 14, 8, 0))
        assert period.date_filter() == {
            '$gte': datetime(2026, 2, 1), '$lte': datetime(2026, 2, 28, 23, 59, 59),
        }


class TestOtherCycles:

    NOW = datetime(2026, 4, 10, 12, 0)

    def test_pay_as_you_go_uses_stored_dates(self):
        sub = {
            'billing_cycle': BillingCycle.PAY_AS_YOU_GO,
            'start_date': datetime(2026, 3, 1),
            'next_billing_date': datetime(2026, 5, 1),
        }
        period = current_period(sub, self.NOW)
        assert (period.start, period.end) == (datetime(2026, 3, 1), datetime(2026, 5, 1))

    def test_missing_next_billing_date_ends_with_month(self):
        sub = {'billing_cycle': BillingCycle.ONE_TIME, 'start_date': datetime(2026, 4, 2)}
        period = current_period(sub, self.NOW)
        assert period.end == datetime(2026, 4, 30, 23, 59, 59)

    def test_unknown_cycle_or_missing_start_does_not_raise(self):
        for sub in ({}, {'billing_cycle': 'fortnightly'}, {'billing_cycle': BillingCycle.EVERY_4_WEEKS}):
            period = current_period(sub, self.NOW)
            assert period.start == datetime(2026, 4, 1)
            assert period.end == datetime(2026, 4, 30, 23, 59, 59)


class TestNextBillingDate:

    def test_cycles(self):
        start = datetime(2026, 1, 31, 10, 0)
        assert next_billing_date(BillingCycle.EVERY_4_WEEKS, start) == start + timedelta(days=28)
        assert next_billing_date(BillingCycle.MONTHLY, start) == datetime(2026, 2, 1)
        assert next_billing_date(BillingCycle.MONTHLY, datetime(2026, 12, 5)) == datetime(2027, 1, 1)
        assert next_billing_date(BillingCycle.PAY_AS_YOU_GO, start) is None
        assert next_billing_date(BillingCycle.ONE_TIME, start) is None
        assert next_billing_date('unknown', start) is None


# =============================================================================
# remaining
# =============================================================================

class TestQuota:

    def test_remaining_is_non_increasing_and_never_negative(self):
        for total in range(1, 9):
            previous = None
            for used in range(0, 15):
                quota = remaining({'sessions_per_month': total}, used)
                assert quota.remaining >= 0
                assert not quota.unlimited
                if previous is not None:
                    assert quota.remaining <= previous
                previous = quota.remaining

    def test_over_quota_clamps_at_zero(self):
        quota = remaining({'sessions_per_month': 4}, 5)
        assert quota.to_dict() == {
            'total_sessions': 4,
            'used_sessions': 5,
            'remaining_sessions': 0,
            'has_unlimited': False,
        }

    def test_zero_negative_or_missing_allotment_is_unlimited(self):
        for sub in ({'sessions_per_month': 0}, {'sessions_per_month': -1}, {}):
            quota = remaining(sub, 12)
            assert quota.unlimited
            assert quota.remaining == UNLIMITED
