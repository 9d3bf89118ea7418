"""
Billing-period windowing and session quota.

Everything here is pure: `now` and the used-session count are passed in by
the caller, nothing reads the clock or the database, and unexpected input
falls through to the default branch rather than raising.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta

FOUR_WEEKS = timedelta(days=28)
UNLIMITED = -1


class BillingCycle:
    EVERY_4_WEEKS = "every-4-weeks"
    MONTHLY = "monthly"
    PAY_AS_YOU_GO = "pay-as-you-go"
    ONE_TIME = "one-time"

    ALL = (EVERY_4_WEEKS, MONTHLY, PAY_AS_YOU_GO, ONE_TIME)


def start_of_day(moment):
    return datetime(moment.year, moment.month, moment.day)


def start_of_month(moment):
    return datetime(moment.year, moment.month, 1)


def start_of_next_month(moment):
    if moment.month == 12:
        return datetime(moment.year + 1, 1, 1)
    return datetime(moment.year, moment.month + 1, 1)


def end_of_month(moment):
    """Last calendar day of the month at 23:59:59"""
    return start_of_next_month(moment) - timedelta(seconds=1)


@dataclass(frozen=True)
class BillingPeriod:
    start: datetime
    end: datetime
    # Rolling 4-week windows are half-open so consecutive periods tile;
    # calendar windows end at 23:59:59 and include that instant.
    end_inclusive: bool = True

    def contains(self, moment):
        if moment < self.start:
            return False
        return moment <= self.end if self.end_inclusive else moment < self.end

    def date_filter(self):
        """
        Range filter for a stored calendar date (midnight). A session belongs
        to the period containing its day, so both bounds of a rolling window
        are taken at day granularity.
        """
        if self.end_inclusive:
            return {"$gte": start_of_day(self.start), "$lte": self.end}
        return {"$gte": start_of_day(self.start), "$lt": start_of_day(self.end)}

    def to_dict(self):
        return {"period_start": self.start, "period_end": self.end}


def current_period(subscription, now):
    """The billing window of `subscription` that contains `now`"""
    cycle = subscription.get("billing_cycle")
    start_date = subscription.get("start_date")

    if start_date and cycle == BillingCycle.EVERY_4_WEEKS:
        index = (now - start_date) // FOUR_WEEKS
        start = start_date + FOUR_WEEKS * index
        return BillingPeriod(start, start + FOUR_WEEKS, end_inclusive=False)

    if cycle == BillingCycle.MONTHLY:
        return BillingPeriod(start_of_month(now), end_of_month(now))

    # pay-as-you-go, one-time, unknown cycles and subscriptions without a start
    return BillingPeriod(
        start_date or start_of_month(now),
        subscription.get("next_billing_date") or end_of_month(now),
    )


def next_billing_date(billing_cycle, start_date):
    """First instant after the period that begins at `start_date`"""
    if billing_cycle == BillingCycle.EVERY_4_WEEKS:
        return start_date + FOUR_WEEKS
    if billing_cycle == BillingCycle.MONTHLY:
        return start_of_next_month(start_date)
    # pay-as-you-go and one-time evaluations have no recurring charge
    return None


@dataclass(frozen=True)
class QuotaSnapshot:
    total: int
    used: int
    remaining: int
    unlimited: bool

    def to_dict(self):
        return {
            "total_sessions": self.total,
            "used_sessions": self.used,
            "remaining_sessions": self.remaining,
            "has_unlimited": self.unlimited,
        }


def is_unlimited(allotment):
    return allotment is None or allotment <= 0


def remaining(subscription, used_count):
    """
    Advisory quota for the current period. Over-booking is allowed, so
    `remaining` bottoms out at zero instead of going negative.
    """
    total = subscription.get("sessions_per_month") or 0
    used = max(0, used_count or 0)

    if is_unlimited(total):
        return QuotaSnapshot(total=total, used=used, remaining=UNLIMITED, unlimited=True)

    return QuotaSnapshot(total=total, used=used, remaining=max(0, total - used), unlimited=False)
