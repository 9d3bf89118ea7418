"""
Unit tests for subscribe / supersede / cancel and the remaining-sessions query.
"""
from datetime import timedelta

import pytest
from pymongo.errors import PyMongoError

from apps.subscriptions.models import Subscription, SubscriptionStatus, subscriptions_collection
from apps.subscriptions.services import SubscriptionLifecycle
from apps.therapy_sessions.lifecycle import SessionLifecycle
from apps.therapy_sessions.models import SessionStatus, sessions_collection
from apps.utils.exceptions import Conflict, Forbidden, InvalidInput, NotFound


@pytest.fixture
def lifecycle(clock):
    return SubscriptionLifecycle(clock=clock)


# =============================================================================
# subscribe
# =============================================================================

class TestSubscribe:

    def test_copies_tier_onto_subscription(self, lifecycle, make_client, clock):
        client, user = make_client()
        sub = lifecycle.subscribe(client['_id'], 'rooted', actor=user)

        assert sub['status'] == SubscriptionStatus.ACTIVE
        assert sub['tier'] == 'rooted'
        assert sub['tier_name'] == 'Rooted Tier'
        assert sub['billing_cycle'] == 'every-4-weeks'
        assert sub['sessions_per_month'] == 4
        assert sub['start_date'] == clock()
        assert sub['next_billing_date'] == clock() + timedelta(days=28)
        assert sub['auto_renew'] is True
        assert sub['active_client_id'] == client['_id']

    def test_new_subscription_supersedes_active_one(self, lifecycle, make_client, clock):
        client, user = make_client()
        first = lifecycle.subscribe(client['_id'], 'rooted', actor=user)
        clock.advance(days=3)
        second = lifecycle.subscribe(client['_id'], 'flourish', actor=user)

        old = Subscription.find_by_id(first['_id'])
        assert old['status'] == SubscriptionStatus.CANCELLED
        assert old['cancellation_reason'] == 'superseded'
        assert old['auto_renew'] is False
        assert 'active_client_id' not in old

        assert Subscription.find_active(client['_id'])['_id'] == second['_id']
        assert subscriptions_collection().count_documents(
            {'client_id': client['_id'], 'status': SubscriptionStatus.ACTIVE}
        ) == 1

    def test_retries_when_another_subscription_activates_concurrently(
            self, lifecycle, make_client, clock, monkeypatch):
        client, user = make_client()
        original = Subscription.supersede_active
        calls = []

        def racing_supersede(client_id, at):
            count = original(client_id, at)
            if not calls:
                # A concurrent request slips in its own active subscription
                Subscription(client_id, 'bloom', {'name': 'Bloom Tier'}, start_date=at).save()
            calls.append(count)
            return count

        monkeypatch.setattr(Subscription, 'supersede_active', staticmethod(racing_supersede))
        ours = lifecycle.subscribe(client['_id'], 'flourish', actor=user)

        assert calls == [0, 1]
        active = list(subscriptions_collection().find({'status': SubscriptionStatus.ACTIVE}))
        assert [s['_id'] for s in active] == [ours['_id']]

    def test_failed_insert_restores_previous_subscription(self, lifecycle, make_client, clock, monkeypatch):
        client, user = make_client()
        first = lifecycle.subscribe(client['_id'], 'rooted', actor=user)
        clock.advance(days=3)

        def failing_save(self):
            raise PyMongoError('connection reset')

        monkeypatch.setattr(Subscription, 'save', failing_save)
        with pytest.raises(PyMongoError):
            lifecycle.subscribe(client['_id'], 'flourish', actor=user)

        active = Subscription.find_active(client['_id'])
        assert active['_id'] == first['_id']
        assert active['status'] == SubscriptionStatus.ACTIVE
        assert active['auto_renew'] is True
        assert active['cancellation_reason'] is None
        assert subscriptions_collection().count_documents({'client_id': client['_id']}) == 1

    def test_failed_insert_without_previous_subscription(self, lifecycle, make_client, monkeypatch):
        client, user = make_client()

        def failing_save(self):
            raise PyMongoError('connection reset')

        monkeypatch.setattr(Subscription, 'save', failing_save)
        with pytest.raises(PyMongoError):
            lifecycle.subscribe(client['_id'], 'rooted', actor=user)
        assert Subscription.find_active(client['_id']) is None

    def test_unknown_tier(self, lifecycle, make_client):
        client, user = make_client()
        with pytest.raises(InvalidInput):
            lifecycle.subscribe(client['_id'], 'platinum', actor=user)

    def test_unknown_client(self, lifecycle, admin):
        with pytest.raises(NotFound):
            lifecycle.subscribe('64b7f0c2a1b2c3d4e5f60718', 'rooted', actor=admin)

    def test_client_cannot_subscribe_someone_else(self, lifecycle, make_client):
        client, _ = make_client()
        _, other_user = make_client()
        with pytest.raises(Forbidden):
            lifecycle.subscribe(client['_id'], 'rooted', actor=other_user)

    def test_pending_then_activate(self, lifecycle, make_client):
        client, user = make_client()
        current = lifecycle.subscribe(client['_id'], 'rooted', actor=user)
        pending = lifecycle.subscribe(client['_id'], 'flourish', actor=user, pending=True)

        assert pending['status'] == SubscriptionStatus.PENDING
        assert Subscription.find_active(client['_id'])['_id'] == current['_id']

        activated = lifecycle.activate(pending['_id'], actor=user)
        assert activated['status'] == SubscriptionStatus.ACTIVE
        assert Subscription.find_by_id(current['_id'])['cancellation_reason'] == 'superseded'

        with pytest.raises(Conflict):
            lifecycle.activate(pending['_id'], actor=user)

    def test_notifies_client(self, lifecycle, make_client, db):
        client, user = make_client()
        lifecycle.subscribe(client['_id'], 'bloom', actor=user)
        note = db.notifications.find_one({'recipient_id': user['_id']})
        assert note['event'] == 'subscription_started'


# =============================================================================
# cancel
# =============================================================================

class TestCancel:

    def test_cancel_active(self, lifecycle, make_client):
        client, user = make_client()
        sub = lifecycle.subscribe(client['_id'], 'rooted', actor=user)
        cancelled = lifecycle.cancel(sub['_id'], 'Moving abroad', actor=user)

        assert cancelled['status'] == SubscriptionStatus.CANCELLED
        assert cancelled['cancellation_reason'] == 'Moving abroad'
        assert cancelled['auto_renew'] is False
        assert lifecycle.current_subscription(client['_id']) is None

    def test_cancel_requires_active(self, lifecycle, make_client):
        client, user = make_client()
        sub = lifecycle.subscribe(client['_id'], 'rooted', actor=user)
        lifecycle.cancel(sub['_id'], actor=user)
        with pytest.raises(Conflict):
            lifecycle.cancel(sub['_id'], actor=user)

    def test_cancel_current_without_subscription(self, lifecycle, make_client):
        client, user = make_client()
        with pytest.raises(NotFound):
            lifecycle.cancel_current(client['_id'], actor=user)

    def test_history_newest_first(self, lifecycle, make_client, clock):
        client, user = make_client()
        first = lifecycle.subscribe(client['_id'], 'rooted', actor=user)
        clock.advance(days=1)
        second = lifecycle.subscribe(client['_id'], 'bloom', actor=user)
        history = lifecycle.subscription_history(client['_id'], actor=user)
        assert [s['_id'] for s in history] == [second['_id'], first['_id']]


# =============================================================================
# remaining_sessions
# =============================================================================

class TestRemainingSessions:

    def test_without_subscription(self, lifecycle, make_client):
        client, user = make_client()
        quota = lifecycle.remaining_sessions(client['_id'], actor=user)
        assert quota['remaining_sessions'] == 0
        assert quota['subscription'] is None

    def test_four_week_quota_is_advisory(self, lifecycle, make_client, make_therapist, clock):
        client, user = make_client()
        therapist, _ = make_therapist()
        lifecycle.subscribe(client['_id'], 'rooted', actor=user)
        sessions = SessionLifecycle(clock=clock, subscriptions=lifecycle)

        remaining = []
        for day in range(1, 6):
            result = sessions.create(
                therapist['_id'], client['_id'],
                (clock() + timedelta(days=day)).date().isoformat(), '10:00',
                actor=user,
            )
            remaining.append(result.quota['remaining_sessions'])

        # The fifth booking is accepted; the count stops at zero
        assert remaining == [3, 2, 1, 0, 0]
        assert result.quota['used_sessions'] == 5
        assert sessions_collection().count_documents({'client_id': client['_id']}) == 5

    def test_only_sessions_inside_the_period_count(self, lifecycle, make_client, make_therapist, clock):
        client, user = make_client()
        therapist, _ = make_therapist()
        lifecycle.subscribe(client['_id'], 'rooted', actor=user)
        sessions = SessionLifecycle(clock=clock, subscriptions=lifecycle)

        inside = sessions.create(therapist['_id'], client['_id'], '2026-03-10', '10:00').session
        sessions.create(therapist['_id'], client['_id'], '2026-03-31', '10:00')  # next period
        cancelled = sessions.create(therapist['_id'], client['_id'], '2026-03-12', '10:00').session
        sessions.cancel(cancelled['_id'], 'sick')

        quota = lifecycle.remaining_sessions(client['_id'], actor=user)
        assert quota['used_sessions'] == 1
        assert quota['remaining_sessions'] == 3
        assert quota['period_end'] == clock() + timedelta(days=28)
        assert sessions_collection().find_one({'_id': inside['_id']})['status'] == SessionStatus.SCHEDULED.value

    def test_sessions_on_the_start_day_count(self, lifecycle, make_client, make_therapist, clock):
        client, user = make_client()
        therapist, _ = make_therapist()
        lifecycle.subscribe(client['_id'], 'rooted', actor=user)
        sessions = SessionLifecycle(clock=clock, subscriptions=lifecycle)

        # Subscribed at 09:00; an earlier slot the same day is still inside day 0
        result = sessions.create(therapist['_id'], client['_id'], '2026-03-02', '08:00', actor=user)
        assert result.quota['used_sessions'] == 1

        for day, slot in (('2026-03-02', '15:00'), ('2026-03-16', '10:00'), ('2026-03-29', '18:00')):
            result = sessions.create(therapist['_id'], client['_id'], day, slot, actor=user)
        assert result.quota['remaining_sessions'] == 0

        # Day 28 opens the next window
        sessions.create(therapist['_id'], client['_id'], '2026-03-30', '08:00')
        assert lifecycle.remaining_sessions(client['_id'], actor=user)['used_sessions'] == 4
