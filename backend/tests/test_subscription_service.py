"""
Subscription state tests.

Verifies trial bootstrap, effective status (expiry without a job rewriting
the row), tier changes, usage counters and the monthly reset.
"""

import pytest
from datetime import datetime, timedelta

from coreaccess.extensions import db, feed
from coreaccess.models import Subscription
from coreaccess.permissions import Module
from coreaccess.plans import Tier
from coreaccess.services import subscription_service, team_service
from coreaccess.services.access_engine import DenyReason, decide
from coreaccess.services.change_feed import subscription_topic
from coreaccess.time_utils import utcnow


def _record(tenant_id) -> Subscription:
    return subscription_service.get_subscription(tenant_id)


class TestInitialSubscription:
    def test_new_tenant_starts_on_trial(self, tenant):
        state = subscription_service.get_subscription_state(tenant.id)
        assert state.status == "trialing"
        assert state.tier == Tier.PROFESSIONAL
        assert state.in_trial
        assert state.trial_days_remaining == 14
        assert state.current_usage.users == 1
        assert state.current_usage.locations == 1

    def test_only_one_subscription_per_tenant(self, tenant):
        with pytest.raises(subscription_service.SubscriptionError):
            subscription_service.create_initial_subscription(tenant.id)

    def test_unknown_tier_rejected(self, tenant):
        with pytest.raises(subscription_service.SubscriptionError):
            subscription_service.change_tier(tenant.id, "platinum")

    def test_no_subscription_reads_as_none(self, db_session):
        assert subscription_service.get_subscription_state(999) is None
        assert not subscription_service.is_active(None)
        assert not subscription_service.in_trial(None)


class TestEffectiveStatus:
    def test_trial_past_end_reads_expired(self, tenant):
        record = _record(tenant.id)
        record.trial_end_date = utcnow() - timedelta(minutes=1)
        record.end_date = utcnow() + timedelta(days=1)
        db.session.commit()

        state = subscription_service.get_subscription_state(tenant.id)
        assert state.status == "expired"
        assert not state.is_active
        assert state.trial_days_remaining == 0

    def test_active_past_end_reads_expired(self, tenant):
        subscription_service.change_tier(tenant.id, Tier.PROFESSIONAL)
        record = _record(tenant.id)
        record.end_date = utcnow() - timedelta(seconds=1)
        db.session.commit()

        assert subscription_service.get_subscription_state(tenant.id).status == "expired"
        # The stored row is untouched
        assert _record(tenant.id).status == "active"

    def test_non_active_statuses_are_kept(self, tenant):
        subscription_service.update_status(tenant.id, "past_due")
        assert subscription_service.get_subscription_state(tenant.id).status == "past_due"

    def test_trial_days_round_up(self, tenant):
        record = _record(tenant.id)
        now = datetime(2026, 5, 1, 12, 0, 0)
        record.trial_end_date = now + timedelta(days=2, hours=1)
        assert subscription_service.trial_days_remaining(record, now) == 3
        assert subscription_service.trial_days_remaining(None, now) == 0


class TestTierChanges:
    def test_change_tier_activates(self, tenant):
        subscription_service.change_tier(tenant.id, Tier.ENTERPRISE, "yearly")
        state = subscription_service.get_subscription_state(tenant.id)
        assert state.tier == Tier.ENTERPRISE
        assert state.status == "active"
        assert state.billing_cycle == "yearly"
        assert state.features.api_access
        assert (state.end_date - state.start_date).days in (365, 366)

    def test_invalid_billing_cycle(self, tenant):
        with pytest.raises(subscription_service.SubscriptionError):
            subscription_service.change_tier(tenant.id, Tier.STARTER, "weekly")

    def test_cancel_sets_canceled_at(self, tenant):
        subscription_service.update_status(tenant.id, "canceled")
        assert _record(tenant.id).canceled_at is not None
        with pytest.raises(subscription_service.SubscriptionError):
            subscription_service.update_status(tenant.id, "paused")

    def test_writes_publish_to_subscription_topic(self, tenant):
        seen = []
        feed.subscribe(subscription_topic(tenant.id), lambda topic, payload: seen.append(payload["action"]))
        subscription_service.change_tier(tenant.id, Tier.STARTER)
        subscription_service.track_usage(tenant.id, "products", 3)
        assert seen == ["change_tier", "track_usage"]

    def test_upgrade_opens_team_management(self, other_tenant):
        owner = team_service.list_members(other_tenant.id)[0]
        member = team_service.get_member_snapshot(other_tenant.id, owner.user_id)

        before = decide(member, subscription_service.get_subscription_state(other_tenant.id), Module.TEAM_MANAGEMENT)
        assert before.reason == DenyReason.FEATURE_NOT_ENTITLED

        subscription_service.change_tier(other_tenant.id, Tier.PROFESSIONAL)
        after = decide(member, subscription_service.get_subscription_state(other_tenant.id), Module.TEAM_MANAGEMENT)
        assert after.allowed

    @pytest.mark.parametrize(
        "start,cycle,expected",
        [
            (datetime(2026, 1, 31), "monthly", datetime(2026, 2, 28)),
            (datetime(2026, 12, 15), "monthly", datetime(2027, 1, 15)),
            (datetime(2028, 2, 29), "yearly", datetime(2029, 2, 28)),
        ],
    )
    def test_period_end(self, start, cycle, expected):
        assert subscription_service.period_end(start, cycle) == expected


class TestUsageCounters:
    def test_track_usage(self, tenant):
        subscription_service.track_usage(tenant.id, "products", 5)
        subscription_service.track_usage(tenant.id, "products", -2)
        assert subscription_service.get_subscription_state(tenant.id).current_usage.products == 3

    def test_never_below_zero(self, tenant):
        subscription_service.track_usage(tenant.id, "suppliers", -4)
        assert subscription_service.get_subscription_state(tenant.id).current_usage.suppliers == 0

    def test_unknown_counter(self, tenant):
        with pytest.raises(subscription_service.SubscriptionError):
            subscription_service.track_usage(tenant.id, "spaceships", 1)

    def test_monthly_reset(self, tenant, other_tenant):
        for tenant_id in (tenant.id, other_tenant.id):
            subscription_service.track_usage(tenant_id, "orders_this_month", 40)
            subscription_service.track_usage(tenant_id, "api_calls_this_month", 7)
            subscription_service.track_usage(tenant_id, "products", 9)

        assert subscription_service.reset_monthly_usage(tenant.id) == 1
        usage = subscription_service.get_subscription_state(tenant.id).current_usage
        assert (usage.orders_this_month, usage.api_calls_this_month, usage.products) == (0, 0, 9)
        assert subscription_service.get_subscription_state(other_tenant.id).current_usage.orders_this_month == 40

        assert subscription_service.reset_monthly_usage() == 2
        assert subscription_service.get_subscription_state(other_tenant.id).current_usage.orders_this_month == 0
