# Overview: Service-layer operations for subscriptions: resolve state, trials, tier changes, usage counters.

from __future__ import annotations

import calendar
import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db, feed
from ..models import Subscription, Tenant
from ..models.subscription import SUBSCRIPTION_STATUSES, BILLING_CYCLES
from ..plans import Features, Limits, Usage, Tier, USAGE_KEYS, get_plan, is_valid_tier
from ..time_utils import as_naive_utc, to_utc_z, utcnow
from .change_feed import subscription_topic
from .concurrency import lock_for_update, persist


# Counters zeroed by reset_monthly_usage
MONTHLY_USAGE_KEYS = ("orders_this_month", "api_calls_this_month")

ACTIVE_STATUSES = ("trialing", "active")


class SubscriptionError(Exception):
    """Raised when subscription operations fail."""
    pass


@dataclass(frozen=True)
class SubscriptionState:
    """
    Read model handed to the decision engine.

    status is the effective status: a trialing/active record whose end or
    trial date has passed reads as "expired" even before any job rewrites
    the row.
    """
    tenant_id: int
    tier: str
    plan_id: str
    status: str
    features: Features
    limits: Limits
    current_usage: Usage
    billing_cycle: str
    start_date: datetime | None = None
    end_date: datetime | None = None
    trial_end_date: datetime | None = None
    trial_days_remaining: int = 0

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def in_trial(self) -> bool:
        return self.status == "trialing" and self.trial_days_remaining > 0

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "tier": self.tier,
            "plan_id": self.plan_id,
            "status": self.status,
            "features": self.features.to_dict(),
            "limits": self.limits.to_dict(),
            "current_usage": self.current_usage.to_dict(),
            "billing_cycle": self.billing_cycle,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "trial_end_date": to_utc_z(self.trial_end_date),
            "trial_days_remaining": self.trial_days_remaining,
            "is_active": self.is_active,
            "in_trial": self.in_trial,
        }


def _add_months(dt: datetime, months: int) -> datetime:
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def period_end(start: datetime, billing_cycle: str) -> datetime:
    if billing_cycle == "yearly":
        return _add_months(start, 12)
    return _add_months(start, 1)


def trial_days_remaining(subscription: Subscription | None, now: datetime | None = None) -> int:
    """Whole days left in the trial, rounded up; 0 when there is no trial."""
    if subscription is None or subscription.trial_end_date is None:
        return 0
    now = now or utcnow()
    seconds = (as_naive_utc(subscription.trial_end_date) - now).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def effective_status(subscription: Subscription, now: datetime | None = None) -> str:
    now = now or utcnow()
    status = subscription.status
    if status not in ACTIVE_STATUSES:
        return status

    end_date = as_naive_utc(subscription.end_date)
    if end_date is not None and end_date <= now:
        return "expired"

    if status == "trialing":
        trial_end = as_naive_utc(subscription.trial_end_date)
        if trial_end is not None and trial_end <= now:
            return "expired"

    return status


def resolve(subscription: Subscription, now: datetime | None = None) -> SubscriptionState:
    """Combine the stored record with the plan catalog."""
    now = now or utcnow()
    if not is_valid_tier(subscription.tier):
        raise SubscriptionError(f"Unknown tier: {subscription.tier}")
    plan = get_plan(subscription.tier)

    return SubscriptionState(
        tenant_id=subscription.tenant_id,
        tier=subscription.tier,
        plan_id=subscription.plan_id,
        status=effective_status(subscription, now),
        features=plan.features,
        limits=plan.limits,
        current_usage=Usage(**subscription.usage_dict()),
        billing_cycle=subscription.billing_cycle,
        start_date=subscription.start_date,
        end_date=subscription.end_date,
        trial_end_date=subscription.trial_end_date,
        trial_days_remaining=trial_days_remaining(subscription, now),
    )


def get_subscription(tenant_id: int) -> Subscription | None:
    return db.session.query(Subscription).filter_by(tenant_id=tenant_id).first()


def get_subscription_state(tenant_id: int) -> SubscriptionState | None:
    subscription = get_subscription(tenant_id)
    if subscription is None:
        return None
    return resolve(subscription)


def is_active(state: SubscriptionState | None) -> bool:
    return state is not None and state.is_active


def in_trial(state: SubscriptionState | None) -> bool:
    return state is not None and state.in_trial


def _write(tenant_id: int, action: str, op):
    result = persist(op, action=f"{action} subscription")
    publish_change(tenant_id, action)
    return result


def _locked_subscription(tenant_id: int) -> Subscription:
    subscription = lock_for_update(db.session.query(Subscription).filter_by(tenant_id=tenant_id)).first()
    if not subscription:
        raise SubscriptionError("Subscription not found")
    return subscription


def create_initial_subscription(tenant_id: int, tier: str = Tier.STARTER, *,
                                trial_days: int | None = None) -> Subscription:
    """
    New tenants start on a trial of the given tier. The main location is
    counted from the start; members are counted by team_service as they join.
    """
    if not is_valid_tier(tier):
        raise SubscriptionError(f"Unknown tier: {tier}")
    if trial_days is None:
        trial_days = current_app.config.get("TRIAL_DAYS", 14)

    def _op():
        tenant = db.session.query(Tenant).filter_by(id=tenant_id).first()
        if not tenant:
            raise SubscriptionError("Tenant not found")
        if get_subscription(tenant_id) is not None:
            raise SubscriptionError("Tenant already has a subscription")

        now = utcnow()
        trial_end = now + timedelta(days=trial_days)
        subscription = Subscription(
            tenant_id=tenant_id,
            tier=tier,
            plan_id=get_plan(tier).id,
            status="trialing",
            billing_cycle="monthly",
            start_date=now,
            end_date=trial_end,
            trial_end_date=trial_end,
            usage_users=0,
            usage_locations=1,
        )
        db.session.add(subscription)
        db.session.commit()
        return subscription

    subscription = _write(tenant_id, "create", _op)
    current_app.logger.info("Started %s trial for tenant %s (%s days)", tier, tenant_id, trial_days)
    return subscription


def change_tier(tenant_id: int, tier: str, billing_cycle: str | None = None) -> Subscription:
    """Move to a tier as a paid, active subscription for one billing period."""
    if not is_valid_tier(tier):
        raise SubscriptionError(f"Unknown tier: {tier}")
    if billing_cycle is not None and billing_cycle not in BILLING_CYCLES:
        raise SubscriptionError(f"Invalid billing cycle: {billing_cycle}")

    def _op():
        subscription = _locked_subscription(tenant_id)
        now = utcnow()
        cycle = billing_cycle or subscription.billing_cycle
        subscription.tier = tier
        subscription.plan_id = get_plan(tier).id
        subscription.billing_cycle = cycle
        subscription.status = "active"
        subscription.start_date = now
        subscription.end_date = period_end(now, cycle)
        subscription.canceled_at = None
        db.session.commit()
        return subscription

    subscription = _write(tenant_id, "change_tier", _op)
    current_app.logger.info("Tenant %s moved to %s (%s)", tenant_id, tier, subscription.billing_cycle)
    return subscription


def update_status(tenant_id: int, status: str) -> Subscription:
    if status not in SUBSCRIPTION_STATUSES:
        raise SubscriptionError(f"Invalid status: {status}")

    def _op():
        subscription = _locked_subscription(tenant_id)
        subscription.status = status
        if status == "canceled":
            subscription.canceled_at = utcnow()
        db.session.commit()
        return subscription

    return _write(tenant_id, "update_status", _op)


def track_usage(tenant_id: int, key: str, amount: int = 1) -> Subscription:
    """
    Adjust one usage counter by amount (negative to release). Counters never
    go below zero. Callers check within_limit() before creating the resource.
    """
    if key not in USAGE_KEYS:
        raise SubscriptionError(f"Unknown usage counter: {key}")

    def _op():
        subscription = _locked_subscription(tenant_id)
        apply_usage(subscription, key, amount)
        db.session.commit()
        return subscription

    return _write(tenant_id, "track_usage", _op)


def lock_subscription(tenant_id: int) -> Subscription | None:
    """
    Subscription row locked for a read-modify-write inside another service's
    transaction. The caller commits and then calls publish_change().
    """
    return lock_for_update(db.session.query(Subscription).filter_by(tenant_id=tenant_id)).first()


def apply_usage(subscription: Subscription, key: str, amount: int) -> None:
    """Adjust a counter on a loaded row without committing. Never below zero."""
    if key not in USAGE_KEYS:
        raise SubscriptionError(f"Unknown usage counter: {key}")
    column = f"usage_{key}"
    setattr(subscription, column, max(0, (getattr(subscription, column) or 0) + amount))


def publish_change(tenant_id: int, action: str) -> None:
    feed.publish(subscription_topic(tenant_id), {"action": action})


def reset_monthly_usage(tenant_id: int | None = None) -> int:
    """Zero the per-month counters for one tenant, or for all when tenant_id is None."""
    def _op():
        query = db.session.query(Subscription)
        if tenant_id is not None:
            query = query.filter_by(tenant_id=tenant_id)
        subscriptions = query.all()
        for subscription in subscriptions:
            for key in MONTHLY_USAGE_KEYS:
                setattr(subscription, f"usage_{key}", 0)
        db.session.commit()
        return [subscription.tenant_id for subscription in subscriptions]

    tenant_ids = persist(_op, action="reset monthly usage")

    for reset_tenant_id in tenant_ids:
        feed.publish(subscription_topic(reset_tenant_id), {"action": "reset_monthly_usage"})
    current_app.logger.info("Reset monthly usage for %s subscription(s)", len(tenant_ids))
    return len(tenant_ids)
