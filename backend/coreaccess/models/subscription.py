from __future__ import annotations

from ..extensions import db
from coreaccess.time_utils import to_utc_z, utcnow


SUBSCRIPTION_STATUSES = ("trialing", "active", "past_due", "canceled", "expired")
BILLING_CYCLES = ("monthly", "yearly")


class Subscription(db.Model):
    """
    The tenant's plan record. One row per tenant.

    Features and limits are not stored; they are computed from the plan
    catalog (coreaccess.plans) at resolve time. The usage counters are owned
    by the features that increment them; the authorization core only reads.
    """
    __tablename__ = "subscriptions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, unique=True, index=True)

    tier = db.Column(db.String(32), nullable=False)
    plan_id = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="trialing")
    billing_cycle = db.Column(db.String(16), nullable=False, default="monthly")

    start_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)
    trial_end_date = db.Column(db.DateTime(timezone=True), nullable=True)
    canceled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Usage counters
    usage_users = db.Column(db.Integer, nullable=False, default=0)
    usage_locations = db.Column(db.Integer, nullable=False, default=0)
    usage_products = db.Column(db.Integer, nullable=False, default=0)
    usage_orders_this_month = db.Column(db.Integer, nullable=False, default=0)
    usage_suppliers = db.Column(db.Integer, nullable=False, default=0)
    usage_storage_used = db.Column(db.Integer, nullable=False, default=0)  # GB
    usage_api_calls_this_month = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    tenant = db.relationship("Tenant", backref=db.backref("subscription", uselist=False, lazy=True))

    def __repr__(self) -> str:
        return f"<Subscription tenant_id={self.tenant_id} tier={self.tier} status={self.status}>"

    def usage_dict(self) -> dict:
        return {
            "users": self.usage_users,
            "locations": self.usage_locations,
            "products": self.usage_products,
            "orders_this_month": self.usage_orders_this_month,
            "suppliers": self.usage_suppliers,
            "storage_used": self.usage_storage_used,
            "api_calls_this_month": self.usage_api_calls_this_month,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "tier": self.tier,
            "plan_id": self.plan_id,
            "status": self.status,
            "billing_cycle": self.billing_cycle,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "trial_end_date": to_utc_z(self.trial_end_date),
            "canceled_at": to_utc_z(self.canceled_at),
            "current_usage": self.usage_dict(),
            "updated_at": to_utc_z(self.updated_at),
        }
