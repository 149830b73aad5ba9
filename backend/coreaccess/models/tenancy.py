from __future__ import annotations

from ..extensions import db
from coreaccess.time_utils import to_utc_z, utcnow


LOCATION_TYPES = ("main", "branch", "warehouse", "kiosk")
LOCATION_STATUSES = ("active", "inactive", "maintenance")


class Tenant(db.Model):
    """
    Multi-tenant root: every business account is a Tenant.

    All locations, team memberships and the subscription belong to exactly
    one tenant. Tenants are never deleted; deactivate instead.
    """
    __tablename__ = "tenants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)  # Short code for lookups

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Location(db.Model):
    """
    Physical or logical site of a tenant (store, warehouse, kiosk).

    Ids carry a fixed "location_" prefix; the Branch projection id is the
    same value with the prefix stripped.

    INVARIANT: exactly one location per tenant has type "main". Enforced by
    location_service, not by the schema.
    """
    __tablename__ = "locations"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "name", name="uq_locations_tenant_name"),
        db.Index("ix_locations_tenant_type", "tenant_id", "type"),
    )

    id = db.Column(db.String(64), primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    type = db.Column(db.String(16), nullable=False, default="branch")
    status = db.Column(db.String(16), nullable=False, default="active")

    # {"street", "city", "state", "zip_code", "country"}
    address = db.Column(db.JSON, nullable=False, default=dict)
    # {"phone", "email", "manager"}
    contact = db.Column(db.JSON, nullable=False, default=dict)
    # {"timezone", "currency", "business_hours": {weekday: {...}}, "features": {...}}
    settings = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    tenant = db.relationship("Tenant", backref=db.backref("locations", lazy=True))

    def __repr__(self) -> str:
        return f"<Location id={self.id} name={self.name!r} type={self.type} tenant_id={self.tenant_id}>"

    @property
    def is_main(self) -> bool:
        return self.type == "main"

    def address_line(self) -> str:
        address = self.address or {}
        parts = [address.get(key) for key in ("street", "city", "state", "zip_code", "country")]
        return ", ".join(part for part in parts if part)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "type": self.type,
            "status": self.status,
            "address": self.address or {},
            "contact": self.contact or {},
            "settings": self.settings or {},
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Branch(db.Model):
    """
    Denormalized display projection of a Location, used by the location switcher.

    Soft-deleted (is_deleted) when its location goes away so historical
    stat references keep resolving.
    """
    __tablename__ = "branches"
    __table_args__ = (
        db.Index("ix_branches_tenant_deleted", "tenant_id", "is_deleted"),
    )

    id = db.Column(db.String(64), primary_key=True)
    location_id = db.Column(db.String(64), nullable=False, unique=True, index=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.String(512), nullable=False, default="")
    phone = db.Column(db.String(64), nullable=True)
    manager = db.Column(db.String(120), nullable=True)
    is_main = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(16), nullable=False, default="active")

    # {"total_revenue", "total_orders", "inventory_value", "staff_count"}
    stats = db.Column(db.JSON, nullable=False, default=dict)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "manager": self.manager,
            "is_main": self.is_main,
            "status": self.status,
            "stats": self.stats or {},
            "is_deleted": self.is_deleted,
            "deleted_at": to_utc_z(self.deleted_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class LocationUsage(db.Model):
    """Per-location activity counters (one row per location)."""
    __tablename__ = "location_usage"

    location_id = db.Column(db.String(64), primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    active_users = db.Column(db.Integer, nullable=False, default=0)
    products = db.Column(db.Integer, nullable=False, default=0)
    orders_this_month = db.Column(db.Integer, nullable=False, default=0)
    last_activity = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "location_id": self.location_id,
            "tenant_id": self.tenant_id,
            "active_users": self.active_users,
            "products": self.products,
            "orders_this_month": self.orders_this_month,
            "last_activity": to_utc_z(self.last_activity),
        }


class LocationInventory(db.Model):
    """Join record: stock of one product at one location. Id is "<location_id>_<product_id>"."""
    __tablename__ = "location_inventory"

    id = db.Column(db.String(160), primary_key=True)
    location_id = db.Column(db.String(64), nullable=False, index=True)
    product_id = db.Column(db.String(64), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "reorder_level": self.reorder_level,
            "updated_at": to_utc_z(self.updated_at),
        }


class LocationAnalytics(db.Model):
    """Periodic per-location rollup. Id is "<location_id>_<period>_<epoch_ms>"."""
    __tablename__ = "location_analytics"
    __table_args__ = (
        db.Index("ix_location_analytics_loc_period_date", "location_id", "period", "date"),
    )

    id = db.Column(db.String(200), primary_key=True)
    location_id = db.Column(db.String(64), nullable=False, index=True)
    period = db.Column(db.String(16), nullable=False)  # daily, weekly, monthly, yearly
    date = db.Column(db.DateTime(timezone=True), nullable=False)

    revenue_cents = db.Column(db.Integer, nullable=False, default=0)
    orders = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "period": self.period,
            "date": to_utc_z(self.date),
            "revenue_cents": self.revenue_cents,
            "orders": self.orders,
        }
