from __future__ import annotations

from ..extensions import db
from coreaccess.time_utils import to_utc_z

class SecurityEvent(db.Model):
    """
    Security event audit log with tenant context.

    MULTI-TENANT: Events are scoped to tenants for isolation.

    platform_admin marks decisions taken under the platform-admin override so
    support access is always distinguishable from member access.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_user_type", "user_id", "event_type"),
        db.Index("ix_security_events_occurred", "occurred_at"),
        db.Index("ix_security_events_tenant_occurred", "tenant_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=True, index=True)  # Nullable for pre-auth events
    location_id = db.Column(db.String(64), nullable=True, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)  # Nullable for anonymous

    # Event classification
    event_type = db.Column(db.String(64), nullable=False, index=True)  # ACCESS_DENIED, PLATFORM_ADMIN_ACCESS, LIMIT_REACHED, ...
    resource = db.Column(db.String(128), nullable=True)  # e.g., "/api/locations"
    action = db.Column(db.String(64), nullable=True)     # e.g., "team-management", "inventory.delete"

    success = db.Column(db.Boolean, nullable=False, index=True)
    reason = db.Column(db.Text, nullable=True)  # e.g., "FEATURE_NOT_ENTITLED: feature not in plan"
    platform_admin = db.Column(db.Boolean, nullable=False, default=False, index=True)

    # Client context
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "location_id": self.location_id,
            "user_id": self.user_id,
            "event_type": self.event_type,
            "resource": self.resource,
            "action": self.action,
            "success": self.success,
            "reason": self.reason,
            "platform_admin": self.platform_admin,
            "ip_address": self.ip_address,
            "occurred_at": to_utc_z(self.occurred_at),
        }
