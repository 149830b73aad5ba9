from __future__ import annotations

from ..extensions import db
from coreaccess.time_utils import to_utc_z, utcnow


class User(db.Model):
    """
    Identity record for a person who signs in.

    A user may be a member of several tenants (see TeamMember). Credentials
    live with the identity provider, never here.

    active_location_id is the persisted "last chosen location" on the user's
    profile; it scopes what is displayed, it never grants access.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    display_name = db.Column(db.String(120), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    active_location_id = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "display_name": self.display_name,
            "is_active": self.is_active,
            "active_location_id": self.active_location_id,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class TeamMember(db.Model):
    """
    Roster entry: (tenant, user) -> role, status, accessible locations, permission strings.

    location_ids is ignored for owners (owners see every location).
    permissions holds fine-grained strings such as "inventory.delete", or "*".
    Removal deletes the row; there is no tombstone.
    """
    __tablename__ = "team_members"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "user_id", name="uq_team_members_tenant_user"),
        db.Index("ix_team_members_tenant_status", "tenant_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    role = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="active")

    location_ids = db.Column(db.JSON, nullable=False, default=list)
    permissions = db.Column(db.JSON, nullable=False, default=list)

    invited_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    joined_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    last_login = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("memberships", lazy=True))
    tenant = db.relationship("Tenant", backref=db.backref("members", lazy=True))

    def __repr__(self) -> str:
        return f"<TeamMember tenant_id={self.tenant_id} user_id={self.user_id} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "email": self.user.email if self.user else None,
            "display_name": self.user.display_name if self.user else None,
            "role": self.role,
            "status": self.status,
            "location_ids": list(self.location_ids or []),
            "permissions": list(self.permissions or []),
            "invited_by_user_id": self.invited_by_user_id,
            "joined_at": to_utc_z(self.joined_at),
            "updated_at": to_utc_z(self.updated_at),
            "last_login": to_utc_z(self.last_login),
        }


class TeamInvitation(db.Model):
    """
    Pending invitation to join a tenant. Accepting it creates the TeamMember.

    status: pending -> accepted | expired | revoked
    """
    __tablename__ = "team_invitations"
    __table_args__ = (
        db.Index("ix_team_invitations_tenant_email", "tenant_id", "email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(16), nullable=False)

    location_ids = db.Column(db.JSON, nullable=False, default=list)
    permissions = db.Column(db.JSON, nullable=True)

    invited_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="pending")
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "email": self.email,
            "role": self.role,
            "location_ids": list(self.location_ids or []),
            "permissions": list(self.permissions) if self.permissions is not None else None,
            "invited_by_user_id": self.invited_by_user_id,
            "status": self.status,
            "expires_at": to_utc_z(self.expires_at),
            "accepted_at": to_utc_z(self.accepted_at),
            "created_at": to_utc_z(self.created_at),
        }


class SessionToken(db.Model):
    """
    Bearer session issued by the identity layer.

    MULTI-TENANT: tenant_id is the tenant the session acts on. For platform
    admins it is whatever tenant they selected; for everyone else it is a
    tenant they are a member of.

    SECURITY NOTES:
    - Tokens stored hashed in database (SHA-256)
    - Absolute and idle timeouts
    - Revocable on logout or tenant switch
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        db.Index("ix_session_tokens_tenant_id", "tenant_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=True)

    # Set when the session was opened under the platform-admin override
    platform_admin = db.Column(db.Boolean, nullable=False, default=False)

    # Token hash (never store plaintext tokens!)
    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)  # IPv6 max length

    user = db.relationship("User", backref=db.backref("session_tokens", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "tenant_id": self.tenant_id,
            "platform_admin": self.platform_admin,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }
