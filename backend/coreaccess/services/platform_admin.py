# Overview: Platform-admin override: allow-listed support identities acting on any tenant.

"""
A platform admin is identified by e-mail against the PLATFORM_ADMIN_EMAILS
allow-list in config. They may act on a tenant without a membership there;
every decision made for them carries platform_admin=True so the audit trail
can tell support access apart from member access.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Tenant, TeamMember


class PlatformAdminError(Exception):
    """Raised when a platform-admin operation is not possible."""
    pass


def is_platform_admin(email: str | None) -> bool:
    if not email:
        return False
    allowed = current_app.config.get("PLATFORM_ADMIN_EMAILS") or frozenset()
    return email.strip().lower() in allowed


def select_tenant(user, requested_tenant_id: int | None = None) -> Tenant:
    """
    Tenant a platform admin acts on:

    1. the explicitly requested tenant
    2. the admin's own tenant (first membership by tenant id)
    3. the first tenant by id
    """
    if requested_tenant_id is not None:
        tenant = db.session.query(Tenant).filter_by(id=requested_tenant_id).first()
        if tenant is None:
            raise PlatformAdminError("Tenant not found")
        return tenant

    own = (
        db.session.query(TeamMember)
        .filter_by(user_id=user.id)
        .order_by(TeamMember.tenant_id.asc())
        .first()
    )
    if own is not None:
        return own.tenant

    tenant = db.session.query(Tenant).order_by(Tenant.id.asc()).first()
    if tenant is None:
        raise PlatformAdminError("No tenants exist")
    return tenant


def list_all_tenants() -> list[Tenant]:
    return db.session.query(Tenant).order_by(Tenant.id.asc()).all()
