"""
Multi-Tenant Service: Tenant Bootstrap and Scoping Helpers

Every request acts on exactly one tenant (g.tenant_id). Location ids coming
from client input are validated against that tenant before use, and
cross-tenant attempts are logged as security events.

USAGE:
    from coreaccess.services.tenant_service import require_location_in_tenant

    location = require_location_in_tenant(location_id, g.tenant_id)
"""

from __future__ import annotations

from flask import current_app, g, has_request_context, request
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Location, Tenant
from ..permissions import Role
from ..plans import Tier
from .audit_service import log_security_event
from . import location_service, subscription_service, team_service


class TenantAccessError(Exception):
    """Raised when cross-tenant access is attempted."""
    pass


def get_current_tenant_id() -> int:
    """
    Tenant of the current request.

    Raises TenantAccessError if require_auth has not established one.
    """
    tenant_id = getattr(g, "tenant_id", None)
    if tenant_id is None:
        raise TenantAccessError("Tenant context not established")
    return tenant_id


def create_tenant(name: str, *, code: str | None = None, owner_user_id: int | None = None,
                  tier: str = Tier.STARTER) -> Tenant:
    """
    Create a tenant with everything it needs to be usable: a trial
    subscription, the main location, and (optionally) its first owner.
    """
    name = (name or "").strip()
    if not name:
        raise TenantAccessError("Tenant name is required")

    tenant = Tenant(name=name, code=(code or "").strip() or None, is_active=True)
    db.session.add(tenant)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise TenantAccessError("Tenant code already exists") from exc

    subscription_service.create_initial_subscription(tenant.id, tier)
    main = location_service.ensure_main_exists(tenant.id)

    if owner_user_id is not None:
        team_service.add_member(tenant.id, owner_user_id, Role.OWNER, location_ids=[main.id])

    current_app.logger.info("Created tenant %s (%s)", tenant.id, tenant.name)
    return tenant


def get_tenant(tenant_id: int) -> Tenant | None:
    return db.session.query(Tenant).filter_by(id=tenant_id).first()


def list_tenants() -> list[Tenant]:
    return db.session.query(Tenant).order_by(Tenant.id.asc()).all()


def require_location_in_tenant(location_id: str, tenant_id: int) -> Location:
    """
    Validate that a location belongs to the tenant.

    Locations of other tenants are reported exactly like missing ones so
    their existence is not revealed.
    """
    location = db.session.query(Location).filter_by(id=location_id).first()

    if not location:
        _log_cross_tenant_attempt(f"Location {location_id} not found", tenant_id=tenant_id)
        raise TenantAccessError("Location not found")

    if location.tenant_id != tenant_id:
        _log_cross_tenant_attempt(
            f"Location {location_id} belongs to tenant {location.tenant_id}, not {tenant_id}",
            tenant_id=tenant_id,
            location_id=location_id,
        )
        raise TenantAccessError("Location not found")

    return location


def _log_cross_tenant_attempt(reason: str, *, tenant_id: int, location_id: str | None = None) -> None:
    user = getattr(g, "current_user", None)
    in_request = has_request_context()
    log_security_event(
        user_id=user.id if user else None,
        event_type="CROSS_TENANT_ACCESS_DENIED",
        success=False,
        resource=request.path if in_request else None,
        action=request.method if in_request else None,
        reason=reason,
        ip_address=request.remote_addr if in_request else None,
        user_agent=request.headers.get("User-Agent") if in_request else None,
        tenant_id=tenant_id,
        location_id=location_id,
        platform_admin=bool(getattr(g, "platform_admin", False)),
    )
