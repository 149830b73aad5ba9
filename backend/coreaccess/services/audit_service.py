# Overview: Append-only security event trail for denials and platform-admin access.

"""
Security Event Logging with Tenant Context

Policy:
- Denials are always logged.
- Grants are not logged, except grants made under the platform-admin
  override, which are logged so support access stays visible to the tenant.
- Events are never updated or deleted.
"""

from ..extensions import db
from ..models import SecurityEvent
from ..time_utils import utcnow


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    tenant_id: int | None = None,
    location_id: str | None = None,
    platform_admin: bool = False,
) -> SecurityEvent:
    """
    event_type examples:
    - ACCESS_DENIED
    - PERMISSION_DENIED
    - LIMIT_REACHED
    - PLATFORM_ADMIN_ACCESS
    - TENANT_SELECTED
    - CROSS_TENANT_ACCESS_DENIED
    - AUTH_FAILED
    """
    event = SecurityEvent(
        user_id=user_id,
        tenant_id=tenant_id,
        location_id=location_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        platform_admin=platform_admin,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return event


def log_decision(decision, *, user_id, tenant_id, action, resource=None, location_id=None,
                 ip_address=None, user_agent=None) -> SecurityEvent | None:
    """Record a Decision according to the policy above. Returns None when nothing is logged."""
    if decision.allowed and not decision.platform_admin:
        return None

    if decision.allowed:
        event_type = "PLATFORM_ADMIN_ACCESS"
        reason = None
    else:
        event_type = "LIMIT_REACHED" if decision.reason == "LIMIT_REACHED" else "ACCESS_DENIED"
        reason = f"{decision.reason}: {decision.message}"

    return log_security_event(
        user_id=user_id,
        event_type=event_type,
        success=decision.allowed,
        resource=resource,
        action=action,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        tenant_id=tenant_id,
        location_id=location_id,
        platform_admin=decision.platform_admin,
    )


def list_security_events(tenant_id: int, *, limit: int = 100, platform_admin_only: bool = False) -> list[SecurityEvent]:
    query = db.session.query(SecurityEvent).filter_by(tenant_id=tenant_id)
    if platform_admin_only:
        query = query.filter_by(platform_admin=True)
    return query.order_by(SecurityEvent.occurred_at.desc(), SecurityEvent.id.desc()).limit(limit).all()
