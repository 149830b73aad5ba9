# Overview: Flask API routes for platform-admin support access; parses input and returns JSON responses.

"""
Platform-admin routes.

Provides endpoints for:
- Listing every tenant
- Selecting the tenant a support session acts on
- Reading a tenant's security event trail

Every endpoint requires an authenticated user on the platform-admin
allow-list. Selecting a tenant issues a new session flagged platform_admin so
all later decisions and audit events carry the override.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_platform_admin
from ..services import audit_service, session_service
from ..services.platform_admin import PlatformAdminError, list_all_tenants, select_tenant

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.get("/tenants")
@require_auth
@require_platform_admin
def list_tenants():
    return jsonify([tenant.to_dict() for tenant in list_all_tenants()]), 200


@admin_bp.post("/select-tenant")
@require_auth
@require_platform_admin
def choose_tenant():
    """
    Body:
    - tenant_id: int (optional; defaults to the admin's own tenant, then the first tenant)
    """
    data = request.get_json() or {}
    try:
        tenant = select_tenant(g.current_user, data.get("tenant_id"))
    except PlatformAdminError as exc:
        return jsonify({"error": str(exc)}), 404

    _, token = session_service.create_session(
        g.current_user.id,
        tenant.id,
        platform_admin=True,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    audit_service.log_security_event(
        user_id=g.current_user.id,
        event_type="TENANT_SELECTED",
        success=True,
        resource=request.path,
        action=request.method,
        reason=f"Platform admin selected tenant {tenant.id}",
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
        tenant_id=tenant.id,
        platform_admin=True,
    )
    return jsonify({"token": token, "tenant": tenant.to_dict()}), 200


@admin_bp.get("/tenants/<int:tenant_id>/security-events")
@require_auth
@require_platform_admin
def security_events(tenant_id: int):
    """
    Query params:
    - limit: int (default 100)
    - platform_admin_only: bool (default false)
    """
    limit = request.args.get("limit", 100, type=int)
    admin_only = request.args.get("platform_admin_only", "false").lower() == "true"
    events = audit_service.list_security_events(tenant_id, limit=limit, platform_admin_only=admin_only)
    return jsonify([event.to_dict() for event in events]), 200
