# Overview: Flask API routes for the signed-in identity; returns who the caller is and what they hold.

from flask import Blueprint, jsonify, g, request

from ..decorators import current_subscription, require_auth
from ..permissions import ALL_MODULES
from ..services import session_service, team_service, tenant_service
from ..services.access_engine import get_policy


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.get("/me")
@require_auth
def me():
    """
    Identity, tenant, membership and subscription snapshot for the caller,
    with the module decisions the navigation needs.
    """
    tenant = tenant_service.get_tenant(g.tenant_id) if g.tenant_id is not None else None
    subscription = current_subscription()
    policy = get_policy()

    modules = {
        module: policy.decide(g.member, subscription, module, platform_admin=g.platform_admin).to_dict()
        for module in ALL_MODULES
    }

    return jsonify({
        "user": g.current_user.to_dict(),
        "tenant": tenant.to_dict() if tenant else None,
        "platform_admin": g.platform_admin,
        "member": team_service.get_member(g.tenant_id, g.current_user.id).to_dict() if g.member else None,
        "subscription": subscription.to_dict() if subscription else None,
        "modules": modules,
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout():
    token = request.headers.get("Authorization", "").split(" ", 1)[1]
    session_service.revoke_session(token)
    return jsonify({"message": "Logged out"}), 200
