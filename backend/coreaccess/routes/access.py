# Overview: Flask API routes exposing the decision engine as pure queries.

from flask import Blueprint, current_app, jsonify, request, g

from ..decorators import current_subscription, request_location_id, require_auth
from ..permissions import (
    ALL_MODULES,
    DEFAULT_ROLE_PERMISSIONS,
    PERMISSION_DEFINITIONS,
    ROLE_MODULES,
    ROLES,
    is_known_module,
)
from ..plans import USAGE_FOR_LIMIT
from ..services.access_engine import get_policy
from ..services.usage_limits import limit_summary


access_bp = Blueprint("access", __name__, url_prefix="/api/access")


@access_bp.post("/decide")
@require_auth
def decide():
    """Decision for one module. Always 200: a denial is an answer, not an error."""
    data = request.get_json() or {}
    module = data.get("module")
    if not module:
        return jsonify({"error": "module is required"}), 400
    if not is_known_module(module):
        return jsonify({"error": f"Unknown module: {module}"}), 400

    decision = get_policy().decide(
        g.member,
        current_subscription(),
        module,
        data.get("location_id"),
        platform_admin=g.platform_admin,
    )
    return jsonify({"module": module, **decision.to_dict()}), 200


@access_bp.get("/permissions/<path:permission>")
@require_auth
def has_permission(permission: str):
    location_id = request_location_id()
    allowed = get_policy().has_permission(g.member, permission, location_id, platform_admin=g.platform_admin)
    return jsonify({"permission": permission, "location_id": location_id, "allowed": allowed}), 200


@access_bp.get("/modules")
@require_auth
def modules():
    location_id = request_location_id()
    subscription = current_subscription()
    policy = get_policy()
    return jsonify({
        module: policy.decide(g.member, subscription, module, location_id, platform_admin=g.platform_admin).to_dict()
        for module in ALL_MODULES
    }), 200


@access_bp.get("/limits")
@require_auth
def limits():
    """Every plan limit with current usage and the advisory warning flag."""
    subscription = current_subscription()
    if subscription is None:
        return jsonify({"error": "Tenant has no subscription"}), 404

    threshold = current_app.config.get("USAGE_WARNING_THRESHOLD", 0.8)
    usage = subscription.current_usage
    return jsonify({
        key: limit_summary(subscription.limits, key, getattr(usage, usage_key), threshold)
        for key, usage_key in USAGE_FOR_LIMIT.items()
    }), 200


@access_bp.get("/roles")
@require_auth
def roles():
    """Static role table and the permission-string catalog."""
    return jsonify({
        "roles": [
            {
                "role": role,
                "modules": sorted(ROLE_MODULES[role]),
                "default_permissions": DEFAULT_ROLE_PERMISSIONS[role],
            }
            for role in ROLES
        ],
        "permissions": [
            {"code": code, "name": name, "description": description, "category": category}
            for code, name, description, category in PERMISSION_DEFINITIONS
        ],
    }), 200
