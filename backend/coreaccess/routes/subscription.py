# Overview: Flask API routes for the tenant subscription and the plan catalog.

from flask import Blueprint, jsonify, request, g

from ..decorators import current_subscription, denial_response, require_auth, require_member, require_platform_admin
from ..permissions import Role
from ..plans import list_plans
from ..services import subscription_service
from ..services.access_engine import Decision, DenyReason


subscription_bp = Blueprint("subscription", __name__, url_prefix="/api/subscription")


@subscription_bp.get("")
@require_auth
@require_member
def get_subscription():
    subscription = current_subscription()
    if subscription is None:
        return jsonify({"error": "Tenant has no subscription"}), 404
    return jsonify(subscription.to_dict()), 200


@subscription_bp.get("/plans")
@require_auth
def plans():
    return jsonify([plan.to_dict() for plan in list_plans()]), 200


@subscription_bp.put("/tier")
@require_auth
@require_member
def change_tier():
    """
    Move the tenant to another tier. Owners only.

    Not gated on the business-config module: an owner must still be able to
    upgrade out of an expired or canceled subscription.
    """
    if not g.platform_admin and g.member.role != Role.OWNER:
        return denial_response(Decision.deny(DenyReason.ROLE_CAPPED), action="subscription.change_tier")

    data = request.get_json() or {}
    try:
        subscription_service.change_tier(g.tenant_id, data.get("tier"), data.get("billing_cycle"))
    except subscription_service.SubscriptionError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(subscription_service.get_subscription_state(g.tenant_id).to_dict()), 200


@subscription_bp.put("/status")
@require_auth
@require_platform_admin
def update_status():
    data = request.get_json() or {}
    try:
        subscription_service.update_status(g.tenant_id, data.get("status"))
    except subscription_service.SubscriptionError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(subscription_service.get_subscription_state(g.tenant_id).to_dict()), 200
