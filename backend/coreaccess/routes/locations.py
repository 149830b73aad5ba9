# Overview: Flask API routes for locations and the active-location selection; parses input and returns JSON responses.

from dataclasses import asdict

from flask import Blueprint, jsonify, request, g

from ..decorators import (
    require_auth,
    require_feature,
    require_member,
    require_module,
    require_permission,
    require_within_limit,
)
from ..permissions import Module
from ..services import branch_service, location_service, tenant_service
from ..services.access_engine import Decision, DenyReason
from ..services.location_switch import resolve_active_location, switch_active_location
from ..time_utils import parse_iso_datetime


locations_bp = Blueprint("locations", __name__, url_prefix="/api/locations")


def _location_error(exc: location_service.LocationError):
    if isinstance(exc, location_service.LocationNotAccessibleError):
        decision = Decision.deny(DenyReason.LOCATION_NOT_ACCESSIBLE)
        return jsonify({"error": "Access denied", "reason": decision.reason, "message": decision.message}), 403
    if isinstance(exc, location_service.MainLocationDeletionError):
        return jsonify({"error": str(exc)}), 409
    return jsonify({"error": str(exc)}), 400


def _require_location(location_id: str):
    """Location of the request's tenant; other tenants' ids surface as 404 via TenantAccessError."""
    return tenant_service.require_location_in_tenant(location_id, tenant_service.get_current_tenant_id())


@locations_bp.get("")
@require_auth
@require_member
def list_locations():
    """Locations the caller may work in (all of them for owners and platform admins)."""
    locations = location_service.list_locations(g.tenant_id)
    accessible = location_service.get_accessible_locations(g.member, locations, platform_admin=g.platform_admin)
    return jsonify([location.to_dict() for location in accessible]), 200


@locations_bp.post("")
@require_auth
@require_module(Module.LOCATION_MANAGEMENT)
@require_permission("locations.manage")
@require_within_limit("max_locations")
def create_location():
    data = request.get_json() or {}
    try:
        result = location_service.create_location(g.tenant_id, data)
    except location_service.LocationError as exc:
        return _location_error(exc)
    return jsonify(result.to_dict()), 201


@locations_bp.get("/branches")
@require_auth
@require_member
@require_feature("multi_location")
def list_branches():
    """Branch projections for the location switcher, filtered like the locations list."""
    include_deleted = request.args.get("include_deleted", "false").lower() == "true"
    branches = branch_service.list_branches(g.tenant_id, include_deleted=include_deleted)
    accessible = location_service.get_accessible_locations(
        g.member,
        branches,
        platform_admin=g.platform_admin,
        key=lambda branch: branch.location_id,
    )
    return jsonify([branch.to_dict() for branch in accessible]), 200


# =============================================================================
# ACTIVE LOCATION
# =============================================================================

@locations_bp.get("/active")
@require_auth
@require_member
def get_active_location():
    """
    Resolve the location to display.

    Query params:
    - selection: location id chosen earlier in this session (optional)
    """
    locations = location_service.get_accessible_locations(
        g.member,
        location_service.list_location_summaries(g.tenant_id),
        platform_admin=g.platform_admin,
    )
    active_id = resolve_active_location(
        request.args.get("selection"),
        g.current_user.active_location_id,
        locations,
    )
    return jsonify({"location_id": active_id}), 200


@locations_bp.put("/active")
@require_auth
@require_member
def set_active_location():
    data = request.get_json() or {}
    target = data.get("location_id")
    if not target:
        return jsonify({"error": "location_id is required"}), 400
    try:
        state = switch_active_location(
            g.tenant_id,
            g.current_user,
            target,
            member=g.member,
            platform_admin=g.platform_admin,
        )
    except location_service.LocationError as exc:
        return _location_error(exc)
    return jsonify({"state": type(state).__name__.lower(), **asdict(state)}), 200


# =============================================================================
# SINGLE LOCATION
# =============================================================================

@locations_bp.get("/<location_id>")
@require_auth
@require_permission("locations.read")
def get_location(location_id: str):
    location = _require_location(location_id)
    return jsonify(location.to_dict()), 200


@locations_bp.put("/<location_id>")
@require_auth
@require_module(Module.LOCATION_MANAGEMENT)
@require_permission("locations.manage")
def update_location(location_id: str):
    data = request.get_json() or {}
    try:
        result = location_service.update_location(g.tenant_id, location_id, data)
    except location_service.LocationError as exc:
        return _location_error(exc)
    return jsonify(result.to_dict()), 200


@locations_bp.delete("/<location_id>")
@require_auth
@require_module(Module.LOCATION_MANAGEMENT)
@require_permission("locations.delete")
def delete_location(location_id: str):
    """
    Delete a location and its per-location records.

    The main location cannot be deleted (409). Storage failures surface as
    503 through the app-level handlers so the client can retry.
    """
    try:
        result = location_service.delete_location(g.tenant_id, location_id)
    except location_service.LocationError as exc:
        return _location_error(exc)
    return jsonify(result.to_dict()), 200


@locations_bp.post("/<location_id>/main")
@require_auth
@require_module(Module.LOCATION_MANAGEMENT)
@require_permission("locations.manage")
def set_main_location(location_id: str):
    try:
        result = location_service.set_main_location(g.tenant_id, location_id)
    except location_service.LocationError as exc:
        return _location_error(exc)
    return jsonify(result.to_dict()), 200


# =============================================================================
# PER-LOCATION RECORDS
# =============================================================================

@locations_bp.get("/<location_id>/usage")
@require_auth
@require_permission("locations.read")
def get_location_usage(location_id: str):
    _require_location(location_id)
    usage = location_service.get_location_usage(location_id)
    return jsonify(usage.to_dict() if usage else None), 200


@locations_bp.put("/<location_id>/usage")
@require_auth
@require_permission("locations.manage")
def update_location_usage(location_id: str):
    data = request.get_json() or {}
    try:
        usage = location_service.update_location_usage(g.tenant_id, location_id, **data)
    except location_service.LocationError as exc:
        return _location_error(exc)
    return jsonify(usage.to_dict()), 200


@locations_bp.get("/<location_id>/inventory")
@require_auth
@require_module(Module.INVENTORY)
@require_permission("inventory.read")
def get_location_inventory(location_id: str):
    _require_location(location_id)
    rows = location_service.get_location_inventory(location_id, request.args.get("product_id"))
    return jsonify([row.to_dict() for row in rows]), 200


@locations_bp.put("/<location_id>/inventory/<product_id>")
@require_auth
@require_module(Module.INVENTORY)
@require_permission("inventory.update")
def update_location_inventory(location_id: str, product_id: str):
    _require_location(location_id)
    data = request.get_json() or {}
    row = location_service.update_location_inventory(
        location_id,
        product_id,
        quantity=data.get("quantity"),
        reorder_level=data.get("reorder_level"),
    )
    return jsonify(row.to_dict()), 200


@locations_bp.get("/<location_id>/analytics")
@require_auth
@require_module(Module.ANALYTICS)
@require_permission("analytics.read")
def get_location_analytics(location_id: str):
    """
    Query params:
    - period: daily | weekly | monthly | yearly (default daily)
    - start, end: ISO-8601 bounds (optional)
    """
    _require_location(location_id)
    try:
        rows = location_service.get_location_analytics(
            location_id,
            request.args.get("period", "daily"),
            start=parse_iso_datetime(request.args.get("start")),
            end=parse_iso_datetime(request.args.get("end")),
        )
    except ValueError:
        return jsonify({"error": "Invalid date"}), 400
    except location_service.LocationError as exc:
        return _location_error(exc)
    return jsonify([row.to_dict() for row in rows]), 200
