# Overview: Flask API routes for the tenant roster and invitations; parses input and returns JSON responses.

"""
Team routes.

Roster reads need users.read; invitations need users.invite and a free seat
under max_users; role, status and location edits need users.manage; removal
needs users.remove. The last active owner can be neither demoted nor removed
(409).
"""

from flask import Blueprint, jsonify, request, g

from ..decorators import require_auth, require_module, require_permission, require_within_limit
from ..permissions import Module
from ..services import team_service


team_bp = Blueprint("team", __name__, url_prefix="/api/team")


def _team_error(exc: team_service.TeamError):
    if isinstance(exc, team_service.LastOwnerError):
        return jsonify({"error": str(exc)}), 409
    if "not found" in str(exc).lower():
        return jsonify({"error": str(exc)}), 404
    return jsonify({"error": str(exc)}), 400


@team_bp.get("/members")
@require_auth
@require_module(Module.TEAM_MANAGEMENT)
@require_permission("users.read")
def list_members():
    status = request.args.get("status")
    members = team_service.list_members(g.tenant_id, status=status)
    return jsonify([member.to_dict() for member in members]), 200


@team_bp.put("/members/<int:user_id>")
@require_auth
@require_module(Module.TEAM_MANAGEMENT)
@require_permission("users.manage")
def update_member(user_id: int):
    data = request.get_json() or {}
    try:
        member = team_service.update_team_member(
            g.tenant_id,
            user_id,
            role=data.get("role"),
            status=data.get("status"),
            location_ids=data.get("location_ids"),
            permissions=data.get("permissions"),
        )
    except team_service.TeamError as exc:
        return _team_error(exc)
    return jsonify(member.to_dict()), 200


@team_bp.delete("/members/<int:user_id>")
@require_auth
@require_module(Module.TEAM_MANAGEMENT)
@require_permission("users.remove")
def remove_member(user_id: int):
    try:
        team_service.remove_team_member(g.tenant_id, user_id)
    except team_service.TeamError as exc:
        return _team_error(exc)
    return jsonify({"message": "Team member removed"}), 200


@team_bp.get("/invitations")
@require_auth
@require_module(Module.TEAM_MANAGEMENT)
@require_permission("users.read")
def list_invitations():
    status = request.args.get("status", "pending")
    invitations = team_service.list_invitations(g.tenant_id, status=None if status == "all" else status)
    return jsonify([invitation.to_dict() for invitation in invitations]), 200


@team_bp.post("/invitations")
@require_auth
@require_module(Module.TEAM_MANAGEMENT)
@require_permission("users.invite")
@require_within_limit("max_users")
def invite_member():
    data = request.get_json() or {}
    try:
        invitation = team_service.invite_team_member(
            g.tenant_id,
            data.get("email"),
            data.get("role"),
            data.get("location_ids"),
            data.get("permissions"),
            invited_by_user_id=g.current_user.id,
        )
    except team_service.TeamError as exc:
        return _team_error(exc)
    return jsonify(invitation.to_dict()), 201


@team_bp.delete("/invitations/<int:invitation_id>")
@require_auth
@require_module(Module.TEAM_MANAGEMENT)
@require_permission("users.invite")
def revoke_invitation(invitation_id: int):
    try:
        invitation = team_service.revoke_invitation(g.tenant_id, invitation_id)
    except team_service.TeamError as exc:
        return _team_error(exc)
    return jsonify(invitation.to_dict()), 200


@team_bp.post("/invitations/<int:invitation_id>/accept")
@require_auth
def accept_invitation(invitation_id: int):
    """Accept an invitation addressed to the caller's email. No membership is needed yet."""
    try:
        member = team_service.accept_invitation(invitation_id, g.current_user)
    except team_service.TeamError as exc:
        return _team_error(exc)
    return jsonify(member.to_dict()), 201
