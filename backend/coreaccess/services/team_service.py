# Overview: Service-layer operations for the team roster: invitations, membership edits and removal.

"""
Team Membership Store

One TeamMember row per (tenant, user). Writes go through this module only;
every successful write publishes members:<tenant>:<user> so open gates
re-evaluate.

INVARIANTS:
- A tenant always keeps at least one active owner.
- location_ids reference locations of the same tenant.
- permissions are known permission strings or "*".
- The subscription's users counter moves in the same commit as the
  membership row it counts.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db, feed
from ..models import Location, TeamInvitation, TeamMember, User
from ..permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    ROLES,
    Role,
    is_valid_role,
    validate_permission_code,
)
from ..time_utils import as_naive_utc, utcnow
from .change_feed import members_topic
from .concurrency import lock_for_update, persist
from .errors import LimitReachedError
from . import subscription_service
from .usage_limits import limit_value, within_limit


MEMBER_STATUSES = ("active", "inactive", "pending")


class TeamError(Exception):
    """Raised when team operations fail."""
    pass


class LastOwnerError(TeamError):
    """Raised when a change would leave the tenant without an active owner."""
    pass


@dataclass(frozen=True)
class MemberSnapshot:
    """Detached, immutable view of a TeamMember for the decision engine and watchers."""
    tenant_id: int
    user_id: int
    role: str
    status: str
    location_ids: tuple[str, ...] = ()
    permissions: tuple[str, ...] = ()
    email: str | None = None
    display_name: str | None = None

    @classmethod
    def from_model(cls, member: TeamMember) -> "MemberSnapshot":
        user = member.user
        return cls(
            tenant_id=member.tenant_id,
            user_id=member.user_id,
            role=member.role,
            status=member.status,
            location_ids=tuple(member.location_ids or ()),
            permissions=tuple(member.permissions or ()),
            email=user.email if user else None,
            display_name=user.display_name if user else None,
        )


def _publish(tenant_id: int, user_id: int, action: str) -> None:
    feed.publish(members_topic(tenant_id, user_id), {"action": action})


def _validate_role(role: str) -> None:
    if not is_valid_role(role):
        raise TeamError(f"Invalid role: {role}. Expected one of {', '.join(ROLES)}")


def _existing_location_ids(tenant_id: int, location_ids) -> set[str]:
    if not location_ids:
        return set()
    return {
        row.id
        for row in db.session.query(Location.id).filter(
            Location.tenant_id == tenant_id,
            Location.id.in_(list(location_ids)),
        )
    }


def _validate_locations(tenant_id: int, location_ids) -> list[str]:
    location_ids = list(dict.fromkeys(location_ids or []))
    if not location_ids:
        return []
    found = _existing_location_ids(tenant_id, location_ids)
    missing = [location_id for location_id in location_ids if location_id not in found]
    if missing:
        raise TeamError(f"Unknown location(s) for this tenant: {', '.join(missing)}")
    return location_ids


def _validate_permissions(permissions) -> list[str]:
    permissions = list(dict.fromkeys(permissions or []))
    invalid = [code for code in permissions if not validate_permission_code(code)]
    if invalid:
        raise TeamError(f"Unknown permission(s): {', '.join(invalid)}")
    return permissions


def _active_owner_count(tenant_id: int) -> int:
    return db.session.query(TeamMember).filter_by(
        tenant_id=tenant_id, role=Role.OWNER, status="active"
    ).count()


def _check_user_limit(tenant_id: int) -> None:
    state = subscription_service.get_subscription_state(tenant_id)
    if state is None:
        return
    current = state.current_usage.users
    if not within_limit(state.limits, "max_users", current):
        raise LimitReachedError("max_users", limit_value(state.limits, "max_users"), current)


def get_member(tenant_id: int, user_id: int) -> TeamMember | None:
    return db.session.query(TeamMember).filter_by(tenant_id=tenant_id, user_id=user_id).first()


def get_member_snapshot(tenant_id: int, user_id: int) -> MemberSnapshot | None:
    member = get_member(tenant_id, user_id)
    return MemberSnapshot.from_model(member) if member else None


def list_members(tenant_id: int, *, status: str | None = None) -> list[TeamMember]:
    query = db.session.query(TeamMember).filter_by(tenant_id=tenant_id)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(TeamMember.joined_at.asc(), TeamMember.id.asc()).all()


def memberships_for_user(user_id: int) -> list[TeamMember]:
    return (
        db.session.query(TeamMember)
        .filter_by(user_id=user_id)
        .order_by(TeamMember.tenant_id.asc())
        .all()
    )


def _take_seat(tenant_id: int, *, enforce_limit: bool) -> bool:
    """
    Count one more user on the locked subscription row. Runs inside the
    caller's transaction; returns False when the tenant has no subscription.
    """
    subscription = subscription_service.lock_subscription(tenant_id)
    if subscription is None:
        return False
    if enforce_limit:
        limits = subscription_service.resolve(subscription).limits
        current = subscription.usage_users or 0
        if not within_limit(limits, "max_users", current):
            raise LimitReachedError("max_users", limit_value(limits, "max_users"), current)
    subscription_service.apply_usage(subscription, "users", 1)
    return True


def _new_member(tenant_id: int, user_id: int, role: str, location_ids, permissions,
                invited_by_user_id: int | None, status: str, *, enforce_limit: bool = True):
    """Checks, seat, then the row; nothing is added to the session before a refusal. Caller commits."""
    if not db.session.query(User).filter_by(id=user_id).first():
        raise TeamError("User not found")
    if get_member(tenant_id, user_id):
        raise TeamError("User is already a member of this tenant")

    counted = _take_seat(tenant_id, enforce_limit=enforce_limit)
    member = TeamMember(
        tenant_id=tenant_id,
        user_id=user_id,
        role=role,
        status=status,
        location_ids=location_ids,
        permissions=permissions,
        invited_by_user_id=invited_by_user_id,
        joined_at=utcnow(),
    )
    db.session.add(member)
    return member, counted


def add_member(
    tenant_id: int,
    user_id: int,
    role: str,
    *,
    location_ids=None,
    permissions=None,
    invited_by_user_id: int | None = None,
    status: str = "active",
    enforce_limit: bool = True,
) -> TeamMember:
    """
    Put a user on the roster directly (tenant bootstrap, CLI). permissions
    default to the role's defaults.

    The member row and the tenant's user counter are written in one commit.
    max_users is checked first unless enforce_limit is False.
    """
    _validate_role(role)
    if status not in MEMBER_STATUSES:
        raise TeamError(f"Invalid status: {status}")
    location_ids = _validate_locations(tenant_id, location_ids)
    permissions = _validate_permissions(
        DEFAULT_ROLE_PERMISSIONS[role] if permissions is None else permissions
    )

    def _op():
        member, counted = _new_member(
            tenant_id, user_id, role, location_ids, permissions, invited_by_user_id, status,
            enforce_limit=enforce_limit,
        )
        db.session.commit()
        return member, counted

    member, counted = persist(_op, action="add team member")
    _publish(tenant_id, user_id, "added")
    if counted:
        subscription_service.publish_change(tenant_id, "track_usage")
    current_app.logger.info("Added user %s to tenant %s as %s", user_id, tenant_id, role)
    return member


def invite_team_member(
    tenant_id: int,
    email: str,
    role: str,
    location_ids=None,
    permissions=None,
    *,
    invited_by_user_id: int | None = None,
) -> TeamInvitation:
    """Create a pending invitation. Fails when the plan's user limit is used up."""
    email = (email or "").strip().lower()
    if not email or "@" not in email:
        raise TeamError("A valid email is required")
    _validate_role(role)
    location_ids = _validate_locations(tenant_id, location_ids)
    if permissions is not None:
        permissions = _validate_permissions(permissions)
    _check_user_limit(tenant_id)

    ttl_days = current_app.config.get("INVITATION_TTL_DAYS", 7)

    def _op():
        existing_user = db.session.query(User).filter_by(email=email).first()
        if existing_user and get_member(tenant_id, existing_user.id):
            raise TeamError("User is already a member of this tenant")

        pending = db.session.query(TeamInvitation).filter_by(
            tenant_id=tenant_id, email=email, status="pending"
        ).first()
        if pending and as_naive_utc(pending.expires_at) > utcnow():
            raise TeamError("An invitation for this email is already pending")
        if pending:
            pending.status = "expired"

        invitation = TeamInvitation(
            tenant_id=tenant_id,
            email=email,
            role=role,
            location_ids=location_ids,
            permissions=permissions,
            invited_by_user_id=invited_by_user_id,
            status="pending",
            expires_at=utcnow() + timedelta(days=ttl_days),
        )
        db.session.add(invitation)
        db.session.commit()
        return invitation

    invitation = persist(_op, action="invite team member")
    current_app.logger.info("Invited %s to tenant %s as %s", email, tenant_id, role)
    return invitation


def list_invitations(tenant_id: int, *, status: str | None = "pending") -> list[TeamInvitation]:
    query = db.session.query(TeamInvitation).filter_by(tenant_id=tenant_id)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(TeamInvitation.created_at.desc()).all()


def revoke_invitation(tenant_id: int, invitation_id: int) -> TeamInvitation:
    def _op():
        invitation = db.session.query(TeamInvitation).filter_by(id=invitation_id, tenant_id=tenant_id).first()
        if not invitation:
            raise TeamError("Invitation not found")
        if invitation.status != "pending":
            raise TeamError(f"Invitation is {invitation.status}")
        invitation.status = "revoked"
        db.session.commit()
        return invitation

    return persist(_op, action="revoke invitation")


def accept_invitation(invitation_id: int, user: User) -> TeamMember:
    """
    Turn a pending invitation into a membership for the signed-in user.

    The invitation email must match the user's email. Expired invitations are
    marked as such and rejected. The membership, the tenant's user counter and
    the invitation status are written in one commit.
    """
    invitation = db.session.query(TeamInvitation).filter_by(id=invitation_id).first()
    if not invitation:
        raise TeamError("Invitation not found")
    if invitation.status != "pending":
        raise TeamError(f"Invitation is {invitation.status}")
    if invitation.email != (user.email or "").lower():
        raise TeamError("Invitation was sent to a different email")
    if as_naive_utc(invitation.expires_at) <= utcnow():
        invitation.status = "expired"
        db.session.commit()
        raise TeamError("Invitation has expired")

    tenant_id = invitation.tenant_id
    # Locations may have been deleted since the invitation went out
    found = _existing_location_ids(tenant_id, invitation.location_ids)
    location_ids = [location_id for location_id in invitation.location_ids or [] if location_id in found]
    permissions = _validate_permissions(
        DEFAULT_ROLE_PERMISSIONS[invitation.role] if invitation.permissions is None else invitation.permissions
    )

    def _op():
        member, counted = _new_member(
            tenant_id, user.id, invitation.role, location_ids, permissions,
            invitation.invited_by_user_id, "active",
        )
        invitation.status = "accepted"
        invitation.accepted_at = utcnow()
        db.session.commit()
        return member, counted

    member, counted = persist(_op, action="accept invitation")
    _publish(tenant_id, user.id, "added")
    if counted:
        subscription_service.publish_change(tenant_id, "track_usage")
    current_app.logger.info("User %s accepted invitation %s to tenant %s", user.id, invitation_id, tenant_id)
    return member


def update_team_member(
    tenant_id: int,
    user_id: int,
    *,
    role: str | None = None,
    status: str | None = None,
    location_ids=None,
    permissions=None,
) -> TeamMember:
    if role is not None:
        _validate_role(role)
    if status is not None and status not in MEMBER_STATUSES:
        raise TeamError(f"Invalid status: {status}")
    if location_ids is not None:
        location_ids = _validate_locations(tenant_id, location_ids)
    if permissions is not None:
        permissions = _validate_permissions(permissions)

    def _op():
        member = lock_for_update(
            db.session.query(TeamMember).filter_by(tenant_id=tenant_id, user_id=user_id)
        ).first()
        if not member:
            raise TeamError("Team member not found")

        loses_owner = member.role == Role.OWNER and member.status == "active" and (
            (role is not None and role != Role.OWNER)
            or (status is not None and status != "active")
        )
        if loses_owner and _active_owner_count(tenant_id) <= 1:
            raise LastOwnerError("Cannot demote or deactivate the last owner")

        if role is not None:
            member.role = role
        if status is not None:
            member.status = status
        if location_ids is not None:
            member.location_ids = location_ids
        if permissions is not None:
            member.permissions = permissions
        db.session.commit()
        return member

    member = persist(_op, action="update team member")
    _publish(tenant_id, user_id, "updated")
    return member


def remove_team_member(tenant_id: int, user_id: int) -> None:
    """Delete the membership row. The user identity is kept."""
    def _op():
        member = lock_for_update(
            db.session.query(TeamMember).filter_by(tenant_id=tenant_id, user_id=user_id)
        ).first()
        if not member:
            raise TeamError("Team member not found")
        if member.role == Role.OWNER and member.status == "active" and _active_owner_count(tenant_id) <= 1:
            raise LastOwnerError("Cannot remove the last owner")
        subscription = subscription_service.lock_subscription(tenant_id)
        if subscription is not None:
            subscription_service.apply_usage(subscription, "users", -1)
        db.session.delete(member)
        db.session.commit()
        return subscription is not None

    counted = persist(_op, action="remove team member")
    _publish(tenant_id, user_id, "removed")
    if counted:
        subscription_service.publish_change(tenant_id, "track_usage")
    current_app.logger.info("Removed user %s from tenant %s", user_id, tenant_id)
