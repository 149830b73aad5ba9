# Overview: Combined role + subscription authorization decisions.

"""
Authorization Decision Engine

Every module-level access question ("may this member open analytics at this
location?") and every fine-grained action question ("may this member delete
inventory?") is answered here, as a value. Nothing in this module raises for
a denial or writes to the database.

Inputs are passed explicitly:
- member: anything with role, status, location_ids and permissions
  (a TeamMember row or a MemberSnapshot). None means no membership.
- subscription: a SubscriptionState, or None when the tenant has no record.

Module rules, first match wins:
1. no member / inactive member                  -> NO_MEMBERSHIP / MEMBERSHIP_INACTIVE
2. owner or platform admin skips 3, 3b and 7
3. location outside member.location_ids          -> LOCATION_NOT_ACCESSIBLE
3b. module outside the role's allow-list         -> ROLE_CAPPED
4. no subscription: owner keeps the fallback modules, everyone else denied
5. subscription not trialing/active              -> SUBSCRIPTION_INACTIVE
6. module's feature off in the plan              -> FEATURE_NOT_ENTITLED
7. staff outside the staff-safe modules          -> ROLE_CAPPED
8. allow
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..plans import USAGE_FOR_LIMIT

from ..permissions import (
    WILDCARD,
    ALL_MODULES,
    Role,
    Capability,
    ModuleCapability,
    ActionCapability,
    OWNER_FALLBACK_MODULES,
    STAFF_SAFE_MODULES,
    is_known_module,
    modules_for_role,
    required_feature,
)


ACTIVE_SUBSCRIPTION_STATUSES = frozenset({"trialing", "active"})
ACTIVE_MEMBER_STATUS = "active"


class DenyReason:
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    NO_MEMBERSHIP = "NO_MEMBERSHIP"
    MEMBERSHIP_INACTIVE = "MEMBERSHIP_INACTIVE"
    LOCATION_NOT_ACCESSIBLE = "LOCATION_NOT_ACCESSIBLE"
    ROLE_CAPPED = "ROLE_CAPPED"
    SUBSCRIPTION_INACTIVE = "SUBSCRIPTION_INACTIVE"
    FEATURE_NOT_ENTITLED = "FEATURE_NOT_ENTITLED"
    LIMIT_REACHED = "LIMIT_REACHED"


DENY_MESSAGES = {
    DenyReason.NOT_AUTHENTICATED: "not authenticated",
    DenyReason.NO_MEMBERSHIP: "no active membership",
    DenyReason.MEMBERSHIP_INACTIVE: "no active membership",
    DenyReason.LOCATION_NOT_ACCESSIBLE: "location not accessible",
    DenyReason.ROLE_CAPPED: "role not permitted",
    DenyReason.SUBSCRIPTION_INACTIVE: "subscription inactive",
    DenyReason.FEATURE_NOT_ENTITLED: "feature not in plan",
    DenyReason.LIMIT_REACHED: "limit reached",
}

# Denials the caller can lift by moving to a bigger plan
UPGRADE_REASONS = frozenset({DenyReason.FEATURE_NOT_ENTITLED, DenyReason.LIMIT_REACHED})


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str | None = None
    message: str = ""
    platform_admin: bool = False

    @classmethod
    def allow(cls, *, platform_admin: bool = False) -> "Decision":
        return cls(True, None, "", platform_admin)

    @classmethod
    def deny(cls, reason: str, *, platform_admin: bool = False, message: str | None = None) -> "Decision":
        return cls(False, reason, message or DENY_MESSAGES[reason], platform_admin)

    @property
    def upgrade_required(self) -> bool:
        return not self.allowed and self.reason in UPGRADE_REASONS

    def __bool__(self) -> bool:
        return self.allowed

    def to_dict(self) -> dict:
        data = {
            "allowed": self.allowed,
            "reason": self.reason,
            "message": self.message,
            "platform_admin": self.platform_admin,
        }
        if self.upgrade_required:
            data["upgrade_required"] = True
        return data


def _is_owner(member) -> bool:
    return member is not None and member.role == Role.OWNER


def membership_denial(member, platform_admin: bool) -> Decision | None:
    if platform_admin:
        return None
    if member is None:
        return Decision.deny(DenyReason.NO_MEMBERSHIP)
    if member.status != ACTIVE_MEMBER_STATUS:
        return Decision.deny(DenyReason.MEMBERSHIP_INACTIVE)
    return None


def _location_denied(member, location_id: str | None) -> bool:
    return location_id is not None and location_id not in (member.location_ids or [])


def precheck(member, module: str, location_id: str | None = None, *, platform_admin: bool = False) -> Decision | None:
    """
    Rules 1-3b only: everything decidable without subscription data.

    Returns a denial, or None when the answer depends on the subscription.
    """
    denial = membership_denial(member, platform_admin)
    if denial is not None:
        return denial

    # Unknown modules are closed to everyone, owners included
    if not is_known_module(module):
        return Decision.deny(DenyReason.ROLE_CAPPED, platform_admin=platform_admin)

    if platform_admin or _is_owner(member):
        return None

    if _location_denied(member, location_id):
        return Decision.deny(DenyReason.LOCATION_NOT_ACCESSIBLE)

    if module not in modules_for_role(member.role):
        return Decision.deny(DenyReason.ROLE_CAPPED)

    return None


def decide(member, subscription, module: str, location_id: str | None = None, *, platform_admin: bool = False) -> Decision:
    """Full module decision. Pure; safe to call on every render."""
    denial = precheck(member, module, location_id, platform_admin=platform_admin)
    if denial is not None:
        return denial

    privileged = platform_admin or _is_owner(member)

    if subscription is None:
        if privileged and module in OWNER_FALLBACK_MODULES:
            return Decision.allow(platform_admin=platform_admin)
        return Decision.deny(DenyReason.SUBSCRIPTION_INACTIVE, platform_admin=platform_admin)

    if subscription.status not in ACTIVE_SUBSCRIPTION_STATUSES:
        return Decision.deny(DenyReason.SUBSCRIPTION_INACTIVE, platform_admin=platform_admin)

    feature = required_feature(module)
    if feature is not None and not subscription.features.is_enabled(feature):
        return Decision.deny(DenyReason.FEATURE_NOT_ENTITLED, platform_admin=platform_admin)

    if not privileged and member.role == Role.STAFF and module not in STAFF_SAFE_MODULES:
        return Decision.deny(DenyReason.ROLE_CAPPED)

    return Decision.allow(platform_admin=platform_admin)


def decide_feature(subscription, feature: str, *, platform_admin: bool = False) -> Decision:
    """Plan-only check of one feature flag (rules 4-6 without the role rules)."""
    if subscription is None or subscription.status not in ACTIVE_SUBSCRIPTION_STATUSES:
        return Decision.deny(DenyReason.SUBSCRIPTION_INACTIVE, platform_admin=platform_admin)
    if not subscription.features.is_enabled(feature):
        return Decision.deny(DenyReason.FEATURE_NOT_ENTITLED, platform_admin=platform_admin)
    return Decision.allow(platform_admin=platform_admin)


def _permission_decision(member, permission: str, location_id: str | None, platform_admin: bool) -> Decision:
    denial = membership_denial(member, platform_admin)
    if denial is not None:
        return denial

    if platform_admin or _is_owner(member):
        return Decision.allow(platform_admin=platform_admin)

    if _location_denied(member, location_id):
        return Decision.deny(DenyReason.LOCATION_NOT_ACCESSIBLE)

    granted = member.permissions or []
    if permission in granted or WILDCARD in granted:
        return Decision.allow()

    return Decision.deny(DenyReason.ROLE_CAPPED)


def has_permission(member, permission: str, location_id: str | None = None, *, platform_admin: bool = False) -> bool:
    """
    Fine-grained action check.

    Owners hold every permission. For everyone else the location must be
    accessible and the string (or "*") must be in member.permissions. The
    subscription is not consulted.
    """
    return _permission_decision(member, permission, location_id, platform_admin).allowed


def check(member, subscription, capability: Capability, location_id: str | None = None, *,
          platform_admin: bool = False) -> Decision:
    """Single entry point over both capability kinds."""
    if isinstance(capability, ModuleCapability):
        return decide(member, subscription, capability.module, location_id, platform_admin=platform_admin)
    if isinstance(capability, ActionCapability):
        return _permission_decision(member, capability.permission, location_id, platform_admin)
    raise TypeError(f"Unsupported capability: {capability!r}")


def accessible_modules(member, subscription, location_id: str | None = None, *, platform_admin: bool = False) -> dict[str, Decision]:
    """Decision for every known module; drives navigation."""
    return {
        module: decide(member, subscription, module, location_id, platform_admin=platform_admin)
        for module in ALL_MODULES
    }


class DecisionPolicy:
    """
    The policy installed on the application. Routes and decorators go through
    it (current_app.extensions["coreaccess.policy"]) rather than calling the
    module functions directly.
    """

    name = "decision"

    def decide(self, member, subscription, module, location_id=None, *, platform_admin=False) -> Decision:
        return decide(member, subscription, module, location_id, platform_admin=platform_admin)

    def has_permission(self, member, permission, location_id=None, *, platform_admin=False) -> bool:
        return has_permission(member, permission, location_id, platform_admin=platform_admin)

    def check(self, member, subscription, capability, location_id=None, *, platform_admin=False) -> Decision:
        return check(member, subscription, capability, location_id, platform_admin=platform_admin)

    def membership(self, member, *, platform_admin=False) -> Decision | None:
        return membership_denial(member, platform_admin)

    def decide_feature(self, subscription, feature, *, platform_admin=False) -> Decision:
        return decide_feature(subscription, feature, platform_admin=platform_admin)

    def check_limit(self, subscription, limit_key, *, platform_admin=False) -> Decision:
        """Hard usage-limit check against the subscription's own counters."""
        from .usage_limits import check_limit

        if subscription is None or subscription.status not in ACTIVE_SUBSCRIPTION_STATUSES:
            return Decision.deny(DenyReason.SUBSCRIPTION_INACTIVE, platform_admin=platform_admin)
        current = getattr(subscription.current_usage, USAGE_FOR_LIMIT[limit_key])
        return check_limit(subscription.limits, limit_key, current, platform_admin=platform_admin)


POLICY_EXTENSION_KEY = "coreaccess.policy"


def get_policy() -> DecisionPolicy:
    return current_app.extensions[POLICY_EXTENSION_KEY]
