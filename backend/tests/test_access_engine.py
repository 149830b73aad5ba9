"""
Decision engine tests.

Verifies the module rules in order (membership, location, role allow-list,
subscription, plan feature, staff cap), the fine-grained permission check,
and the platform-admin override. No database: members and subscriptions are
plain value objects.
"""

import pytest

from coreaccess.permissions import ActionCapability, ALL_MODULES, Module, ModuleCapability, Role
from coreaccess.plans import Tier, Usage, get_plan
from coreaccess.services.access_engine import (
    Decision,
    DenyReason,
    accessible_modules,
    check,
    decide,
    decide_feature,
    has_permission,
    precheck,
)
from coreaccess.services.subscription_service import SubscriptionState
from coreaccess.services.team_service import MemberSnapshot


def member(role=Role.STAFF, *, status="active", location_ids=("loc_a",), permissions=()):
    return MemberSnapshot(
        tenant_id=1,
        user_id=7,
        role=role,
        status=status,
        location_ids=tuple(location_ids),
        permissions=tuple(permissions),
    )


def subscription(tier=Tier.PROFESSIONAL, status="active", **usage):
    plan = get_plan(tier)
    return SubscriptionState(
        tenant_id=1,
        tier=tier,
        plan_id=plan.id,
        status=status,
        features=plan.features,
        limits=plan.limits,
        current_usage=Usage(**usage),
        billing_cycle="monthly",
    )


# =============================================================================
# MEMBERSHIP
# =============================================================================


class TestMembership:
    """Rule 1: no member or a non-active member is denied everything."""

    def test_no_member(self):
        decision = decide(None, subscription(), Module.POS)
        assert not decision.allowed
        assert decision.reason == DenyReason.NO_MEMBERSHIP

    @pytest.mark.parametrize("status", ["inactive", "pending"])
    def test_inactive_member_denied_even_as_owner(self, status):
        decision = decide(member(Role.OWNER, status=status), subscription(), Module.POS)
        assert decision.reason == DenyReason.MEMBERSHIP_INACTIVE

    def test_membership_checked_before_location(self):
        decision = decide(member(status="inactive"), subscription(), Module.POS, "elsewhere")
        assert decision.reason == DenyReason.MEMBERSHIP_INACTIVE


# =============================================================================
# LOCATION AND ROLE
# =============================================================================


class TestLocationAndRole:
    def test_location_outside_member_list(self):
        decision = decide(member(Role.MANAGER), subscription(), Module.POS, "loc_b")
        assert decision.reason == DenyReason.LOCATION_NOT_ACCESSIBLE

    def test_location_checked_before_role(self):
        decision = decide(member(Role.STAFF), subscription(), Module.BUSINESS_CONFIG, "loc_b")
        assert decision.reason == DenyReason.LOCATION_NOT_ACCESSIBLE

    def test_owner_ignores_location_list(self):
        decision = decide(member(Role.OWNER, location_ids=()), subscription(), Module.POS, "anywhere")
        assert decision.allowed

    def test_no_location_means_tenant_wide_question(self):
        assert decide(member(Role.MANAGER, location_ids=()), subscription(), Module.POS).allowed

    def test_module_outside_role_allow_list(self):
        decision = decide(member(Role.VIEWER), subscription(), Module.POS, "loc_a")
        assert decision.reason == DenyReason.ROLE_CAPPED

    def test_manager_cannot_open_business_config(self):
        decision = decide(member(Role.MANAGER), subscription(Tier.ENTERPRISE), Module.BUSINESS_CONFIG)
        assert decision.reason == DenyReason.ROLE_CAPPED

    def test_wildcard_permission_does_not_widen_modules(self):
        decision = decide(member(Role.STAFF, permissions=("*",)), subscription(), Module.TEAM_MANAGEMENT)
        assert decision.reason == DenyReason.ROLE_CAPPED

    def test_staff_confined_to_assigned_location(self):
        cashier = member(Role.STAFF, location_ids=("loc_2",))
        sub = subscription()
        denied = decide(cashier, sub, Module.INVENTORY, "loc_1")
        assert not denied.allowed
        assert denied.reason == DenyReason.LOCATION_NOT_ACCESSIBLE
        assert decide(cashier, sub, Module.INVENTORY, "loc_2").allowed

    def test_unknown_module_denied_for_owner(self):
        decision = decide(member(Role.OWNER), subscription(Tier.ENTERPRISE), "time-travel")
        assert not decision.allowed
        assert decision.reason == DenyReason.ROLE_CAPPED


# =============================================================================
# SUBSCRIPTION
# =============================================================================


class TestSubscription:
    @pytest.mark.parametrize("status", ["past_due", "canceled", "expired"])
    def test_inactive_subscription_denies(self, status):
        decision = decide(member(Role.OWNER), subscription(status=status), Module.POS)
        assert decision.reason == DenyReason.SUBSCRIPTION_INACTIVE

    def test_trialing_counts_as_active(self):
        assert decide(member(Role.OWNER), subscription(status="trialing"), Module.POS).allowed

    def test_missing_subscription_owner_fallback(self):
        owner = member(Role.OWNER)
        assert decide(owner, None, Module.POS).allowed
        assert decide(owner, None, Module.SETTINGS).allowed
        assert decide(owner, None, Module.ANALYTICS).reason == DenyReason.SUBSCRIPTION_INACTIVE

    def test_missing_subscription_denies_non_owner(self):
        decision = decide(member(Role.STAFF), None, Module.POS, "loc_a")
        assert decision.reason == DenyReason.SUBSCRIPTION_INACTIVE

    def test_feature_not_in_plan_requires_upgrade(self):
        decision = decide(member(Role.OWNER), subscription(Tier.STARTER), Module.ADVANCED_ANALYTICS)
        assert decision.reason == DenyReason.FEATURE_NOT_ENTITLED
        assert decision.upgrade_required
        assert decision.to_dict()["upgrade_required"] is True

    def test_owner_is_still_bound_by_the_plan(self):
        decision = decide(member(Role.OWNER), subscription(Tier.STARTER), Module.TEAM_MANAGEMENT)
        assert decision.reason == DenyReason.FEATURE_NOT_ENTITLED

    def test_manager_team_management_follows_tier(self):
        manager = member(Role.MANAGER)
        starter = decide(manager, subscription(Tier.STARTER), Module.TEAM_MANAGEMENT)
        assert starter.reason == DenyReason.FEATURE_NOT_ENTITLED
        assert decide(manager, subscription(Tier.PROFESSIONAL), Module.TEAM_MANAGEMENT).allowed

    def test_modules_without_feature_pass_on_every_plan(self):
        decision = decide(member(Role.OWNER), subscription(Tier.STARTER), Module.LOCATION_MANAGEMENT)
        assert decision.allowed


# =============================================================================
# STAFF CAP
# =============================================================================


class TestStaffCap:
    def test_staff_capped_to_safe_modules(self):
        decision = decide(member(Role.STAFF), subscription(Tier.ENTERPRISE), Module.PURCHASE_ORDERS, "loc_a")
        assert decision.reason == DenyReason.ROLE_CAPPED
        assert not decision.upgrade_required

    def test_staff_pos_allowed(self):
        assert decide(member(Role.STAFF), subscription(), Module.POS, "loc_a").allowed

    def test_plan_denial_wins_over_staff_cap(self):
        decision = decide(member(Role.STAFF), subscription(Tier.STARTER), Module.PURCHASE_ORDERS, "loc_a")
        assert decision.reason == DenyReason.FEATURE_NOT_ENTITLED


# =============================================================================
# PLATFORM ADMIN
# =============================================================================


class TestPlatformAdmin:
    def test_skips_membership_and_location(self):
        decision = decide(None, subscription(), Module.BUSINESS_CONFIG, "loc_z", platform_admin=True)
        assert decision.allowed
        assert decision.platform_admin

    def test_still_bound_by_subscription(self):
        decision = decide(None, subscription(status="canceled"), Module.POS, platform_admin=True)
        assert decision.reason == DenyReason.SUBSCRIPTION_INACTIVE
        assert decision.platform_admin

    def test_permission_check_allows(self):
        assert has_permission(None, "inventory.delete", "loc_z", platform_admin=True)

    def test_without_override_no_member_has_nothing(self):
        assert not has_permission(None, "inventory.read")
        assert check(None, subscription(), ActionCapability("inventory.read")).reason == DenyReason.NO_MEMBERSHIP


# =============================================================================
# PERMISSIONS
# =============================================================================


class TestPermissions:
    def test_owner_holds_every_permission(self):
        assert has_permission(member(Role.OWNER, permissions=()), "locations.delete", "loc_z")

    def test_listed_permission(self):
        staff = member(permissions=("inventory.read",))
        assert has_permission(staff, "inventory.read", "loc_a")
        assert not has_permission(staff, "inventory.delete", "loc_a")

    def test_wildcard_grants_every_action(self):
        assert has_permission(member(permissions=("*",)), "expenses.delete", "loc_a")

    def test_location_scoped(self):
        assert not has_permission(member(permissions=("*",)), "pos.read", "loc_b")

    def test_inactive_member_has_nothing(self):
        assert not has_permission(member(status="inactive", permissions=("*",)), "pos.read")

    def test_subscription_not_consulted(self):
        decision = check(member(permissions=("pos.read",)), subscription(status="canceled"),
                         ActionCapability("pos.read"), "loc_a")
        assert decision.allowed


# =============================================================================
# CAPABILITIES AND HELPERS
# =============================================================================


class TestCheckAndHelpers:
    def test_check_module_capability_matches_decide(self):
        sub = subscription()
        staff = member()
        assert check(staff, sub, ModuleCapability(Module.POS), "loc_a") == decide(staff, sub, Module.POS, "loc_a")

    def test_check_rejects_unknown_capability(self):
        with pytest.raises(TypeError):
            check(member(), subscription(), "pos")

    def test_precheck_defers_to_subscription(self):
        assert precheck(member(Role.OWNER), Module.ANALYTICS) is None
        assert precheck(member(Role.VIEWER), Module.POS).reason == DenyReason.ROLE_CAPPED

    def test_accessible_modules_covers_every_module(self):
        decisions = accessible_modules(member(Role.VIEWER), subscription(), "loc_a")
        assert set(decisions) == set(ALL_MODULES)
        assert decisions[Module.DASHBOARD].allowed
        assert not decisions[Module.POS].allowed

    def test_decide_feature(self):
        assert decide_feature(subscription(), "team_management").allowed
        denied = decide_feature(subscription(Tier.STARTER), "team_management")
        assert denied.reason == DenyReason.FEATURE_NOT_ENTITLED
        assert decide_feature(None, "pos").reason == DenyReason.SUBSCRIPTION_INACTIVE

    def test_decision_truthiness(self):
        assert Decision.allow()
        assert not Decision.deny(DenyReason.ROLE_CAPPED)
        assert Decision.deny(DenyReason.ROLE_CAPPED).message == "role not permitted"
