"""
HTTP tests for the access API.

Verifies:
- Unauthenticated requests return 401
- Denials return 403 with the deny reason (and upgrade_required for plan gates)
- Location CRUD, the main-location guard (409) and retryable failures (503)
- Active-location resolution and switching
- Team roster and invitations
- Subscription tier changes
- Platform-admin tenant selection and its audit trail
"""

import pytest
from sqlalchemy.exc import OperationalError

from coreaccess.permissions import Role
from coreaccess.services import location_service, subscription_service, user_service

from conftest import auth_headers, issue_token, set_subscription_status


def headers_for(user, tenant, location_id=None):
    return auth_headers(issue_token(user, tenant.id), location_id)


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/access/modules"),
            ("POST", "/api/access/decide"),
            ("GET", "/api/locations"),
            ("POST", "/api/locations"),
            ("GET", "/api/locations/active"),
            ("GET", "/api/team/members"),
            ("POST", "/api/team/invitations"),
            ("GET", "/api/subscription"),
            ("PUT", "/api/subscription/tier"),
            ("GET", "/api/admin/tenants"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.get_json()["reason"] == "NOT_AUTHENTICATED"

    def test_invalid_token(self, client, db_session):
        resp = client.get("/api/auth/me", headers=auth_headers("not-a-token"))
        assert resp.status_code == 401

    def test_logout_revokes_token(self, client, tenant, owner):
        token = issue_token(owner, tenant.id)
        assert client.post("/api/auth/logout", headers=auth_headers(token)).status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401


# =============================================================================
# IDENTITY AND DECISIONS
# =============================================================================


class TestIdentityAndDecisions:
    def test_me(self, client, owner_headers, tenant):
        resp = client.get("/api/auth/me", headers=owner_headers)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["tenant"]["id"] == tenant.id
        assert data["member"]["role"] == Role.OWNER
        assert data["subscription"]["status"] == "trialing"
        assert data["modules"]["team-management"]["allowed"]

    def test_decide_is_always_200(self, client, tenant, make_member):
        viewer = make_member("vic@acme.test", Role.VIEWER)
        headers = headers_for(viewer, tenant)

        resp = client.post("/api/access/decide", json={"module": "reports"}, headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["allowed"]

        resp = client.post("/api/access/decide", json={"module": "pos"}, headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["reason"] == "ROLE_CAPPED"

    def test_decide_unknown_module(self, client, owner_headers):
        resp = client.post("/api/access/decide", json={"module": "casino"}, headers=owner_headers)
        assert resp.status_code == 400

    def test_permission_query(self, client, tenant, make_member, main_location, branch):
        staff = make_member("sam@acme.test", Role.STAFF, location_ids=[main_location.id])
        headers = headers_for(staff, tenant)

        resp = client.get(f"/api/access/permissions/pos.create?location_id={main_location.id}", headers=headers)
        assert resp.get_json()["allowed"]
        resp = client.get(f"/api/access/permissions/pos.create?location_id={branch.id}", headers=headers)
        assert not resp.get_json()["allowed"]

    def test_limits(self, client, owner_headers):
        data = client.get("/api/access/limits", headers=owner_headers).get_json()
        assert data["max_locations"]["limit"] == 3
        assert data["max_locations"]["current"] == 1

    def test_health_reports_policy(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json()["policy"] == "decision"


class TestDenials:
    def test_staff_role_capped(self, client, tenant, make_member):
        staff = make_member("sam@acme.test", Role.STAFF)
        resp = client.get("/api/team/members", headers=headers_for(staff, tenant))
        assert resp.status_code == 403
        data = resp.get_json()
        assert data["reason"] == "ROLE_CAPPED"
        assert "upgrade_required" not in data

    def test_feature_not_entitled_asks_for_upgrade(self, client, other_tenant):
        beta_owner = user_service.get_user_by_email("owner@beta.test")
        resp = client.get("/api/team/members", headers=headers_for(beta_owner, other_tenant))
        assert resp.status_code == 403
        assert resp.get_json()["reason"] == "FEATURE_NOT_ENTITLED"
        assert resp.get_json()["upgrade_required"] is True

    def test_expired_subscription_denies_owner(self, client, tenant, owner_headers, main_location):
        set_subscription_status(tenant.id, "expired")
        resp = client.get(f"/api/locations/{main_location.id}/inventory", headers=owner_headers)
        assert resp.status_code == 403
        assert resp.get_json()["reason"] == "SUBSCRIPTION_INACTIVE"

    def test_inactive_member(self, client, tenant, make_member):
        user = make_member("gone@acme.test", Role.MANAGER, status="inactive")
        resp = client.get("/api/locations", headers=headers_for(user, tenant))
        assert resp.status_code == 403
        assert resp.get_json()["reason"] == "MEMBERSHIP_INACTIVE"

    def test_location_scoped_permission(self, client, tenant, make_member, main_location, branch):
        manager = make_member("max@acme.test", Role.MANAGER, location_ids=[main_location.id])
        headers = headers_for(manager, tenant)

        assert client.get(f"/api/locations/{main_location.id}", headers=headers).status_code == 200
        resp = client.get(f"/api/locations/{branch.id}", headers=headers)
        assert resp.status_code == 403
        assert resp.get_json()["reason"] == "LOCATION_NOT_ACCESSIBLE"

    def test_denial_is_audited(self, client, tenant, make_member, platform_admin):
        staff = make_member("sam@acme.test", Role.STAFF)
        client.get("/api/team/members", headers=headers_for(staff, tenant))

        admin_headers = auth_headers(issue_token(platform_admin, None, platform_admin=True))
        events = client.get(f"/api/admin/tenants/{tenant.id}/security-events", headers=admin_headers).get_json()
        denied = [event for event in events if event["event_type"] == "ACCESS_DENIED"]
        assert len(denied) == 1
        assert denied[0]["user_id"] == staff.id
        assert denied[0]["reason"].startswith("ROLE_CAPPED")


# =============================================================================
# LOCATIONS
# =============================================================================


class TestLocationRoutes:
    def test_create_until_limit(self, client, owner_headers, main_location):
        resp = client.post("/api/locations", json={"name": "Harbor"}, headers=owner_headers)
        assert resp.status_code == 201
        assert resp.get_json()["location"]["type"] == "branch"
        assert resp.get_json()["warnings"] == []

        assert client.post("/api/locations", json={"name": "Pier"}, headers=owner_headers).status_code == 201

        resp = client.post("/api/locations", json={"name": "Airport"}, headers=owner_headers)
        assert resp.status_code == 403
        data = resp.get_json()
        assert data["reason"] == "LIMIT_REACHED"
        assert data["upgrade_required"] is True

    def test_list_is_filtered_for_members(self, client, tenant, make_member, main_location, branch):
        staff = make_member("sam@acme.test", Role.STAFF, location_ids=[branch.id])
        data = client.get("/api/locations", headers=headers_for(staff, tenant)).get_json()
        assert [location["id"] for location in data] == [branch.id]

        branches = client.get("/api/locations/branches", headers=headers_for(staff, tenant)).get_json()
        assert [row["location_id"] for row in branches] == [branch.id]

    def test_branch_list_needs_multi_location(self, client, other_tenant):
        beta_owner = user_service.get_user_by_email("owner@beta.test")
        resp = client.get("/api/locations/branches", headers=headers_for(beta_owner, other_tenant))
        assert resp.status_code == 403
        assert resp.get_json()["reason"] == "FEATURE_NOT_ENTITLED"

    def test_update_validation(self, client, owner_headers, branch):
        resp = client.put(f"/api/locations/{branch.id}", json={"type": "main"}, headers=owner_headers)
        assert resp.status_code == 400

    def test_other_tenant_location_not_found(self, client, owner_headers, other_tenant):
        foreign = location_service.get_main_location(other_tenant.id)
        resp = client.get(f"/api/locations/{foreign.id}", headers=owner_headers)
        assert resp.status_code == 404

    def test_delete_main_conflicts(self, client, owner_headers, main_location):
        resp = client.delete(f"/api/locations/{main_location.id}", headers=owner_headers)
        assert resp.status_code == 409

    def test_delete_branch(self, client, owner_headers, tenant, branch):
        location_id = branch.id
        resp = client.delete(f"/api/locations/{location_id}", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.get_json()["location_id"] == location_id
        assert location_service.get_location(tenant.id, location_id) is None

    def test_storage_failure_is_retryable(self, client, owner_headers, branch, monkeypatch):
        def broken(tenant_id, location_id):
            raise OperationalError("DELETE", {}, Exception("database is locked"))

        monkeypatch.setattr(location_service, "_delete_records", broken)
        resp = client.delete(f"/api/locations/{branch.id}", headers=owner_headers)
        assert resp.status_code == 503
        assert resp.get_json()["retry"] is True

    def test_partial_delete_reports_remaining(self, client, owner_headers, branch, monkeypatch):
        monkeypatch.setattr(location_service, "_remaining_records", lambda tenant_id, location_id: {"location_usage": 1})
        resp = client.delete(f"/api/locations/{branch.id}", headers=owner_headers)
        assert resp.status_code == 503
        assert resp.get_json()["remaining"] == {"location_usage": 1}

    def test_set_main(self, client, owner_headers, tenant, branch):
        resp = client.post(f"/api/locations/{branch.id}/main", headers=owner_headers)
        assert resp.status_code == 200
        assert location_service.get_main_location(tenant.id).id == branch.id

    def test_inventory_and_analytics(self, client, owner_headers, branch):
        resp = client.put(
            f"/api/locations/{branch.id}/inventory/sku-1",
            json={"quantity": 4, "reorder_level": 1},
            headers=owner_headers,
        )
        assert resp.status_code == 200
        rows = client.get(f"/api/locations/{branch.id}/inventory", headers=owner_headers).get_json()
        assert [(row["product_id"], row["quantity"]) for row in rows] == [("sku-1", 4)]

        resp = client.get(f"/api/locations/{branch.id}/analytics?period=hourly", headers=owner_headers)
        assert resp.status_code == 400


class TestActiveLocation:
    def test_defaults_to_main(self, client, owner_headers, main_location, branch):
        resp = client.get("/api/locations/active", headers=owner_headers)
        assert resp.get_json() == {"location_id": main_location.id}

    def test_session_selection_wins(self, client, owner_headers, main_location, branch):
        resp = client.get(f"/api/locations/active?selection={branch.id}", headers=owner_headers)
        assert resp.get_json() == {"location_id": branch.id}

    def test_switch_is_remembered(self, client, owner_headers, branch):
        resp = client.put("/api/locations/active", json={"location_id": branch.id}, headers=owner_headers)
        assert resp.status_code == 200
        assert resp.get_json() == {"state": "committed", "location_id": branch.id, "seq": 1}

        resp = client.get("/api/locations/active", headers=owner_headers)
        assert resp.get_json() == {"location_id": branch.id}

    def test_switch_to_inaccessible_location(self, client, tenant, make_member, main_location, branch):
        staff = make_member("sam@acme.test", Role.STAFF, location_ids=[main_location.id])
        resp = client.put(
            "/api/locations/active",
            json={"location_id": branch.id},
            headers=headers_for(staff, tenant),
        )
        assert resp.status_code == 403
        assert resp.get_json()["reason"] == "LOCATION_NOT_ACCESSIBLE"

    def test_member_only_sees_own_locations(self, client, tenant, make_member, main_location, branch):
        staff = make_member("sam@acme.test", Role.STAFF, location_ids=[branch.id])
        resp = client.get("/api/locations/active", headers=headers_for(staff, tenant))
        assert resp.get_json() == {"location_id": branch.id}


# =============================================================================
# TEAM
# =============================================================================


class TestTeamRoutes:
    def test_list_members(self, client, owner_headers, make_member):
        make_member("sam@acme.test")
        data = client.get("/api/team/members", headers=owner_headers).get_json()
        assert [member["email"] for member in data] == ["owner@acme.test", "sam@acme.test"]

    def test_last_owner_conflict(self, client, owner_headers, owner):
        resp = client.put(f"/api/team/members/{owner.id}", json={"role": "manager"}, headers=owner_headers)
        assert resp.status_code == 409
        assert client.delete(f"/api/team/members/{owner.id}", headers=owner_headers).status_code == 409

    def test_unknown_member(self, client, owner_headers):
        assert client.delete("/api/team/members/4242", headers=owner_headers).status_code == 404

    def test_invite_and_accept(self, client, owner_headers, tenant, other_tenant, branch):
        resp = client.post(
            "/api/team/invitations",
            json={"email": "owner@beta.test", "role": "staff", "location_ids": [branch.id]},
            headers=owner_headers,
        )
        assert resp.status_code == 201
        invitation_id = resp.get_json()["id"]

        # The invitee signs in on their own tenant and accepts
        beta_owner = user_service.get_user_by_email("owner@beta.test")
        resp = client.post(
            f"/api/team/invitations/{invitation_id}/accept",
            headers=headers_for(beta_owner, other_tenant),
        )
        assert resp.status_code == 201
        assert resp.get_json()["tenant_id"] == tenant.id
        assert resp.get_json()["location_ids"] == [branch.id]
        assert subscription_service.get_subscription_state(tenant.id).current_usage.users == 2

    def test_accept_by_someone_else(self, client, owner_headers, other_tenant):
        resp = client.post(
            "/api/team/invitations",
            json={"email": "new@acme.test", "role": "viewer"},
            headers=owner_headers,
        )
        beta_owner = user_service.get_user_by_email("owner@beta.test")
        resp = client.post(
            f"/api/team/invitations/{resp.get_json()['id']}/accept",
            headers=headers_for(beta_owner, other_tenant),
        )
        assert resp.status_code == 400

    def test_manager_without_remove_permission(self, client, tenant, make_member):
        manager = make_member("max@acme.test", Role.MANAGER, permissions=["users.read"])
        staff = make_member("sam@acme.test")
        resp = client.delete(f"/api/team/members/{staff.id}", headers=headers_for(manager, tenant))
        assert resp.status_code == 403
        assert resp.get_json()["required"] == "users.remove"


# =============================================================================
# SUBSCRIPTION
# =============================================================================


class TestSubscriptionRoutes:
    def test_get(self, client, owner_headers):
        data = client.get("/api/subscription", headers=owner_headers).get_json()
        assert data["tier"] == "professional"
        assert data["status"] == "trialing"

    def test_plans(self, client, owner_headers):
        data = client.get("/api/subscription/plans", headers=owner_headers).get_json()
        assert [plan["tier"] for plan in data] == ["starter", "professional", "enterprise"]

    def test_only_owner_changes_tier(self, client, tenant, make_member):
        manager = make_member("max@acme.test", Role.MANAGER)
        resp = client.put("/api/subscription/tier", json={"tier": "enterprise"}, headers=headers_for(manager, tenant))
        assert resp.status_code == 403
        assert resp.get_json()["reason"] == "ROLE_CAPPED"

    def test_owner_upgrades_out_of_expiry(self, client, tenant, owner_headers):
        set_subscription_status(tenant.id, "expired")
        resp = client.put(
            "/api/subscription/tier",
            json={"tier": "enterprise", "billing_cycle": "yearly"},
            headers=owner_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["tier"] == "enterprise"
        assert resp.get_json()["status"] == "active"

    def test_status_is_platform_admin_only(self, client, owner_headers):
        resp = client.put("/api/subscription/status", json={"status": "canceled"}, headers=owner_headers)
        assert resp.status_code == 403


# =============================================================================
# PLATFORM ADMIN
# =============================================================================


class TestPlatformAdmin:
    def test_owner_is_not_platform_admin(self, client, owner_headers):
        assert client.get("/api/admin/tenants", headers=owner_headers).status_code == 403

    def test_select_tenant_and_act(self, client, tenant, other_tenant, platform_admin):
        admin_headers = auth_headers(issue_token(platform_admin, None, platform_admin=True))
        tenants = client.get("/api/admin/tenants", headers=admin_headers).get_json()
        assert [row["id"] for row in tenants] == [tenant.id, other_tenant.id]

        resp = client.post("/api/admin/select-tenant", json={"tenant_id": tenant.id}, headers=admin_headers)
        assert resp.status_code == 200
        support_headers = auth_headers(resp.get_json()["token"])

        resp = client.get("/api/team/members", headers=support_headers)
        assert resp.status_code == 200
        assert [member["email"] for member in resp.get_json()] == ["owner@acme.test"]

        events = client.get(
            f"/api/admin/tenants/{tenant.id}/security-events?platform_admin_only=true",
            headers=admin_headers,
        ).get_json()
        event_types = {event["event_type"] for event in events}
        assert {"TENANT_SELECTED", "PLATFORM_ADMIN_ACCESS"} <= event_types

    def test_unknown_tenant(self, client, platform_admin, db_session):
        admin_headers = auth_headers(issue_token(platform_admin, None, platform_admin=True))
        resp = client.post("/api/admin/select-tenant", json={"tenant_id": 999}, headers=admin_headers)
        assert resp.status_code == 404

    def test_tenant_routes_need_a_selected_tenant(self, client, tenant, platform_admin):
        admin_headers = auth_headers(issue_token(platform_admin, None, platform_admin=True))
        for path in ("/api/locations", "/api/team/members", "/api/subscription"):
            resp = client.get(path, headers=admin_headers)
            assert resp.status_code == 400
            assert resp.get_json() == {"error": "select a tenant"}
