"""
Session, tenant bootstrap and platform-admin tests.

Verifies:
- Sessions are only issued to members (or allow-listed platform admins)
- Expired, idle, revoked and withdrawn sessions no longer validate
- A new tenant is immediately usable (trial, main location, owner)
- Cross-tenant location lookups are rejected and audited
- Tenant selection order for platform admins
"""

import pytest
from datetime import timedelta

from coreaccess.extensions import db
from coreaccess.models import SessionToken
from coreaccess.permissions import Role
from coreaccess.plans import Tier
from coreaccess.services import (
    audit_service,
    location_service,
    session_service,
    subscription_service,
    team_service,
    tenant_service,
    user_service,
)
from coreaccess.services.platform_admin import PlatformAdminError, is_platform_admin, select_tenant
from coreaccess.time_utils import utcnow


def _record(token) -> SessionToken:
    return db.session.query(SessionToken).filter_by(token_hash=session_service.hash_token(token)).one()


# =============================================================================
# SESSIONS
# =============================================================================


class TestSessions:
    def test_member_session(self, tenant, owner):
        _, token = session_service.create_session(owner.id, tenant.id)
        context = session_service.validate_session(token)

        assert context.user.id == owner.id
        assert context.tenant_id == tenant.id
        assert not context.platform_admin
        assert team_service.get_member(tenant.id, owner.id).last_login is not None

    def test_token_is_stored_hashed(self, tenant, owner):
        _, token = session_service.create_session(owner.id, tenant.id)
        assert _record(token).token_hash != token

    def test_non_member_refused(self, tenant, other_tenant, owner):
        with pytest.raises(session_service.SessionError):
            session_service.create_session(owner.id, other_tenant.id)

    def test_tenant_required_for_regular_users(self, owner):
        with pytest.raises(session_service.SessionError):
            session_service.create_session(owner.id, None)

    def test_platform_admin_requires_allow_list(self, tenant, owner):
        with pytest.raises(session_service.SessionError):
            session_service.create_session(owner.id, tenant.id, platform_admin=True)

    def test_platform_admin_without_tenant(self, platform_admin):
        _, token = session_service.create_session(platform_admin.id, None, platform_admin=True)
        context = session_service.validate_session(token)
        assert context.platform_admin
        assert context.tenant_id is None

    def test_idle_session_revoked(self, tenant, owner):
        _, token = session_service.create_session(owner.id, tenant.id)
        _record(token).last_used_at = utcnow() - session_service.SESSION_IDLE_TIMEOUT - timedelta(minutes=1)
        db.session.commit()

        assert session_service.validate_session(token) is None
        assert _record(token).revoked_reason == "Idle timeout"

    def test_expired_session(self, tenant, owner):
        _, token = session_service.create_session(owner.id, tenant.id)
        _record(token).expires_at = utcnow() - timedelta(seconds=1)
        db.session.commit()
        assert session_service.validate_session(token) is None

    def test_withdrawn_platform_admin(self, app, platform_admin, monkeypatch):
        _, token = session_service.create_session(platform_admin.id, None, platform_admin=True)
        monkeypatch.setitem(app.config, "PLATFORM_ADMIN_EMAILS", frozenset())

        assert session_service.validate_session(token) is None
        assert _record(token).revoked_reason == "Platform admin access withdrawn"

    def test_deactivated_tenant(self, tenant, owner):
        _, token = session_service.create_session(owner.id, tenant.id)
        tenant.is_active = False
        db.session.commit()
        assert session_service.validate_session(token) is None

    def test_revoke(self, tenant, owner):
        _, first = session_service.create_session(owner.id, tenant.id)
        _, second = session_service.create_session(owner.id, tenant.id)

        assert session_service.revoke_session(first)
        assert not session_service.revoke_session(first)
        assert session_service.revoke_all_user_sessions(owner.id) == 1
        assert session_service.validate_session(second) is None


# =============================================================================
# TENANTS
# =============================================================================


class TestTenants:
    def test_new_tenant_is_ready_to_use(self, db_session, owner):
        tenant = tenant_service.create_tenant("  Corner Cafe ", code="CAFE", owner_user_id=owner.id)

        assert tenant.name == "Corner Cafe"
        state = subscription_service.get_subscription_state(tenant.id)
        assert (state.tier, state.status) == (Tier.STARTER, "trialing")
        main = location_service.get_main_location(tenant.id)
        assert team_service.get_member_snapshot(tenant.id, owner.id).location_ids == (main.id,)

    def test_tenant_without_owner(self, db_session):
        tenant = tenant_service.create_tenant("Ghost Kitchen")
        assert team_service.list_members(tenant.id) == []
        assert location_service.get_main_location(tenant.id) is not None

    def test_duplicate_code(self, tenant):
        with pytest.raises(tenant_service.TenantAccessError):
            tenant_service.create_tenant("Acme Again", code="ACME")

    def test_name_required(self, db_session):
        with pytest.raises(tenant_service.TenantAccessError):
            tenant_service.create_tenant("   ")

    def test_location_scoping(self, tenant, other_tenant, main_location):
        assert tenant_service.require_location_in_tenant(main_location.id, tenant.id).id == main_location.id

        foreign = location_service.get_main_location(other_tenant.id)
        with pytest.raises(tenant_service.TenantAccessError):
            tenant_service.require_location_in_tenant(foreign.id, tenant.id)

        events = audit_service.list_security_events(tenant.id)
        assert [event.event_type for event in events] == ["CROSS_TENANT_ACCESS_DENIED"]
        assert events[0].location_id == foreign.id

    def test_current_tenant_requires_context(self, db_session):
        with pytest.raises(tenant_service.TenantAccessError):
            tenant_service.get_current_tenant_id()


# =============================================================================
# PLATFORM ADMIN
# =============================================================================


class TestPlatformAdmin:
    def test_allow_list_is_case_insensitive(self, app):
        assert is_platform_admin(" Support@CoreAccess.test ")
        assert not is_platform_admin("owner@acme.test")
        assert not is_platform_admin(None)

    def test_requested_tenant(self, tenant, other_tenant, platform_admin):
        assert select_tenant(platform_admin, other_tenant.id).id == other_tenant.id

    def test_own_tenant_next(self, tenant, other_tenant, platform_admin):
        team_service.add_member(other_tenant.id, platform_admin.id, Role.VIEWER, enforce_limit=False)
        assert select_tenant(platform_admin).id == other_tenant.id

    def test_first_tenant_last(self, tenant, other_tenant, platform_admin):
        assert select_tenant(platform_admin).id == tenant.id

    def test_unknown_or_no_tenants(self, platform_admin):
        with pytest.raises(PlatformAdminError):
            select_tenant(platform_admin, 999)
        with pytest.raises(PlatformAdminError):
            select_tenant(platform_admin)


class TestUsers:
    def test_email_normalized_and_unique(self, db_session):
        user = user_service.create_user("  Jo@Acme.TEST ")
        assert user.email == "jo@acme.test"
        assert user.display_name == "jo"
        with pytest.raises(user_service.UserError):
            user_service.create_user("jo@acme.test")

    def test_invalid_email(self, db_session):
        with pytest.raises(user_service.UserError):
            user_service.create_user("not-an-email")
