"""
Development bypass tests.

The packaged factory always installs the deciding policy; only the
development entry point swaps in the allow-all policy.
"""

import pytest

from coreaccess import create_app
from coreaccess.extensions import db
from coreaccess.permissions import Module, Role
from coreaccess.plans import Tier
from coreaccess.services import team_service, tenant_service, user_service
from coreaccess.services.access_engine import POLICY_EXTENSION_KEY, DecisionPolicy, DenyReason, get_policy
from devserver import AllowAllPolicy, create_dev_app

from conftest import auth_headers, issue_token


DEV_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
}


@pytest.fixture
def dev_app():
    app = create_dev_app(DEV_CONFIG)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


def test_factory_installs_deciding_policy(app):
    policy = app.extensions[POLICY_EXTENSION_KEY]
    assert type(policy) is DecisionPolicy
    assert get_policy() is policy
    assert policy.decide(None, None, Module.POS).reason == DenyReason.NO_MEMBERSHIP


def test_fresh_factory_is_not_affected_by_dev_app(dev_app):
    assert create_app(DEV_CONFIG).extensions[POLICY_EXTENSION_KEY].name == "decision"


def test_dev_policy_allows_everything(dev_app):
    policy = get_policy()
    assert isinstance(policy, AllowAllPolicy)
    assert policy.decide(None, None, Module.BUSINESS_CONFIG).allowed
    assert policy.has_permission(None, "users.remove")
    assert policy.membership(None) is None
    assert policy.decide_feature(None, "api_access").allowed
    assert policy.check_limit(None, "max_users").allowed


def test_dev_app_serves_gated_routes(dev_app):
    owner = user_service.create_user("owner@solo.test")
    tenant = tenant_service.create_tenant("Solo Shop", owner_user_id=owner.id, tier=Tier.STARTER)
    staff = user_service.create_user("staff@solo.test")
    team_service.add_member(tenant.id, staff.id, Role.STAFF, enforce_limit=False)

    client = dev_app.test_client()
    headers = auth_headers(issue_token(staff, tenant.id))

    # Starter has no team management and staff are role-capped; both are bypassed
    resp = client.get("/api/team/members", headers=headers)
    assert resp.status_code == 200
    assert client.get("/health").get_json()["policy"] == "allow-all"


def test_dev_app_still_requires_authentication(dev_app):
    assert dev_app.test_client().get("/api/team/members").status_code == 401
