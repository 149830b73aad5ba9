"""
Pytest fixtures for coreaccess backend tests.

Provides test database setup, tenant/user/member factories, and test client.
"""

import pytest

from coreaccess import create_app
from coreaccess.extensions import db, feed
from coreaccess.permissions import Role
from coreaccess.plans import Tier
from coreaccess.services import (
    location_service,
    session_service,
    subscription_service,
    team_service,
    tenant_service,
    user_service,
)


PLATFORM_ADMIN_EMAIL = "support@coreaccess.test"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PLATFORM_ADMIN_EMAILS': frozenset({PLATFORM_ADMIN_EMAIL}),
        'LOCATION_DELETE_ATTEMPTS': 2,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        feed.clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        feed.clear()


@pytest.fixture(scope='function')
def owner(db_session):
    return user_service.create_user("owner@acme.test", "Olive Owner")


@pytest.fixture(scope='function')
def tenant(db_session, owner):
    """Tenant A on a Professional trial, with its main location and owner."""
    return tenant_service.create_tenant("Acme Corp", code="ACME", owner_user_id=owner.id, tier=Tier.PROFESSIONAL)


@pytest.fixture(scope='function')
def other_tenant(db_session):
    """Tenant B, used for isolation checks."""
    other_owner = user_service.create_user("owner@beta.test", "Beta Owner")
    return tenant_service.create_tenant("Beta Inc", code="BETA", owner_user_id=other_owner.id)


@pytest.fixture(scope='function')
def main_location(tenant):
    return location_service.get_main_location(tenant.id)


@pytest.fixture(scope='function')
def branch(tenant):
    return location_service.create_location(tenant.id, {"name": "Downtown", "type": "branch"}).location


@pytest.fixture(scope='function')
def make_member(tenant):
    """Factory: create a user and put them on tenant A's roster."""
    def _make(email, role=Role.STAFF, *, location_ids=None, permissions=None, status="active"):
        user = user_service.create_user(email)
        team_service.add_member(
            tenant.id,
            user.id,
            role,
            location_ids=location_ids,
            permissions=permissions,
            status=status,
        )
        return user
    return _make


@pytest.fixture(scope='function')
def platform_admin(db_session):
    return user_service.create_user(PLATFORM_ADMIN_EMAIL, "Support")


def issue_token(user, tenant_id, *, platform_admin=False) -> str:
    """Helper to open a session and return its bearer token."""
    _, token = session_service.create_session(user.id, tenant_id, platform_admin=platform_admin)
    return token


def auth_headers(token: str, location_id: str | None = None) -> dict:
    """Helper to create Authorization headers."""
    headers = {'Authorization': f'Bearer {token}'}
    if location_id:
        headers['X-Location-Id'] = location_id
    return headers


@pytest.fixture(scope='function')
def owner_headers(tenant, owner):
    return auth_headers(issue_token(owner, tenant.id))


def set_subscription_status(tenant_id: int, status: str) -> None:
    subscription_service.update_status(tenant_id, status)
