# Overview: Bearer session tokens carrying the user and the tenant the session acts on.

"""
Session Token Management

Stands in for the external identity provider: a session token resolves to a
user and the tenant selected for the session. Platform-admin sessions carry
platform_admin=True and may point at any tenant.

SECURITY:
- 32-byte random tokens, stored only as SHA-256 hashes
- Absolute and idle timeouts
- Revocable; sessions of deactivated users or tenants are revoked on use
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken, Tenant, TeamMember, User
from ..time_utils import as_naive_utc, utcnow
from .platform_admin import is_platform_admin


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)


class SessionError(Exception):
    """Raised when a session cannot be issued."""
    pass


@dataclass
class SessionContext:
    user: User
    session: SessionToken
    tenant_id: int | None
    platform_admin: bool


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(
    user_id: int,
    tenant_id: int | None,
    *,
    platform_admin: bool = False,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Issue a session for user on tenant. Returns (record, plaintext token).

    Regular users must be members of the tenant (any status; the decision
    engine handles inactive members). platform_admin sessions require the
    user's email on the allow-list and skip the membership requirement.
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise SessionError("User not found")
    if not user.is_active:
        raise SessionError("User is not active")

    if platform_admin and not is_platform_admin(user.email):
        raise SessionError("User is not a platform admin")

    member = None
    if tenant_id is not None:
        tenant = db.session.query(Tenant).filter_by(id=tenant_id).first()
        if not tenant or not tenant.is_active:
            raise SessionError("Tenant is not active")
        if not platform_admin:
            member = db.session.query(TeamMember).filter_by(tenant_id=tenant_id, user_id=user_id).first()
            if member is None:
                raise SessionError("User is not a member of this tenant")
    elif not platform_admin:
        raise SessionError("A tenant is required")

    plaintext_token = generate_token()
    now = utcnow()
    session = SessionToken(
        user_id=user_id,
        tenant_id=tenant_id,
        platform_admin=platform_admin,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    user.last_login_at = now
    if member is not None:
        member.last_login = now
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a token to its SessionContext, or None if it is unknown, expired,
    revoked, idle too long, or its user/tenant was deactivated.
    """
    now = utcnow()
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token), is_revoked=False).first()
    if not session:
        return None

    if as_naive_utc(session.expires_at) < now:
        return None

    if now - as_naive_utc(session.last_used_at) > SESSION_IDLE_TIMEOUT:
        _revoke(session, "Idle timeout")
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session, "User account deactivated")
        return None

    if session.platform_admin and not is_platform_admin(user.email):
        _revoke(session, "Platform admin access withdrawn")
        return None

    if session.tenant_id is not None:
        tenant = db.session.query(Tenant).filter_by(id=session.tenant_id).first()
        if not tenant or not tenant.is_active:
            _revoke(session, "Tenant deactivated")
            return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(
        user=user,
        session=session,
        tenant_id=session.tenant_id,
        platform_admin=session.platform_admin,
    )


def revoke_session(token: str, reason: str = "User logout") -> bool:
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token), is_revoked=False).first()
    if not session:
        return False
    _revoke(session, reason)
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions") -> int:
    now = utcnow()
    sessions = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
    for session in sessions:
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = reason
    db.session.commit()
    return len(sessions)
