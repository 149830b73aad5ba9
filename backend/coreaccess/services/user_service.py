# Overview: Service-layer operations for user identities and the persisted location choice.

"""
Identity records only. Credentials are owned by the identity provider; this
service never stores or checks a password.
"""

from __future__ import annotations

import re

from flask import current_app

from ..extensions import db
from ..models import User
from .concurrency import lock_for_update, persist


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class UserError(Exception):
    """Raised when user operations fail."""
    pass


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def create_user(email: str, display_name: str | None = None) -> User:
    email = normalize_email(email)
    if not EMAIL_PATTERN.match(email):
        raise UserError("A valid email is required")

    def _op():
        if db.session.query(User).filter_by(email=email).first():
            raise UserError(f"User with email {email} already exists")

        user = User(email=email, display_name=(display_name or email.split("@")[0]).strip())
        db.session.add(user)
        db.session.commit()
        return user

    user = persist(_op, action="create user")
    current_app.logger.info("Created user %s (%s)", user.id, user.email)
    return user


def get_user(user_id: int) -> User | None:
    return db.session.query(User).filter_by(id=user_id).first()


def get_user_by_email(email: str) -> User | None:
    return db.session.query(User).filter_by(email=normalize_email(email)).first()


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.email.asc()).all()


def persist_active_location(user_id: int, location_id: str | None) -> User:
    """
    Store the user's last chosen location on their profile.

    Raises PersistenceFailure when the write does not commit.
    """
    def _op():
        user = lock_for_update(db.session.query(User).filter_by(id=user_id)).first()
        if not user:
            raise UserError("User not found")
        user.active_location_id = location_id
        db.session.commit()
        return user

    return persist(_op, action="save active location")
