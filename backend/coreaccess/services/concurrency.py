# Overview: Retry and locking helpers shared by every service that writes.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from .errors import PersistenceFailure


def lock_for_update(query):
    """
    Row-level lock for read-modify-write sequences.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; PostgreSQL and MySQL honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.05):
    """
    Run func, retrying on lock contention (OperationalError) and optimistic
    conflicts (StaleDataError). Any other exception propagates at once.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning("Retrying after %s (attempt %s/%s)", type(exc).__name__, attempt + 1, attempts)
            time.sleep(backoff_base * (2 ** attempt))


def persist(func, *, action: str, attempts: int = 3):
    """
    run_with_retry, with database failures surfaced as PersistenceFailure.

    The session is rolled back before raising so the caller can keep using it.
    Domain errors raised by func pass through unchanged.
    """
    try:
        return run_with_retry(func, attempts=attempts)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error("%s failed: %s", action, exc)
        raise PersistenceFailure(f"Could not {action}") from exc
