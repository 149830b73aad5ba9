# Overview: Failure types shared by the write-side services.

from __future__ import annotations

from dataclasses import dataclass


class PersistenceFailure(Exception):
    """Raised when a write could not be committed. The caller may retry."""
    pass


class PartialDeleteFailure(Exception):
    """
    Raised when a delete committed but records still remain after every retry.

    remaining maps table name -> number of rows still present.
    """

    def __init__(self, message: str, remaining: dict[str, int] | None = None):
        super().__init__(message)
        self.remaining = remaining or {}


@dataclass(frozen=True)
class ProjectionSyncFailure:
    """
    Non-fatal warning: the primary write succeeded but a derived projection
    (the Branch row) could not be brought in line.
    """
    location_id: str
    operation: str
    detail: str

    def to_dict(self) -> dict:
        return {
            "type": "projection_sync_failure",
            "location_id": self.location_id,
            "operation": self.operation,
            "detail": self.detail,
        }


class LimitReachedError(Exception):
    """Raised by a create operation whose plan limit is already used up."""

    def __init__(self, limit_key: str, limit: int, current: int):
        super().__init__(f"Plan limit reached for {limit_key} ({current}/{limit})")
        self.limit_key = limit_key
        self.limit = limit
        self.current = current
