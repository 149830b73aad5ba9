# Overview: Quantitative plan limits: the hard gate and the advisory usage ratio.

"""
within_limit() is the only hard check. usage_ratio()/approaching_limit() are
advisory and never deny anything. Nothing here increments a counter; the
feature that creates the resource calls subscription_service.track_usage().
"""

from __future__ import annotations

from ..plans import Limits, UNLIMITED
from .access_engine import Decision, DenyReason


DEFAULT_WARNING_THRESHOLD = 0.8


def limit_value(limits: Limits | dict, key: str) -> int:
    if isinstance(limits, dict):
        if key not in limits:
            raise KeyError(f"Unknown limit: {key}")
        return limits[key]
    return limits.get(key)


def within_limit(limits: Limits | dict, key: str, current: int) -> bool:
    """True if one more unit may be created: unlimited, or current < limit."""
    limit = limit_value(limits, key)
    if limit == UNLIMITED:
        return True
    return current < limit


def remaining(limits: Limits | dict, key: str, current: int) -> int | None:
    """Units left before the limit; None when unlimited."""
    limit = limit_value(limits, key)
    if limit == UNLIMITED:
        return None
    return max(0, limit - current)


def usage_ratio(limits: Limits | dict, key: str, current: int) -> float | None:
    """current / limit, or None when unlimited. A zero limit counts as full."""
    limit = limit_value(limits, key)
    if limit == UNLIMITED:
        return None
    if limit == 0:
        return 1.0
    return current / limit


def approaching_limit(limits: Limits | dict, key: str, current: int,
                      threshold: float = DEFAULT_WARNING_THRESHOLD) -> bool:
    ratio = usage_ratio(limits, key, current)
    return ratio is not None and ratio >= threshold


def check_limit(limits: Limits | dict, key: str, current: int, *, platform_admin: bool = False) -> Decision:
    if within_limit(limits, key, current):
        return Decision.allow(platform_admin=platform_admin)
    return Decision.deny(DenyReason.LIMIT_REACHED, platform_admin=platform_admin)


def limit_summary(limits: Limits | dict, key: str, current: int,
                  threshold: float = DEFAULT_WARNING_THRESHOLD) -> dict:
    limit = limit_value(limits, key)
    return {
        "limit": limit,
        "current": current,
        "unlimited": limit == UNLIMITED,
        "remaining": remaining(limits, key, current),
        "within_limit": within_limit(limits, key, current),
        "ratio": usage_ratio(limits, key, current),
        "approaching": approaching_limit(limits, key, current, threshold),
    }
