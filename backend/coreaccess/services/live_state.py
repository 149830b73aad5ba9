# Overview: Observable values bound to change-feed topics (membership, subscription, locations, selection).

"""
A LiveValue starts in the loading state. The first successful load clears
loading; later reloads keep the previous value visible until the new one
arrives. Consumers distinguish "not loaded yet" from "loaded, and empty".

Watchers reload from the database when their topic is published and must be
used inside an application context.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Generic, TypeVar

from ..extensions import feed
from .change_feed import (
    ChangeFeed,
    members_topic,
    subscription_topic,
    locations_topic,
    selection_topic,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
Listener = Callable[["LiveValue"], None]


class LiveValue(Generic[T]):
    def __init__(self, value: T | None = None, *, loading: bool = True, name: str = ""):
        self.name = name
        self._value = value
        self._loading = loading
        self._error: Exception | None = None
        self._version = 0
        self._listeners: list[Listener] = []
        self._detach: Callable[[], None] | None = None
        self._lock = threading.RLock()

    def __repr__(self) -> str:
        return f"<LiveValue {self.name or '?'} v={self._version} loading={self._loading}>"

    @property
    def value(self) -> T | None:
        return self._value

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> Exception | None:
        return self._error

    @property
    def version(self) -> int:
        return self._version

    def set(self, value: T | None, *, version: int | None = None) -> None:
        """
        Publish a new value. Without an explicit version the counter advances
        by one; an explicit version is stored as given.
        """
        with self._lock:
            self._value = value
            self._loading = False
            self._error = None
            self._version = self._version + 1 if version is None else version
        self._notify()

    def fail(self, error: Exception) -> None:
        """Record a load failure; the last good value stays readable."""
        with self._lock:
            self._loading = False
            self._error = error
        self._notify()

    def mark_loading(self) -> None:
        with self._lock:
            self._loading = True
        self._notify()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def bind(self, detach: Callable[[], None]) -> None:
        self._detach = detach

    def close(self) -> None:
        """Stop following the change feed and drop all listeners."""
        if self._detach is not None:
            self._detach()
            self._detach = None
        with self._lock:
            self._listeners.clear()

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(self)
            except Exception:
                logger.exception("LiveValue listener failed for %s", self.name)


def watch(topic: str, loader: Callable[[], Any], *, change_feed: ChangeFeed | None = None,
          autoload: bool = True) -> LiveValue:
    """
    LiveValue that runs loader() now (unless autoload is False) and again on
    every publish to topic. Loader exceptions become live.error.
    """
    change_feed = change_feed or feed
    live: LiveValue = LiveValue(name=topic)

    def reload(_topic: str | None = None, _payload: Any = None) -> None:
        try:
            live.set(loader())
        except Exception as exc:
            logger.warning("Reload of %s failed: %s", topic, exc)
            live.fail(exc)

    live.bind(change_feed.subscribe(topic, reload))
    if autoload:
        reload()
    return live


def watch_membership(tenant_id: int, user_id: int, **kwargs) -> LiveValue:
    """Live MemberSnapshot (or None when the user is not on the tenant's roster)."""
    from . import team_service

    return watch(
        members_topic(tenant_id, user_id),
        lambda: team_service.get_member_snapshot(tenant_id, user_id),
        **kwargs,
    )


def watch_subscription(tenant_id: int, **kwargs) -> LiveValue:
    """Live SubscriptionState (or None when the tenant has no subscription record)."""
    from . import subscription_service

    return watch(
        subscription_topic(tenant_id),
        lambda: subscription_service.get_subscription_state(tenant_id),
        **kwargs,
    )


def watch_locations(tenant_id: int, **kwargs) -> LiveValue:
    """Live list of LocationSummary for the tenant, sorted by name."""
    from . import location_service

    return watch(
        locations_topic(tenant_id),
        lambda: location_service.list_location_summaries(tenant_id),
        **kwargs,
    )


def selection_value(user_id: int, *, change_feed: ChangeFeed | None = None) -> LiveValue:
    """
    Shared active-location selection for a user.

    Unlike the watchers above there is no loader: writers publish
    {"location_id": ..., "version": ...} to the selection topic and every
    value bound here mirrors it.
    """
    change_feed = change_feed or feed
    live: LiveValue = LiveValue(name=selection_topic(user_id))

    def on_publish(_topic: str, payload: Any) -> None:
        payload = payload or {}
        live.set(payload.get("location_id"), version=payload.get("version") or 0)

    live.bind(change_feed.subscribe(selection_topic(user_id), on_publish))
    return live
