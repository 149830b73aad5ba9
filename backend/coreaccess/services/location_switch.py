# Overview: Active-location selection: priority resolution and the sequence-numbered switch state machine.

"""
The active location scopes what a user sees. It never grants access; the
decision engine still checks member.location_ids on every request.

Switching is optimistic: the local selection moves first, the choice is then
persisted to the user's profile and finally published to the shared
selection topic stamped with the switch's sequence number. Observations of
the shared topic that carry an older (or no) sequence and disagree with the
latest local intent are stale echoes and are ignored.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, Sequence, Union

from flask import current_app

from ..extensions import feed
from . import location_service, user_service
from .change_feed import ChangeFeed, selection_topic
from .errors import PersistenceFailure


@dataclass(frozen=True)
class Idle:
    location_id: str | None


@dataclass(frozen=True)
class Switching:
    previous: str | None
    target: str
    seq: int


@dataclass(frozen=True)
class Committed:
    location_id: str
    seq: int


@dataclass(frozen=True)
class RolledBack:
    location_id: str | None
    failed_target: str
    seq: int
    error: str


SwitchState = Union[Idle, Switching, Committed, RolledBack]


def resolve_active_location(
    session_selection: str | None,
    profile_location_id: str | None,
    locations: Sequence,
) -> str | None:
    """
    Pick the location to show, first match wins:

    1. the selection made in this session
    2. the choice persisted on the user's profile
    3. the tenant's main location
    4. the first active location
    5. any location

    Selections that no longer name an existing location are skipped.
    """
    known = {location.id for location in locations}
    for candidate in (session_selection, profile_location_id):
        if candidate and candidate in known:
            return candidate

    for location in locations:
        if location.type == "main":
            return location.id
    for location in locations:
        if location.status == "active":
            return location.id
    if locations:
        return locations[0].id
    return None


class LocationSwitcher:
    """
    Per-user, per-session switch state machine.

    persist(location_id) writes the choice to durable storage and raises
    PersistenceFailure when it cannot. Listeners registered with on_change()
    receive every new SwitchState.
    """

    def __init__(
        self,
        user_id: int,
        persist: Callable[[str | None], Any],
        *,
        initial: str | None = None,
        change_feed: ChangeFeed | None = None,
    ):
        self.user_id = user_id
        self._persist = persist
        self._feed = change_feed or feed
        self._lock = threading.RLock()
        self._seq = 0
        self._current = initial
        self._state: SwitchState = Idle(initial)
        self._listeners: list[Callable[[SwitchState], None]] = []
        self._disposed = False
        self._unsubscribe = self._feed.subscribe(selection_topic(user_id), self._on_external)

    @property
    def state(self) -> SwitchState:
        return self._state

    @property
    def current(self) -> str | None:
        return self._current

    @property
    def seq(self) -> int:
        return self._seq

    @property
    def disposed(self) -> bool:
        return self._disposed

    def on_change(self, listener: Callable[[SwitchState], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: SwitchState) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    def switch(self, target: str) -> SwitchState:
        """
        Switch to target.

        Re-selecting the current location is a no-op that returns Idle. On a
        persistence failure the previous selection is restored, the state
        becomes RolledBack, and the PersistenceFailure is re-raised.
        """
        with self._lock:
            if self._disposed:
                return self._state
            if target == self._current:
                self._set_state(Idle(self._current))
                return self._state

            self._seq += 1
            seq = self._seq
            previous = self._current
            self._current = target
            self._set_state(Switching(previous=previous, target=target, seq=seq))

        try:
            self._persist(target)
        except PersistenceFailure as exc:
            with self._lock:
                if self._disposed:
                    return self._state
                # A newer switch already owns the selection
                if seq != self._seq:
                    return self._state
                self._current = previous
                self._set_state(RolledBack(location_id=previous, failed_target=target, seq=seq, error=str(exc)))
            current_app.logger.warning("Location switch to %s failed for user %s: %s", target, self.user_id, exc)
            raise

        with self._lock:
            if self._disposed or seq != self._seq:
                return self._state
            self._set_state(Committed(location_id=target, seq=seq))

        self._feed.publish(selection_topic(self.user_id), {"location_id": target, "version": seq})
        return self._state

    def _on_external(self, _topic: str, payload: Any) -> None:
        payload = payload or {}
        location_id = payload.get("location_id")
        version = payload.get("version")

        with self._lock:
            if self._disposed:
                return
            stale = (version is None or version < self._seq) and location_id != self._current
            if stale:
                intent, seq = self._current, self._seq
            else:
                if version is not None and version > self._seq:
                    self._seq = version
                if location_id != self._current:
                    self._current = location_id
                    self._set_state(Idle(location_id))
                return

        # Re-assert the latest local intent over the stale echo
        if intent is not None:
            self._feed.publish(selection_topic(self.user_id), {"location_id": intent, "version": seq})

    def dispose(self) -> None:
        """Detach from the shared selection. Later completions and observations are ignored."""
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            self._unsubscribe()
            self._listeners.clear()


def switch_active_location(tenant_id: int, user, target: str, *, member=None, platform_admin: bool = False) -> SwitchState:
    """
    One-shot switch for request handlers: validates the target is a location
    the user may work in, then runs a LocationSwitcher for it.
    """
    location = location_service.get_location(tenant_id, target)
    if location is None:
        raise location_service.LocationError("Location not found")
    if not location_service.get_accessible_locations(member, [location], platform_admin=platform_admin):
        raise location_service.LocationNotAccessibleError("Location not accessible")

    switcher = LocationSwitcher(
        user.id,
        lambda location_id: user_service.persist_active_location(user.id, location_id),
        initial=user.active_location_id,
    )
    try:
        return switcher.switch(target)
    finally:
        switcher.dispose()
