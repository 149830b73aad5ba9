# Overview: Reactive gates combining live membership/subscription state with the decision engine.

"""
A gate answers one access question continuously. It reads LiveValues, never
the database, and re-evaluates from scratch whenever any input changes.

LOADING means "inputs not available yet" and is never shown as a denial.
Role-only denials (membership, location, role allow-list) are reported as
soon as the member is known, without waiting for subscription data.

After dispose() the gate ignores every late update.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable

from flask import current_app, has_app_context

from ..permissions import ActionCapability, ModuleCapability, parse_capability
from ..plans import USAGE_FOR_LIMIT
from .access_engine import ACTIVE_SUBSCRIPTION_STATUSES, Decision, DenyReason, check, decide_feature, precheck
from .live_state import LiveValue
from .usage_limits import DEFAULT_WARNING_THRESHOLD, approaching_limit, check_limit, limit_value, usage_ratio


class GateStatus:
    LOADING = "loading"
    ALLOWED = "allowed"
    DENIED = "denied"


@dataclass(frozen=True)
class GateResult:
    status: str
    decision: Decision | None = None
    warning: dict | None = None

    @property
    def allowed(self) -> bool:
        return self.status == GateStatus.ALLOWED

    @property
    def loading(self) -> bool:
        return self.status == GateStatus.LOADING

    @classmethod
    def from_decision(cls, decision: Decision, warning: dict | None = None) -> "GateResult":
        status = GateStatus.ALLOWED if decision.allowed else GateStatus.DENIED
        return cls(status, decision, warning)

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "decision": self.decision.to_dict() if self.decision else None,
            "warning": self.warning,
        }


LOADING = GateResult(GateStatus.LOADING)


class Gate:
    def __init__(self, *inputs: LiveValue):
        self._inputs = inputs
        self._lock = threading.RLock()
        self._listeners: list[Callable[[GateResult], None]] = []
        self._disposed = False
        self._unsubscribers = [live.subscribe(self._on_input) for live in inputs]
        self._result = self.evaluate()

    @property
    def result(self) -> GateResult:
        return self._result

    @property
    def status(self) -> str:
        return self._result.status

    @property
    def disposed(self) -> bool:
        return self._disposed

    def evaluate(self) -> GateResult:
        raise NotImplementedError

    def subscribe(self, listener: Callable[[GateResult], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _on_input(self, _live: LiveValue) -> None:
        with self._lock:
            if self._disposed:
                return
            result = self.evaluate()
            if result == self._result:
                return
            self._result = result
            listeners = list(self._listeners)
        for listener in listeners:
            listener(result)

    def dispose(self) -> None:
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            for unsubscribe in self._unsubscribers:
                unsubscribe()
            self._unsubscribers = []
            self._listeners.clear()


class PermissionGate(Gate):
    """
    Gate on a module ("reports") or an action ("inventory.delete").

    Action checks depend on the member only; module checks also need the
    subscription unless the member is already denied by role.
    """

    def __init__(self, member: LiveValue, subscription: LiveValue, capability, *,
                 location_id: str | None = None, platform_admin: bool = False):
        if isinstance(capability, str):
            capability = parse_capability(capability)
        self.capability = capability
        self.location_id = location_id
        self.platform_admin = platform_admin
        self._member = member
        self._subscription = subscription
        super().__init__(member, subscription)

    def evaluate(self) -> GateResult:
        if self._member.loading and not self.platform_admin:
            return LOADING
        member = self._member.value

        if isinstance(self.capability, ActionCapability):
            return GateResult.from_decision(
                check(member, None, self.capability, self.location_id, platform_admin=self.platform_admin)
            )

        if isinstance(self.capability, ModuleCapability):
            denial = precheck(member, self.capability.module, self.location_id, platform_admin=self.platform_admin)
            if denial is not None:
                return GateResult.from_decision(denial)

        if self._subscription.loading:
            return LOADING

        return GateResult.from_decision(
            check(member, self._subscription.value, self.capability, self.location_id,
                  platform_admin=self.platform_admin)
        )


class FeatureGate(Gate):
    """Gate on a plan feature flag alone, e.g. "advanced_analytics"."""

    def __init__(self, subscription: LiveValue, feature: str, *, platform_admin: bool = False):
        self.feature = feature
        self.platform_admin = platform_admin
        self._subscription = subscription
        super().__init__(subscription)

    def evaluate(self) -> GateResult:
        if self._subscription.loading:
            return LOADING
        return GateResult.from_decision(
            decide_feature(self._subscription.value, self.feature, platform_admin=self.platform_admin)
        )


class UsageLimitGate(Gate):
    """
    Gate on one quantitative limit, e.g. "max_locations".

    current is the caller's count of the resource, either a plain int or a
    LiveValue. When omitted the subscription's own usage counter is used.

    The hard answer comes from within_limit(). The warning is advisory and is
    attached, allowed or not, once usage reaches the threshold, which defaults
    to the app's USAGE_WARNING_THRESHOLD.
    """

    def __init__(self, subscription: LiveValue, limit_key: str, current: int | LiveValue | None = None, *,
                 threshold: float | None = None, platform_admin: bool = False):
        if limit_key not in USAGE_FOR_LIMIT:
            raise KeyError(f"Unknown limit: {limit_key}")
        if threshold is None:
            threshold = DEFAULT_WARNING_THRESHOLD
            if has_app_context():
                threshold = current_app.config.get("USAGE_WARNING_THRESHOLD", DEFAULT_WARNING_THRESHOLD)
        self.limit_key = limit_key
        self.threshold = threshold
        self.platform_admin = platform_admin
        self._subscription = subscription
        self._current = current
        if isinstance(current, LiveValue):
            super().__init__(subscription, current)
        else:
            super().__init__(subscription)

    def _current_usage(self, state) -> int | None:
        if self._current is None:
            return getattr(state.current_usage, USAGE_FOR_LIMIT[self.limit_key])
        if isinstance(self._current, LiveValue):
            if self._current.loading:
                return None
            return self._current.value or 0
        return self._current

    def evaluate(self) -> GateResult:
        if self._subscription.loading:
            return LOADING
        state = self._subscription.value
        if state is None or state.status not in ACTIVE_SUBSCRIPTION_STATUSES:
            return GateResult.from_decision(
                Decision.deny(DenyReason.SUBSCRIPTION_INACTIVE, platform_admin=self.platform_admin)
            )

        current = self._current_usage(state)
        if current is None:
            return LOADING
        decision = check_limit(state.limits, self.limit_key, current, platform_admin=self.platform_admin)

        warning = None
        if approaching_limit(state.limits, self.limit_key, current, self.threshold):
            warning = {
                "limit": self.limit_key,
                "current": current,
                "max": limit_value(state.limits, self.limit_key),
                "ratio": usage_ratio(state.limits, self.limit_key, current),
            }
        return GateResult.from_decision(decision, warning)
