# Overview: One capability space covering both module access and fine-grained actions.

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .definitions import WILDCARD
from .roles import ROLE_MODULES, DEFAULT_ROLE_PERMISSIONS


@dataclass(frozen=True)
class ModuleCapability:
    """Open a whole module, e.g. "team-management"."""
    module: str


@dataclass(frozen=True)
class ActionCapability:
    """Perform one action inside a module, e.g. "inventory.delete"."""
    permission: str


Capability = Union[ModuleCapability, ActionCapability]


def parse_capability(value: str) -> Capability:
    """
    Permission strings are dotted ("inventory.delete") or the wildcard;
    anything else is a module key.
    """
    if value == WILDCARD or "." in value:
        return ActionCapability(value)
    return ModuleCapability(value)


def role_capabilities(role: str) -> frozenset[Capability]:
    """Static capabilities of a role: its module allow-list plus its default permission strings."""
    modules = {ModuleCapability(m) for m in ROLE_MODULES.get(role, frozenset())}
    actions = {ActionCapability(p) for p in DEFAULT_ROLE_PERMISSIONS.get(role, [])}
    return frozenset(modules | actions)


def member_capabilities(role: str, permissions) -> frozenset[Capability]:
    """
    Capabilities of one member.

    Modules come from the role table only. Actions come from the member's
    stored permission strings, which replace the role defaults.
    """
    modules = {ModuleCapability(m) for m in ROLE_MODULES.get(role, frozenset())}
    actions = {ActionCapability(p) for p in (permissions or [])}
    return frozenset(modules | actions)


def grants(capabilities: frozenset[Capability], capability: Capability) -> bool:
    if capability in capabilities:
        return True
    if isinstance(capability, ActionCapability):
        return ActionCapability(WILDCARD) in capabilities
    return False
