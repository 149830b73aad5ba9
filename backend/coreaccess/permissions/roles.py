# Overview: Static role table (module allow-lists) and default permission strings per role.

"""
Two vocabularies live here side by side:

- ROLE_MODULES: coarse module access per role (what shows in navigation).
- DEFAULT_ROLE_PERMISSIONS: fine-grained permission strings a new member of
  the role starts with. Members can be edited away from these defaults.

They are not kept in sync automatically. A member's permission strings never
widen the role's module allow-list.
"""

from .definitions import WILDCARD
from .modules import ALL_MODULES, Module


class Role:
    OWNER = "owner"
    MANAGER = "manager"
    STAFF = "staff"
    VIEWER = "viewer"


ROLES = (Role.OWNER, Role.MANAGER, Role.STAFF, Role.VIEWER)


ROLE_MODULES: dict[str, frozenset[str]] = {
    Role.OWNER: frozenset(ALL_MODULES),
    Role.MANAGER: frozenset(m for m in ALL_MODULES if m != Module.BUSINESS_CONFIG),
    Role.STAFF: frozenset({Module.POS, Module.INVENTORY, Module.PURCHASE_ORDERS}),
    Role.VIEWER: frozenset({Module.DASHBOARD, Module.ANALYTICS, Module.INVENTORY, Module.REPORTS}),
}

# Staff stay inside this set even when the plan enables more.
STAFF_SAFE_MODULES = frozenset({Module.POS, Module.INVENTORY})

# What an owner may still open while the subscription record is missing.
OWNER_FALLBACK_MODULES = frozenset({Module.POS, Module.INVENTORY, Module.DASHBOARD, Module.SETTINGS})


DEFAULT_ROLE_PERMISSIONS: dict[str, list[str]] = {
    Role.OWNER: [WILDCARD],
    Role.MANAGER: [
        "inventory.read",
        "inventory.create",
        "inventory.update",
        "pos.read",
        "pos.create",
        "analytics.read",
        "expenses.read",
        "expenses.create",
        "expenses.update",
        "users.read",
        "locations.read",
    ],
    Role.STAFF: [
        "inventory.read",
        "pos.read",
        "pos.create",
        "expenses.read",
    ],
    Role.VIEWER: [
        "inventory.read",
        "analytics.read",
    ],
}


def is_valid_role(role: str) -> bool:
    return role in ROLES


def modules_for_role(role: str) -> frozenset[str]:
    return ROLE_MODULES.get(role, frozenset())
