# Overview: Permission system package.
# Re-exports the role table, module map, permission strings and capability types.

from .categories import PermissionCategory
from .definitions import (
    WILDCARD,
    PERMISSION_DEFINITIONS,
    INVENTORY_PERMISSIONS,
    POS_PERMISSIONS,
    ANALYTICS_PERMISSIONS,
    EXPENSE_PERMISSIONS,
    USER_PERMISSIONS,
    LOCATION_PERMISSIONS,
    SETTINGS_PERMISSIONS,
)
from .modules import Module, ALL_MODULES, MODULE_FEATURES, is_known_module, required_feature
from .roles import (
    Role,
    ROLES,
    ROLE_MODULES,
    STAFF_SAFE_MODULES,
    OWNER_FALLBACK_MODULES,
    DEFAULT_ROLE_PERMISSIONS,
    is_valid_role,
    modules_for_role,
)
from .capabilities import (
    Capability,
    ModuleCapability,
    ActionCapability,
    parse_capability,
    role_capabilities,
    member_capabilities,
    grants,
)
from .helpers import (
    get_all_permission_codes,
    get_permissions_by_category,
    get_permission_definition,
    validate_permission_code,
)

__all__ = [
    "PermissionCategory",
    "WILDCARD",
    "PERMISSION_DEFINITIONS",
    "INVENTORY_PERMISSIONS",
    "POS_PERMISSIONS",
    "ANALYTICS_PERMISSIONS",
    "EXPENSE_PERMISSIONS",
    "USER_PERMISSIONS",
    "LOCATION_PERMISSIONS",
    "SETTINGS_PERMISSIONS",
    "Module",
    "ALL_MODULES",
    "MODULE_FEATURES",
    "is_known_module",
    "required_feature",
    "Role",
    "ROLES",
    "ROLE_MODULES",
    "STAFF_SAFE_MODULES",
    "OWNER_FALLBACK_MODULES",
    "DEFAULT_ROLE_PERMISSIONS",
    "is_valid_role",
    "modules_for_role",
    "Capability",
    "ModuleCapability",
    "ActionCapability",
    "parse_capability",
    "role_capabilities",
    "member_capabilities",
    "grants",
    "get_all_permission_codes",
    "get_permissions_by_category",
    "get_permission_definition",
    "validate_permission_code",
]
