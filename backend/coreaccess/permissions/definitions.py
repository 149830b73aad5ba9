# Overview: All fine-grained permission strings organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# Grants every permission string. Stored in TeamMember.permissions.
WILDCARD = "*"


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    ("inventory.read", "View Inventory", "View inventory items and stock levels", PermissionCategory.INVENTORY),
    ("inventory.create", "Add Inventory", "Add new inventory items", PermissionCategory.INVENTORY),
    ("inventory.update", "Update Inventory", "Edit inventory items and adjust stock", PermissionCategory.INVENTORY),
    ("inventory.delete", "Delete Inventory", "Remove inventory items", PermissionCategory.INVENTORY),
]


# -- POS --

POS_PERMISSIONS = [
    ("pos.read", "View POS", "Access point of sale system", PermissionCategory.POS),
    ("pos.create", "Process Orders", "Create and process orders", PermissionCategory.POS),
    ("pos.update", "Modify Orders", "Edit existing orders", PermissionCategory.POS),
    ("pos.refund", "Process Refunds", "Handle refunds and returns", PermissionCategory.POS),
]


# -- ANALYTICS --

ANALYTICS_PERMISSIONS = [
    ("analytics.read", "View Analytics", "Access analytics and reports", PermissionCategory.ANALYTICS),
    ("analytics.export", "Export Reports", "Export analytics data", PermissionCategory.ANALYTICS),
]


# -- EXPENSES --

EXPENSE_PERMISSIONS = [
    ("expenses.read", "View Expenses", "View expense records", PermissionCategory.EXPENSES),
    ("expenses.create", "Add Expenses", "Record new expenses", PermissionCategory.EXPENSES),
    ("expenses.update", "Edit Expenses", "Modify expense records", PermissionCategory.EXPENSES),
    ("expenses.delete", "Delete Expenses", "Remove expense records", PermissionCategory.EXPENSES),
]


# -- USERS --

USER_PERMISSIONS = [
    ("users.read", "View Users", "View team members", PermissionCategory.USERS),
    ("users.invite", "Invite Users", "Send team invitations", PermissionCategory.USERS),
    ("users.manage", "Manage Users", "Edit user roles and permissions", PermissionCategory.USERS),
    ("users.remove", "Remove Users", "Remove team members", PermissionCategory.USERS),
]


# -- LOCATIONS --

LOCATION_PERMISSIONS = [
    ("locations.read", "View Locations", "View locations and branches", PermissionCategory.LOCATIONS),
    ("locations.manage", "Manage Locations", "Create and edit locations", PermissionCategory.LOCATIONS),
    ("locations.delete", "Delete Locations", "Delete locations and their per-location records", PermissionCategory.LOCATIONS),
]


# -- SETTINGS --

SETTINGS_PERMISSIONS = [
    ("settings.read", "View Settings", "Access system settings", PermissionCategory.SETTINGS),
    ("settings.update", "Update Settings", "Modify system configuration", PermissionCategory.SETTINGS),
]


PERMISSION_DEFINITIONS = (
    INVENTORY_PERMISSIONS
    + POS_PERMISSIONS
    + ANALYTICS_PERMISSIONS
    + EXPENSE_PERMISSIONS
    + USER_PERMISSIONS
    + LOCATION_PERMISSIONS
    + SETTINGS_PERMISSIONS
)
