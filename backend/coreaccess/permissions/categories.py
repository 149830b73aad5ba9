# Overview: Permission category constants for grouping related permission strings.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    INVENTORY = "inventory"
    POS = "pos"
    ANALYTICS = "analytics"
    EXPENSES = "expenses"
    USERS = "users"
    SETTINGS = "settings"
    LOCATIONS = "locations"
