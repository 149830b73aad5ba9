# Overview: Application modules and the subscription feature each one requires.

from __future__ import annotations


class Module:
    """Module keys as used by navigation and the access API."""
    POS = "pos"
    INVENTORY = "inventory"
    MENU_BUILDER = "menu-builder"
    DASHBOARD = "dashboard"
    ANALYTICS = "analytics"
    ADVANCED_ANALYTICS = "advanced-analytics"
    REPORTS = "reports"
    PURCHASE_ORDERS = "purchase-orders"
    EXPENSES = "expenses"
    PAYMENT_MONITORING = "payment-monitoring"
    TEAM_MANAGEMENT = "team-management"
    LOCATION_MANAGEMENT = "location-management"
    BUSINESS_CONFIG = "business-config"
    SETTINGS = "settings"


ALL_MODULES = (
    Module.POS,
    Module.INVENTORY,
    Module.MENU_BUILDER,
    Module.DASHBOARD,
    Module.ANALYTICS,
    Module.ADVANCED_ANALYTICS,
    Module.REPORTS,
    Module.PURCHASE_ORDERS,
    Module.EXPENSES,
    Module.PAYMENT_MONITORING,
    Module.TEAM_MANAGEMENT,
    Module.LOCATION_MANAGEMENT,
    Module.BUSINESS_CONFIG,
    Module.SETTINGS,
)


# Module -> Features field that must be true in the plan.
# None means the module is available on every plan (quantity is limited
# separately, e.g. location-management by max_locations).
MODULE_FEATURES: dict[str, str | None] = {
    Module.POS: "pos",
    Module.INVENTORY: "inventory",
    Module.MENU_BUILDER: "menu_builder",
    Module.DASHBOARD: "basic_analytics",
    Module.ANALYTICS: "basic_analytics",
    Module.ADVANCED_ANALYTICS: "advanced_analytics",
    Module.REPORTS: "custom_reports",
    Module.PURCHASE_ORDERS: "purchase_orders",
    Module.EXPENSES: "expenses",
    Module.PAYMENT_MONITORING: "payment_integrations",
    Module.TEAM_MANAGEMENT: "team_management",
    Module.LOCATION_MANAGEMENT: None,
    Module.BUSINESS_CONFIG: None,
    Module.SETTINGS: None,
}


def is_known_module(module: str) -> bool:
    return module in MODULE_FEATURES


def required_feature(module: str) -> str | None:
    """Feature key gating a module; KeyError for unknown modules."""
    return MODULE_FEATURES[module]
