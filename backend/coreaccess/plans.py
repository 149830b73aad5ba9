# Overview: Subscription plan catalog: tiers, feature flags, quantitative limits and prices.

"""
Plans are static data. A Subscription row stores only its tier; features and
limits are always read from here so a catalog change applies to every tenant
on that tier at the next resolve.

Limits use -1 for "unlimited".
"""

from __future__ import annotations

from dataclasses import dataclass, asdict, fields, replace


UNLIMITED = -1


class Tier:
    STARTER = "starter"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"


TIERS = (Tier.STARTER, Tier.PROFESSIONAL, Tier.ENTERPRISE)


@dataclass(frozen=True)
class Features:
    # Core
    inventory: bool = False
    pos: bool = False
    expenses: bool = False
    basic_analytics: bool = False
    menu_builder: bool = False

    # Operations
    multi_location: bool = False
    team_management: bool = False
    purchase_orders: bool = False
    supplier_management: bool = False
    low_stock_alerts: bool = False
    barcode_scanning: bool = False

    # Analytics
    advanced_analytics: bool = False
    custom_reports: bool = False
    data_export: bool = False
    profit_analysis: bool = False

    # Integrations
    payment_integrations: bool = False
    accounting_integrations: bool = False
    ecommerce_integrations: bool = False
    api_access: bool = False

    # Support
    email_support: bool = False
    phone_support: bool = False
    priority_support: bool = False
    dedicated_manager: bool = False

    def to_dict(self) -> dict:
        return asdict(self)

    def is_enabled(self, feature: str) -> bool:
        """Unknown feature names are treated as not entitled."""
        return bool(getattr(self, feature, False))


@dataclass(frozen=True)
class Limits:
    max_users: int = 1
    max_locations: int = 1
    max_products: int = 0
    max_orders: int = 0
    max_suppliers: int = 0
    storage_limit: int = 0  # GB
    api_calls_per_month: int = 0

    def to_dict(self) -> dict:
        return asdict(self)

    def get(self, key: str) -> int:
        if key not in LIMIT_KEYS:
            raise KeyError(f"Unknown limit: {key}")
        return getattr(self, key)


@dataclass(frozen=True)
class Usage:
    users: int = 0
    locations: int = 0
    products: int = 0
    orders_this_month: int = 0
    suppliers: int = 0
    storage_used: int = 0
    api_calls_this_month: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


LIMIT_KEYS = tuple(f.name for f in fields(Limits))
USAGE_KEYS = tuple(f.name for f in fields(Usage))

# Which usage counter is measured against which limit
USAGE_FOR_LIMIT = {
    "max_users": "users",
    "max_locations": "locations",
    "max_products": "products",
    "max_orders": "orders_this_month",
    "max_suppliers": "suppliers",
    "storage_limit": "storage_used",
    "api_calls_per_month": "api_calls_this_month",
}


@dataclass(frozen=True)
class Plan:
    id: str
    tier: str
    name: str
    description: str
    monthly_price_cents: int
    yearly_price_cents: int
    features: Features
    limits: Limits
    popular: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tier": self.tier,
            "name": self.name,
            "description": self.description,
            "price": {
                "monthly_cents": self.monthly_price_cents,
                "yearly_cents": self.yearly_price_cents,
            },
            "features": self.features.to_dict(),
            "limits": self.limits.to_dict(),
            "popular": self.popular,
        }


_STARTER_FEATURES = Features(
    inventory=True,
    pos=True,
    expenses=True,
    basic_analytics=True,
    menu_builder=True,
    low_stock_alerts=True,
    email_support=True,
)

_ALL_FEATURES = Features(**{f.name: True for f in fields(Features)})

_PROFESSIONAL_FEATURES = replace(
    _ALL_FEATURES,
    accounting_integrations=False,
    ecommerce_integrations=False,
    api_access=False,
    phone_support=False,
    dedicated_manager=False,
)


PLANS: dict[str, Plan] = {
    Tier.STARTER: Plan(
        id=Tier.STARTER,
        tier=Tier.STARTER,
        name="Starter",
        description="Perfect for small businesses getting started",
        monthly_price_cents=2900,
        yearly_price_cents=29000,
        features=_STARTER_FEATURES,
        limits=Limits(
            max_users=1,
            max_locations=1,
            max_products=500,
            max_orders=1000,
            max_suppliers=10,
            storage_limit=2,
            api_calls_per_month=0,
        ),
    ),
    Tier.PROFESSIONAL: Plan(
        id=Tier.PROFESSIONAL,
        tier=Tier.PROFESSIONAL,
        name="Professional",
        description="Ideal for growing businesses with multiple locations",
        monthly_price_cents=7900,
        yearly_price_cents=79000,
        features=_PROFESSIONAL_FEATURES,
        limits=Limits(
            max_users=10,
            max_locations=3,
            max_products=5000,
            max_orders=10000,
            max_suppliers=100,
            storage_limit=20,
            api_calls_per_month=10000,
        ),
        popular=True,
    ),
    Tier.ENTERPRISE: Plan(
        id=Tier.ENTERPRISE,
        tier=Tier.ENTERPRISE,
        name="Enterprise",
        description="Complete solution for large operations",
        monthly_price_cents=19900,
        yearly_price_cents=199000,
        features=_ALL_FEATURES,
        limits=Limits(**{name: UNLIMITED for name in LIMIT_KEYS}),
    ),
}


def is_valid_tier(tier: str) -> bool:
    return tier in PLANS


def get_plan(tier: str) -> Plan:
    """Plan for a tier; KeyError for unknown tiers."""
    return PLANS[tier]


def list_plans() -> list[Plan]:
    return [PLANS[tier] for tier in TIERS]
