# Overview: Location registry: CRUD, the one-main-per-tenant rule, cascading delete and per-location records.

"""
Location Registry

INVARIANTS:
- Exactly one location per tenant has type "main". The first location a
  tenant creates becomes main; a second main is rejected; the main location
  cannot be deleted. ensure_main_exists() repairs tenants that drifted.
- Deleting a location removes its usage, inventory and analytics records and
  drops it from every member's location_ids in the same transaction, and the
  result is verified before returning.
- The Branch projection is best-effort. A projection failure is returned as
  a warning on RegistryResult and never undoes the location write.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db, feed
from ..models import Location, LocationAnalytics, LocationInventory, LocationUsage, TeamMember
from ..models.tenancy import LOCATION_STATUSES, LOCATION_TYPES
from ..permissions import Role
from ..time_utils import as_naive_utc, utcnow
from . import branch_service, subscription_service
from .change_feed import locations_topic, members_topic
from .concurrency import lock_for_update, persist
from .errors import LimitReachedError, PartialDeleteFailure, PersistenceFailure, ProjectionSyncFailure
from .usage_limits import limit_value, within_limit


DEFAULT_MAIN_NAME = "Main Location"
EDITABLE_FIELDS = ("name", "type", "status", "address", "contact", "settings")
JSON_FIELDS = ("address", "contact", "settings")
ANALYTICS_PERIODS = ("daily", "weekly", "monthly", "yearly")
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class LocationError(Exception):
    """Raised when location operations fail."""
    pass


class MainLocationDeletionError(LocationError):
    """Raised when a delete targets the tenant's main location."""
    pass


class LocationNotAccessibleError(LocationError):
    """Raised when a member targets a location outside their location_ids."""
    pass


@dataclass
class RegistryResult:
    location: Location | None
    location_id: str
    warnings: list[ProjectionSyncFailure] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "location": self.location.to_dict() if self.location is not None else None,
            "location_id": self.location_id,
            "warnings": [warning.to_dict() for warning in self.warnings],
        }


@dataclass(frozen=True)
class LocationSummary:
    """Detached view of a Location for live state and active-location resolution."""
    id: str
    name: str
    type: str
    status: str
    created_at: datetime | None = None

    @property
    def is_main(self) -> bool:
        return self.type == "main"

    @classmethod
    def from_model(cls, location: Location) -> "LocationSummary":
        return cls(
            id=location.id,
            name=location.name,
            type=location.type,
            status=location.status,
            created_at=as_naive_utc(location.created_at),
        )


def default_settings() -> dict:
    return {
        "timezone": "UTC",
        "currency": "USD",
        "business_hours": {day: {"open": "09:00", "close": "17:00", "closed": False} for day in WEEKDAYS},
        "features": {},
    }


def _publish(tenant_id: int, action: str, location_id: str | None = None) -> None:
    feed.publish(locations_topic(tenant_id), {"action": action, "location_id": location_id})


def _sync_projection(location_id: str, operation: str, location: Location | None = None) -> list[ProjectionSyncFailure]:
    try:
        if operation == "delete":
            branch_service.soft_delete_branch(location_id)
        else:
            branch_service.sync_branch(location)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning(
            "Branch projection %s failed for location %s: %s", operation, location_id, exc
        )
        return [ProjectionSyncFailure(location_id=location_id, operation=operation, detail=str(exc))]
    return []


def _tenant_locations(tenant_id: int) -> list[Location]:
    return (
        db.session.query(Location)
        .filter_by(tenant_id=tenant_id)
        .order_by(Location.created_at.asc(), Location.id.asc())
        .all()
    )


def _validate_draft(draft: dict, *, partial: bool) -> dict:
    unknown = set(draft) - set(EDITABLE_FIELDS)
    if unknown:
        raise LocationError(f"Unknown location field(s): {', '.join(sorted(unknown))}")

    cleaned = {}
    if "name" in draft or not partial:
        name = (draft.get("name") or "").strip()
        if not name:
            raise LocationError("Location name is required")
        cleaned["name"] = name
    if draft.get("type") is not None:
        if draft["type"] not in LOCATION_TYPES:
            raise LocationError(f"Invalid location type: {draft['type']}")
        cleaned["type"] = draft["type"]
    if draft.get("status") is not None:
        if draft["status"] not in LOCATION_STATUSES:
            raise LocationError(f"Invalid location status: {draft['status']}")
        cleaned["status"] = draft["status"]
    for key in JSON_FIELDS:
        if draft.get(key) is not None:
            if not isinstance(draft[key], dict):
                raise LocationError(f"Location {key} must be an object")
            cleaned[key] = draft[key]
    return cleaned


def _name_taken(tenant_id: int, name: str, *, exclude_id: str | None = None) -> bool:
    query = db.session.query(Location).filter(
        Location.tenant_id == tenant_id,
        db.func.lower(Location.name) == name.lower(),
    )
    if exclude_id:
        query = query.filter(Location.id != exclude_id)
    return query.first() is not None


def _check_location_limit(tenant_id: int) -> None:
    state = subscription_service.get_subscription_state(tenant_id)
    if state is None:
        return
    current = state.current_usage.locations
    if not within_limit(state.limits, "max_locations", current):
        raise LimitReachedError("max_locations", limit_value(state.limits, "max_locations"), current)


def get_location(tenant_id: int, location_id: str) -> Location | None:
    return db.session.query(Location).filter_by(tenant_id=tenant_id, id=location_id).first()


def list_locations(tenant_id: int) -> list[Location]:
    """All locations of the tenant sorted by name. Repairs the main invariant first."""
    if tenant_id is None:
        raise LocationError("A tenant is required")
    ensure_main_exists(tenant_id)
    return sorted(_tenant_locations(tenant_id), key=lambda location: location.name.lower())


def list_location_summaries(tenant_id: int) -> list[LocationSummary]:
    return [LocationSummary.from_model(location) for location in list_locations(tenant_id)]


def get_main_location(tenant_id: int) -> Location | None:
    return db.session.query(Location).filter_by(tenant_id=tenant_id, type="main").first()


def create_location(tenant_id: int, draft: dict, *, enforce_limit: bool = True) -> RegistryResult:
    """
    Register a location.

    The tenant's first location is always created as main (whatever type the
    draft asks for) and is covered by the subscription's initial location
    count. Later locations are checked against max_locations and counted.
    """
    cleaned = _validate_draft(draft, partial=False)

    existing = _tenant_locations(tenant_id)
    is_first = not existing
    if is_first:
        cleaned["type"] = "main"
    elif cleaned.get("type") == "main":
        raise LocationError("Tenant already has a main location")
    elif enforce_limit:
        _check_location_limit(tenant_id)

    if _name_taken(tenant_id, cleaned["name"]):
        raise LocationError(f"A location named {cleaned['name']!r} already exists")

    settings = default_settings()
    settings.update(cleaned.get("settings") or {})

    def _op():
        location = Location(
            id=branch_service.new_location_id(),
            tenant_id=tenant_id,
            name=cleaned["name"],
            type=cleaned.get("type", "branch"),
            status=cleaned.get("status", "active"),
            address=cleaned.get("address") or {},
            contact=cleaned.get("contact") or {},
            settings=settings,
        )
        db.session.add(location)
        db.session.add(LocationUsage(location_id=location.id, tenant_id=tenant_id))
        db.session.commit()
        return location

    location = persist(_op, action="create location")
    current_app.logger.info("Created location %s (%s) for tenant %s", location.id, location.type, tenant_id)

    warnings = _sync_projection(location.id, "create", location)
    _publish(tenant_id, "created", location.id)

    if not is_first and subscription_service.get_subscription(tenant_id) is not None:
        subscription_service.track_usage(tenant_id, "locations", 1)

    return RegistryResult(location=location, location_id=location.id, warnings=warnings)


def update_location(tenant_id: int, location_id: str, partial: dict) -> RegistryResult:
    """
    Apply a partial update. address/contact/settings are merged key by key.

    The main role moves only through set_main_location(): a branch cannot be
    switched to main here and the main cannot be switched away from it.
    """
    cleaned = _validate_draft(partial, partial=True)

    def _op():
        location = lock_for_update(
            db.session.query(Location).filter_by(tenant_id=tenant_id, id=location_id)
        ).first()
        if not location:
            raise LocationError("Location not found")

        new_type = cleaned.get("type")
        if new_type is not None and new_type != location.type:
            if new_type == "main":
                raise LocationError("Tenant already has a main location")
            if location.is_main:
                raise LocationError("The main location cannot change type; promote another location first")

        if "name" in cleaned and _name_taken(tenant_id, cleaned["name"], exclude_id=location_id):
            raise LocationError(f"A location named {cleaned['name']!r} already exists")

        for key in ("name", "type", "status"):
            if key in cleaned:
                setattr(location, key, cleaned[key])
        for key in JSON_FIELDS:
            if key in cleaned:
                merged = dict(getattr(location, key) or {})
                merged.update(cleaned[key])
                setattr(location, key, merged)

        location.updated_at = utcnow()
        db.session.commit()
        return location

    location = persist(_op, action="update location")
    warnings = _sync_projection(location_id, "update", location)
    _publish(tenant_id, "updated", location_id)
    return RegistryResult(location=location, location_id=location_id, warnings=warnings)


def set_main_location(tenant_id: int, location_id: str) -> RegistryResult:
    """Promote location_id to main and demote the current main to a branch, atomically."""
    def _op():
        target = get_location(tenant_id, location_id)
        if not target:
            raise LocationError("Location not found")
        demoted = []
        for location in _tenant_locations(tenant_id):
            if location.is_main and location.id != location_id:
                location.type = "branch"
                demoted.append(location)
        target.type = "main"
        db.session.commit()
        return target, demoted

    target, demoted = persist(_op, action="set main location")
    warnings = []
    for location in [target, *demoted]:
        warnings.extend(_sync_projection(location.id, "update", location))
    _publish(tenant_id, "main_changed", location_id)
    return RegistryResult(location=target, location_id=location_id, warnings=warnings)


def _delete_records(tenant_id: int, location_id: str) -> list[int]:
    """One transaction; returns the users whose location_ids lost the location."""
    pruned = []
    for member in db.session.query(TeamMember).filter_by(tenant_id=tenant_id):
        if location_id in (member.location_ids or []):
            member.location_ids = [other for other in member.location_ids if other != location_id]
            pruned.append(member.user_id)
    db.session.query(LocationInventory).filter_by(location_id=location_id).delete(synchronize_session=False)
    db.session.query(LocationAnalytics).filter_by(location_id=location_id).delete(synchronize_session=False)
    db.session.query(LocationUsage).filter_by(location_id=location_id).delete(synchronize_session=False)
    db.session.query(Location).filter_by(tenant_id=tenant_id, id=location_id).delete(synchronize_session=False)
    db.session.commit()
    return pruned


def _remaining_records(tenant_id: int, location_id: str) -> dict[str, int]:
    counts = {
        "locations": db.session.query(Location).filter_by(tenant_id=tenant_id, id=location_id).count(),
        "location_usage": db.session.query(LocationUsage).filter_by(location_id=location_id).count(),
        "location_inventory": db.session.query(LocationInventory).filter_by(location_id=location_id).count(),
        "location_analytics": db.session.query(LocationAnalytics).filter_by(location_id=location_id).count(),
        "team_member_locations": sum(
            1 for member in db.session.query(TeamMember).filter_by(tenant_id=tenant_id)
            if location_id in (member.location_ids or [])
        ),
    }
    return {table: count for table, count in counts.items() if count}


def delete_location(tenant_id: int, location_id: str) -> RegistryResult:
    """
    Delete a non-main location and everything keyed by it.

    The delete is idempotent, so a verification miss is retried up to
    LOCATION_DELETE_ATTEMPTS times before PartialDeleteFailure is raised.
    A failed transaction raises PersistenceFailure and leaves nothing deleted.
    """
    location = get_location(tenant_id, location_id)
    if not location:
        raise LocationError("Location not found")
    if location.is_main:
        raise MainLocationDeletionError("The main location cannot be deleted")

    attempts = current_app.config.get("LOCATION_DELETE_ATTEMPTS", 3)
    remaining: dict[str, int] = {}
    pruned: set[int] = set()
    for attempt in range(1, attempts + 1):
        try:
            pruned.update(_delete_records(tenant_id, location_id))
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error("Delete of location %s failed: %s", location_id, exc)
            raise PersistenceFailure("Could not delete location") from exc

        remaining = _remaining_records(tenant_id, location_id)
        if not remaining:
            break
        current_app.logger.warning(
            "Location %s still has records after delete attempt %s/%s: %s",
            location_id, attempt, attempts, remaining,
        )
    else:
        raise PartialDeleteFailure(f"Location {location_id} was only partially deleted", remaining)

    current_app.logger.info("Deleted location %s from tenant %s", location_id, tenant_id)

    warnings = _sync_projection(location_id, "delete")
    _publish(tenant_id, "deleted", location_id)
    for user_id in sorted(pruned):
        feed.publish(members_topic(tenant_id, user_id), {"action": "updated"})

    if subscription_service.get_subscription(tenant_id) is not None:
        subscription_service.track_usage(tenant_id, "locations", -1)

    return RegistryResult(location=None, location_id=location_id, warnings=warnings)


def ensure_main_exists(tenant_id: int) -> Location:
    """
    Repair the one-main invariant and return the main location.

    - no locations at all: create a default main location
    - locations but no main: promote the oldest
    - several mains: keep the oldest, demote the rest to branch
    """
    if tenant_id is None:
        raise LocationError("A tenant is required")
    locations = _tenant_locations(tenant_id)
    if not locations:
        result = create_location(tenant_id, {"name": DEFAULT_MAIN_NAME, "type": "main"}, enforce_limit=False)
        current_app.logger.info("Created default main location for tenant %s", tenant_id)
        return result.location

    mains = [location for location in locations if location.is_main]
    if len(mains) == 1:
        return mains[0]

    def _op():
        if not mains:
            keep = locations[0]
            keep.type = "main"
            changed = [keep]
        else:
            keep = mains[0]
            changed = mains[1:]
            for duplicate in changed:
                duplicate.type = "branch"
        db.session.commit()
        return keep, changed

    keep, changed = persist(_op, action="repair main location")
    current_app.logger.warning(
        "Repaired main location for tenant %s: main=%s, changed=%s",
        tenant_id, keep.id, [location.id for location in changed],
    )
    for location in changed:
        _sync_projection(location.id, "update", location)
    _publish(tenant_id, "main_repaired", keep.id)
    return keep


def get_accessible_locations(member, locations, *, platform_admin: bool = False, key=None) -> list:
    """
    Locations the member may work in: all of them for owners and platform
    admins, otherwise those listed in member.location_ids.

    key maps an item to its location id (default: item.id), so Branch rows
    can be filtered with key=lambda branch: branch.location_id.
    """
    if platform_admin or (member is not None and member.role == Role.OWNER):
        return list(locations)
    if member is None:
        return []
    key = key or (lambda item: item.id)
    allowed = set(member.location_ids or [])
    return [location for location in locations if key(location) in allowed]


# Per-location records

def get_location_usage(location_id: str) -> LocationUsage | None:
    return db.session.query(LocationUsage).filter_by(location_id=location_id).first()


def update_location_usage(tenant_id: int, location_id: str, **counters) -> LocationUsage:
    allowed = {"active_users", "products", "orders_this_month"}
    unknown = set(counters) - allowed
    if unknown:
        raise LocationError(f"Unknown usage field(s): {', '.join(sorted(unknown))}")
    if not get_location(tenant_id, location_id):
        raise LocationError("Location not found")

    def _op():
        usage = get_location_usage(location_id)
        if usage is None:
            usage = LocationUsage(location_id=location_id, tenant_id=tenant_id)
            db.session.add(usage)
        for key, value in counters.items():
            setattr(usage, key, value)
        usage.last_activity = utcnow()
        db.session.commit()
        return usage

    return persist(_op, action="update location usage")


def get_location_inventory(location_id: str, product_id: str | None = None) -> list[LocationInventory]:
    query = db.session.query(LocationInventory).filter_by(location_id=location_id)
    if product_id is not None:
        query = query.filter_by(product_id=product_id)
    return query.order_by(LocationInventory.product_id.asc()).all()


def update_location_inventory(
    location_id: str,
    product_id: str,
    *,
    quantity: int | None = None,
    reorder_level: int | None = None,
) -> LocationInventory:
    """Upsert the (location, product) stock row; unspecified fields are kept."""
    inventory_id = f"{location_id}_{product_id}"

    def _op():
        row = db.session.query(LocationInventory).filter_by(id=inventory_id).first()
        if row is None:
            row = LocationInventory(id=inventory_id, location_id=location_id, product_id=product_id)
            db.session.add(row)
        if quantity is not None:
            row.quantity = quantity
        if reorder_level is not None:
            row.reorder_level = reorder_level
        db.session.commit()
        return row

    return persist(_op, action="update location inventory")


def get_location_analytics(
    location_id: str,
    period: str,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[LocationAnalytics]:
    if period not in ANALYTICS_PERIODS:
        raise LocationError(f"Invalid analytics period: {period}")
    query = db.session.query(LocationAnalytics).filter_by(location_id=location_id, period=period)
    if start is not None:
        query = query.filter(LocationAnalytics.date >= start)
    if end is not None:
        query = query.filter(LocationAnalytics.date <= end)
    return query.order_by(LocationAnalytics.date.desc()).all()


def save_location_analytics(
    location_id: str,
    period: str,
    date: datetime,
    *,
    revenue_cents: int = 0,
    orders: int = 0,
) -> LocationAnalytics:
    """Write one rollup. The id is derived from (location, period, date) so re-saving overwrites."""
    if period not in ANALYTICS_PERIODS:
        raise LocationError(f"Invalid analytics period: {period}")
    date = as_naive_utc(date)
    epoch_ms = int((date - datetime(1970, 1, 1)).total_seconds() * 1000)
    analytics_id = f"{location_id}_{period}_{epoch_ms}"

    def _op():
        row = db.session.query(LocationAnalytics).filter_by(id=analytics_id).first()
        if row is None:
            row = LocationAnalytics(id=analytics_id, location_id=location_id, period=period, date=date)
            db.session.add(row)
        row.revenue_cents = revenue_cents
        row.orders = orders
        db.session.commit()
        return row

    return persist(_op, action="save location analytics")
