# Overview: Branch projection: the denormalized location list the switcher renders.

"""
Every Location has one Branch row whose id is the location id without the
"location_" prefix. The projection is derived data: location_service writes
it after the location itself has committed, and a failure here never undoes
the location write.
"""

from __future__ import annotations

import uuid

from ..extensions import db
from ..models import Branch, Location
from ..time_utils import utcnow


LOCATION_ID_PREFIX = "location_"


def new_location_id() -> str:
    return f"{LOCATION_ID_PREFIX}{uuid.uuid4().hex[:20]}"


def branch_id_for(location_id: str) -> str:
    """location_abc -> abc. Ids without the prefix are returned unchanged."""
    if location_id.startswith(LOCATION_ID_PREFIX):
        return location_id[len(LOCATION_ID_PREFIX):]
    return location_id


def location_id_for(branch_id: str) -> str:
    if branch_id.startswith(LOCATION_ID_PREFIX):
        return branch_id
    return f"{LOCATION_ID_PREFIX}{branch_id}"


def sync_branch(location: Location) -> Branch:
    """Create or refresh the Branch for location and commit. Revives a soft-deleted row."""
    branch = db.session.query(Branch).filter_by(location_id=location.id).first()
    if branch is None:
        branch = Branch(
            id=branch_id_for(location.id),
            location_id=location.id,
            tenant_id=location.tenant_id,
            stats={"total_revenue": 0, "total_orders": 0, "inventory_value": 0, "staff_count": 0},
        )
        db.session.add(branch)

    contact = location.contact or {}
    branch.name = location.name
    branch.address = location.address_line()
    branch.phone = contact.get("phone")
    branch.manager = contact.get("manager")
    branch.is_main = location.is_main
    branch.status = location.status
    branch.is_deleted = False
    branch.deleted_at = None

    db.session.commit()
    return branch


def soft_delete_branch(location_id: str) -> Branch | None:
    branch = db.session.query(Branch).filter_by(location_id=location_id).first()
    if branch is None:
        return None
    branch.is_deleted = True
    branch.deleted_at = utcnow()
    branch.status = "inactive"
    db.session.commit()
    return branch


def get_branch(branch_id: str) -> Branch | None:
    return db.session.query(Branch).filter_by(id=branch_id).first()


def list_branches(tenant_id: int, *, include_deleted: bool = False) -> list[Branch]:
    query = db.session.query(Branch).filter_by(tenant_id=tenant_id)
    if not include_deleted:
        query = query.filter_by(is_deleted=False)
    return query.order_by(Branch.is_main.desc(), Branch.name.asc()).all()


def update_branch_stats(branch_id: str, stats: dict) -> Branch | None:
    branch = get_branch(branch_id)
    if branch is None:
        return None
    merged = dict(branch.stats or {})
    merged.update(stats)
    branch.stats = merged
    db.session.commit()
    return branch
