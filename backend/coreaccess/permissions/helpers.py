# Overview: Lookups over the permission-string catalog.

from .definitions import PERMISSION_DEFINITIONS, WILDCARD

_BY_CODE = {definition[0]: definition for definition in PERMISSION_DEFINITIONS}


def get_all_permission_codes() -> list[str]:
    return list(_BY_CODE)


def get_permissions_by_category(category: str) -> list[tuple]:
    return [definition for definition in PERMISSION_DEFINITIONS if definition[3] == category]


def get_permission_definition(code: str) -> dict | None:
    """Catalog entry for a permission string as a dict, or None when unknown."""
    definition = _BY_CODE.get(code)
    if definition is None:
        return None
    code, name, description, category = definition
    return {"code": code, "name": name, "description": description, "category": category}


def validate_permission_code(code: str) -> bool:
    """Known permission strings and the "*" wildcard are valid."""
    return code == WILDCARD or code in _BY_CODE
