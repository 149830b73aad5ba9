"""
Role table and permission-string catalog tests.
"""

import pytest

from coreaccess.permissions import (
    ALL_MODULES,
    DEFAULT_ROLE_PERMISSIONS,
    MODULE_FEATURES,
    ROLE_MODULES,
    ROLES,
    WILDCARD,
    ActionCapability,
    Module,
    ModuleCapability,
    PermissionCategory,
    Role,
    get_all_permission_codes,
    get_permission_definition,
    get_permissions_by_category,
    grants,
    member_capabilities,
    parse_capability,
    role_capabilities,
    validate_permission_code,
)


class TestRoleTable:
    def test_owner_is_a_superset_of_every_role(self):
        for role in ROLES:
            assert ROLE_MODULES[role] <= ROLE_MODULES[Role.OWNER]

    def test_owner_has_every_module(self):
        assert ROLE_MODULES[Role.OWNER] == frozenset(ALL_MODULES)

    def test_every_module_has_a_feature_entry(self):
        assert set(MODULE_FEATURES) == set(ALL_MODULES)

    def test_default_permissions_are_catalogued(self):
        for role, codes in DEFAULT_ROLE_PERMISSIONS.items():
            for code in codes:
                assert validate_permission_code(code), f"{role}: {code}"

    def test_owner_defaults_to_wildcard(self):
        assert DEFAULT_ROLE_PERMISSIONS[Role.OWNER] == [WILDCARD]


class TestCatalog:
    def test_codes_are_unique_and_dotted(self):
        codes = get_all_permission_codes()
        assert len(codes) == len(set(codes))
        assert all("." in code for code in codes)

    def test_definition_lookup(self):
        definition = get_permission_definition("locations.delete")
        assert definition["category"] == PermissionCategory.LOCATIONS
        assert get_permission_definition("locations.teleport") is None

    def test_by_category(self):
        codes = [perm[0] for perm in get_permissions_by_category(PermissionCategory.USERS)]
        assert "users.invite" in codes
        assert "inventory.read" not in codes

    def test_validate(self):
        assert validate_permission_code(WILDCARD)
        assert not validate_permission_code("inventory")


class TestCapabilities:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("inventory.delete", ActionCapability("inventory.delete")),
            ("*", ActionCapability("*")),
            ("team-management", ModuleCapability("team-management")),
        ],
    )
    def test_parse(self, value, expected):
        assert parse_capability(value) == expected

    def test_role_capabilities(self):
        caps = role_capabilities(Role.VIEWER)
        assert ModuleCapability(Module.REPORTS) in caps
        assert ActionCapability("analytics.read") in caps
        assert ModuleCapability(Module.POS) not in caps

    def test_member_permissions_replace_role_defaults(self):
        caps = member_capabilities(Role.STAFF, ["expenses.delete"])
        assert grants(caps, ActionCapability("expenses.delete"))
        assert not grants(caps, ActionCapability("pos.read"))

    def test_wildcard_covers_actions_only(self):
        caps = member_capabilities(Role.STAFF, [WILDCARD])
        assert grants(caps, ActionCapability("users.remove"))
        assert not grants(caps, ModuleCapability(Module.TEAM_MANAGEMENT))
