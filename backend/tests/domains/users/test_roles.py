"""Tests for the role hierarchy and aliasing."""
import pytest

from schoolcrm.domains.users.roles import (
    LATERAL_ROLES,
    ROLE_LABELS,
    ROLE_ORDER,
    Role,
    can_create_tasks,
    can_view_admin,
    can_view_tasks,
    canonicalize,
    has_full_access,
    parse_role,
    power_of,
)


class TestCanonicalize:
    @pytest.mark.parametrize("role", list(Role) + ["teacher+", "deputy+", "Педагог", "  DIRECTOR ", "nonsense", None, 42])
    def test_canonicalize_is_idempotent(self, role):
        once = canonicalize(role)
        assert canonicalize(once) == once

    def test_every_alias_maps_to_a_base_role(self):
        for alias, base in LATERAL_ROLES.items():
            assert canonicalize(alias) == base
            assert base in ROLE_ORDER

    def test_base_roles_map_to_themselves(self):
        for role in ROLE_ORDER:
            assert canonicalize(role.value) == role

    def test_spellings_and_labels(self):
        assert canonicalize("teacher+") == Role.TEACHER_PLUS
        assert canonicalize("Deputy +") == Role.DEPUTY_PLUS
        assert canonicalize(ROLE_LABELS[Role.PSYCHOLOGIST]) == Role.TEACHER
        assert canonicalize("Заместитель по АХЧ") == Role.DEPUTY

    def test_unknown_is_none(self):
        assert canonicalize("janitor") is None
        assert canonicalize("") is None
        assert canonicalize(None) is None

    def test_parse_role_keeps_lateral_identity(self):
        assert parse_role("sysadmin") == Role.SYSADMIN
        assert canonicalize("sysadmin") == Role.STAFF


class TestPower:
    def test_power_is_one_based_and_ascending(self):
        assert power_of(Role.USER) == 1
        assert power_of(Role.DIRECTOR) == len(ROLE_ORDER)
        powers = [power_of(r) for r in ROLE_ORDER]
        assert powers == sorted(powers)

    def test_unknown_and_missing_have_no_power(self):
        assert power_of(None) == 0
        assert power_of("janitor") == 0

    def test_alias_power_is_its_base_power(self):
        assert power_of(Role.DEPUTY_AXH) == power_of(Role.DEPUTY)
        assert power_of(Role.LIBRARIAN) == power_of(Role.TEACHER)


class TestPredicates:
    def test_can_view_tasks(self):
        assert can_view_tasks("teacher")
        assert can_view_tasks("psychologist")
        assert not can_view_tasks("staff")

    def test_can_create_tasks(self):
        assert can_create_tasks("deputy")
        assert can_create_tasks("deputy_axh")
        assert not can_create_tasks("teacher_plus")

    def test_full_access_and_admin(self):
        assert has_full_access("deputy_plus")
        assert has_full_access("director")
        assert not has_full_access("deputy")
        assert can_view_admin("director") == has_full_access("director")
