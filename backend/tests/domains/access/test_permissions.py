"""Tests for the permission evaluator."""
import sys
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from schoolcrm.core.exceptions import LookupFailed
from schoolcrm.domains.access.permissions import PERMISSIONS, Action, PermissionEvaluator, Requirement
from schoolcrm.domains.users.roles import Role

EXPECTED = {
    "user": {Action.SETTINGS_CHANGE_UI, Action.USER_UPDATE_PHONE_SELF},
    "teacher": {Action.SETTINGS_CHANGE_UI, Action.USER_UPDATE_PHONE_SELF, Action.TASK_VIEW},
    "sysadmin": {Action.SETTINGS_CHANGE_UI, Action.USER_UPDATE_PHONE_SELF, Action.REPORT_EXPORT_ALL},
    "deputy": {
        Action.SETTINGS_CHANGE_UI, Action.USER_UPDATE_PHONE_SELF, Action.USER_UPDATE_PHONE_ANY,
        Action.TASK_VIEW, Action.TASK_CREATE, Action.TASK_ASSIGN, Action.TASK_REVIEW,
        Action.TASK_HIDE, Action.TASK_VIEW_HIDDEN, Action.REPORT_EXPORT_ALL,
    },
    "director": set(Action),
}


class TestPermissionTable:
    def test_table_is_read_only(self):
        with pytest.raises(TypeError):
            PERMISSIONS[Action.TASK_VIEW] = Requirement(anyone=True)

    def test_every_action_has_a_requirement(self):
        assert set(PERMISSIONS) == set(Action)


class TestCan:
    @pytest.mark.parametrize("role", sorted(EXPECTED))
    def test_matches_table_in_any_order(self, db, make_user, role):
        user = make_user(role=role)
        evaluator = PermissionEvaluator(db)
        actions = list(Action)

        forward = {a for a in actions if evaluator.can(user.id, a)}
        backward = {a for a in reversed(actions) if evaluator.can(user.id, a)}
        repeated = {a for a in actions for _ in range(2) if evaluator.can(user.id, a)}

        assert forward == backward == repeated == EXPECTED[role]

    def test_extra_role_grants_count(self, db, make_user):
        user = make_user(role="teacher", extra_roles=["deputy_axh"])
        evaluator = PermissionEvaluator(db)
        assert evaluator.can(user.id, Action.TASK_CREATE)
        assert evaluator.can(user.id, Action.REPORT_EXPORT_ALL)
        assert not evaluator.can(user.id, Action.USER_MANAGE)

    def test_unknown_action_fails_closed(self, db, make_user):
        user = make_user(role="director")
        assert PermissionEvaluator(db).can(user.id, "task.teleport") is False

    def test_user_without_role_gets_only_open_actions(self, db, make_user):
        user = make_user(role=None)
        evaluator = PermissionEvaluator(db)
        assert evaluator.can(user.id, Action.SETTINGS_CHANGE_UI)
        assert not evaluator.can(user.id, Action.TASK_VIEW)

    def test_root_override_skips_lookup(self):
        mock_db = MagicMock()
        root_id = str(uuid4())
        evaluator = PermissionEvaluator(mock_db, frozenset({root_id}))

        assert all(evaluator.can(root_id, action) for action in Action)
        assert evaluator.max_power(root_id) == sys.maxsize
        mock_db.execute.assert_not_called()

    def test_open_action_needs_no_lookup(self):
        mock_db = MagicMock()
        assert PermissionEvaluator(mock_db).can(uuid4(), Action.SETTINGS_CHANGE_UI)
        mock_db.execute.assert_not_called()

    def test_store_failure_raises_lookup_failed(self):
        mock_db = MagicMock()
        mock_db.execute.side_effect = OperationalError("SELECT", {}, Exception("down"))
        with pytest.raises(LookupFailed):
            PermissionEvaluator(mock_db).can(uuid4(), Action.TASK_VIEW)


class TestRoleQueries:
    def test_get_user_roles_merges_primary_and_extra(self, db, make_user):
        user = make_user(role="teacher", extra_roles=["librarian", "teacher"])
        assert PermissionEvaluator(db).get_user_roles(user.id) == [Role.TEACHER, Role.LIBRARIAN]

    def test_max_power_uses_strongest_role(self, db, make_user):
        user = make_user(role="staff", extra_roles=["deputy_plus"])
        evaluator = PermissionEvaluator(db)
        assert evaluator.max_power(user.id) == 6
        assert evaluator.has_full_access(user.id)

    def test_unknown_user_has_no_power(self, db):
        assert PermissionEvaluator(db).max_power(uuid4()) == 0

    def test_has_any_role(self, db, make_user):
        user = make_user(role="psychologist")
        evaluator = PermissionEvaluator(db)
        assert evaluator.has_any_role(user.id, ["psychologist", "director"])
        assert not evaluator.has_any_role(user.id, ["teacher"])
