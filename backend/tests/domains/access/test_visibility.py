"""Tests for hidden-task visibility."""
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from schoolcrm.core.exceptions import LookupFailed
from schoolcrm.domains.access.permissions import PermissionEvaluator
from schoolcrm.domains.access.visibility import TaskVisibilityResolver
from schoolcrm.domains.tasks.models import TaskAssigneeGroup
from schoolcrm.domains.users.roles import Role, power_of


class TestCanSee:
    @pytest.fixture
    def director(self, make_user):
        return make_user(role="director")

    def test_visible_task_is_seen_by_anyone(self, visibility, make_user, make_task, director):
        task = make_task(director, hidden=False)
        for role in ("user", None, "teacher", "sysadmin"):
            assert visibility.can_see(make_user(role=role).id, task.id)

    def test_missing_task_is_not_seen(self, visibility, director):
        assert visibility.can_see(director.id, uuid4()) is False

    def test_direct_assignee_sees_hidden_task(self, visibility, make_user, make_task, director):
        assignee = make_user(role="user")
        task = make_task(director, [assignee], hidden=True, min_power=power_of(Role.DIRECTOR))
        assert visibility.can_see(assignee.id, task.id)

    def test_group_member_sees_hidden_task(self, db, visibility, make_user, make_group, make_task, director):
        member = make_user(role="user")
        group = make_group(member)
        task = make_task(director, hidden=True, min_power=power_of(Role.DIRECTOR))
        db.add(TaskAssigneeGroup(task_id=task.id, group_id=group.id))
        db.commit()

        assert visibility.can_see(member.id, task.id)
        assert not visibility.can_see(make_user(role="user").id, task.id)

    def test_power_threshold(self, visibility, make_user, make_task, director):
        task = make_task(director, hidden=True, min_power=power_of(Role.DEPUTY))

        assert visibility.can_see(make_user(role="deputy").id, task.id)
        assert visibility.can_see(make_user(role="deputy_axh").id, task.id)
        assert visibility.can_see(make_user(role="director").id, task.id)
        assert not visibility.can_see(make_user(role="teacher_plus").id, task.id)
        assert not visibility.can_see(make_user(role=None).id, task.id)

    def test_root_sees_everything_without_lookup(self, director):
        root_id = str(uuid4())
        mock_db = MagicMock()
        resolver = TaskVisibilityResolver(mock_db, PermissionEvaluator(mock_db, frozenset({root_id})))

        assert resolver.can_see(root_id, uuid4())
        mock_db.execute.assert_not_called()

    def test_root_sees_hidden_task(self, db, make_task, director):
        root_id = str(uuid4())
        task = make_task(director, hidden=True, min_power=100)
        resolver = TaskVisibilityResolver(db, PermissionEvaluator(db, frozenset({root_id})))
        assert resolver.can_see(root_id, task.id)

    def test_store_failure_raises_lookup_failed(self):
        mock_db = MagicMock()
        mock_db.execute.side_effect = OperationalError("SELECT", {}, Exception("down"))
        resolver = TaskVisibilityResolver(mock_db, PermissionEvaluator(mock_db))
        with pytest.raises(LookupFailed):
            resolver.can_see(uuid4(), uuid4())
