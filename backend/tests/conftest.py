"""Shared fixtures: an in-memory SQLite database and small row factories."""
from datetime import timedelta
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from schoolcrm.core.cache import ViewCache
from schoolcrm.core.database import Base
from schoolcrm.domains.access.permissions import PermissionEvaluator
from schoolcrm.domains.access.visibility import TaskVisibilityResolver
from schoolcrm.domains.calendar import models as calendar_models  # noqa: F401
from schoolcrm.domains.chat import models as chat_models  # noqa: F401
from schoolcrm.domains.discussions import models as discussion_models  # noqa: F401
from schoolcrm.domains.files.storage import FileStorage
from schoolcrm.domains.requests import models as request_models  # noqa: F401
from schoolcrm.domains.tasks.models import AssigneeStatus, Task, TaskAssignee, utcnow
from schoolcrm.domains.users.models import Group, GroupMember, User, UserRole


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def permissions(db):
    return PermissionEvaluator(db, frozenset())


@pytest.fixture
def visibility(db, permissions):
    return TaskVisibilityResolver(db, permissions)


@pytest.fixture
def storage(tmp_path):
    return FileStorage(tmp_path / "uploads")


@pytest.fixture
def cache():
    mock_cache = MagicMock(spec=ViewCache)
    mock_cache.get_json.return_value = None
    return mock_cache


@pytest.fixture
def make_user(db):
    def _make(role: str | None = "teacher", extra_roles=(), name: str | None = None) -> User:
        suffix = uuid4().hex[:8]
        user = User(username=f"user-{suffix}", name=name or f"User {suffix}", role=role)
        user.extra_roles = [UserRole(role=r) for r in extra_roles]
        db.add(user)
        db.commit()
        return user
    return _make


@pytest.fixture
def make_group(db):
    def _make(*members: User) -> Group:
        group = Group(name=f"Group {uuid4().hex[:6]}")
        group.members = [GroupMember(user_id=m.id) for m in members]
        db.add(group)
        db.commit()
        return group
    return _make


@pytest.fixture
def make_task(db):
    counter = {"number": 0}

    def _make(
        creator: User,
        assignees=(),
        review_required: bool = True,
        hidden: bool = False,
        min_power: int = 0,
        status: AssigneeStatus = AssigneeStatus.IN_PROGRESS,
    ) -> Task:
        counter["number"] += 1
        task = Task(
            number=counter["number"],
            title=f"Task {counter['number']}",
            description="",
            due_date=utcnow() + timedelta(days=3),
            review_required=review_required,
            hidden=hidden,
            min_role_power_to_see_hidden=min_power,
            created_by_id=creator.id,
            created_by_name=creator.name,
        )
        task.assignees = [TaskAssignee(user_id=u.id, status=status.value) for u in assignees]
        db.add(task)
        db.commit()
        return task
    return _make
