"""Per-action permission checks.

Every action maps to a static ``Requirement``. The table is built once at
import time and is read-only; the evaluator keeps no state between calls, so
``can`` is idempotent and free of side effects.
"""
import enum
import logging
import sys
from collections.abc import Iterable
from dataclasses import dataclass, field
from types import MappingProxyType

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from schoolcrm.core.exceptions import LookupFailed
from schoolcrm.core.ids import as_uuid
from schoolcrm.domains.users.models import User, UserRole
from schoolcrm.domains.users.roles import Role, parse_role, power_of

logger = logging.getLogger(__name__)


class Action(str, enum.Enum):
    SETTINGS_CHANGE_UI = "settings.changeUi"
    USER_UPDATE_PHONE_SELF = "user.updatePhone:self"
    USER_UPDATE_PHONE_ANY = "user.updatePhone:any"
    USER_MANAGE = "user.manage"
    GROUP_MANAGE = "group.manage"
    ADMIN_VIEW = "admin.view"
    TASK_VIEW = "task.view"
    TASK_CREATE = "task.create"
    TASK_ASSIGN = "task.assign"
    TASK_REVIEW = "task.review"
    TASK_HIDE = "task.hide"
    TASK_VIEW_HIDDEN = "task.viewHidden"
    TASK_PURGE_HIDDEN = "task.purgeHidden"
    REPORT_EXPORT_ALL = "report.exportAll"


@dataclass(frozen=True)
class Requirement:
    """Who may perform an action.

    ``anyone`` grants every identity without a role lookup. Otherwise a role
    qualifies when its canonical power reaches ``min_role`` or when the raw
    role is listed in ``lateral``.
    """
    min_role: Role | None = None
    lateral: frozenset[Role] = field(default_factory=frozenset)
    anyone: bool = False

    def allows(self, roles: Iterable[Role]) -> bool:
        if self.anyone:
            return True
        threshold = power_of(self.min_role) if self.min_role else None
        for role in roles:
            if role in self.lateral:
                return True
            if threshold is not None and power_of(role) >= threshold:
                return True
        return False


PERMISSIONS: MappingProxyType[Action, Requirement] = MappingProxyType({
    Action.SETTINGS_CHANGE_UI: Requirement(anyone=True),
    Action.USER_UPDATE_PHONE_SELF: Requirement(anyone=True),
    Action.TASK_VIEW: Requirement(min_role=Role.TEACHER),
    Action.TASK_CREATE: Requirement(min_role=Role.DEPUTY),
    Action.TASK_ASSIGN: Requirement(min_role=Role.DEPUTY),
    Action.TASK_REVIEW: Requirement(min_role=Role.DEPUTY),
    Action.TASK_HIDE: Requirement(min_role=Role.DEPUTY),
    Action.TASK_VIEW_HIDDEN: Requirement(min_role=Role.DEPUTY),
    Action.USER_UPDATE_PHONE_ANY: Requirement(min_role=Role.DEPUTY),
    Action.USER_MANAGE: Requirement(min_role=Role.DEPUTY_PLUS),
    Action.GROUP_MANAGE: Requirement(min_role=Role.DEPUTY_PLUS),
    Action.ADMIN_VIEW: Requirement(min_role=Role.DEPUTY_PLUS),
    Action.TASK_PURGE_HIDDEN: Requirement(min_role=Role.DEPUTY_PLUS),
    Action.REPORT_EXPORT_ALL: Requirement(
        min_role=Role.DEPUTY,
        lateral=frozenset({Role.SYSADMIN, Role.DEPUTY_AXH}),
    ),
})

FULL_ACCESS_POWER = power_of(Role.DEPUTY_PLUS)


class PermissionEvaluator:
    """Answers "may this user do that" against the role tables."""

    def __init__(self, db: Session, root_ids: frozenset[str] = frozenset()):
        self.db = db
        self.root_ids = root_ids

    def is_root(self, user_id: object) -> bool:
        return user_id is not None and str(user_id) in self.root_ids

    def get_user_roles(self, user_id: object) -> list[Role]:
        """Primary role plus extra grants, as recognized ``Role`` members."""
        uid = as_uuid(user_id)
        if uid is None:
            return []
        try:
            primary = self.db.execute(select(User.role).where(User.id == uid)).scalar_one_or_none()
            extra = self.db.execute(select(UserRole.role).where(UserRole.user_id == uid)).scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Role lookup failed for user {uid}: {e}")
            raise LookupFailed("Could not resolve user roles") from e

        roles = []
        for raw in (primary, *extra):
            role = parse_role(raw)
            if role is not None and role not in roles:
                roles.append(role)
        return roles

    def max_power(self, user_id: object) -> int:
        if self.is_root(user_id):
            return sys.maxsize
        return max((power_of(role) for role in self.get_user_roles(user_id)), default=0)

    def has_full_access(self, user_id: object) -> bool:
        return self.max_power(user_id) >= FULL_ACCESS_POWER

    def has_any_role(self, user_id: object, roles: Iterable[Role | str]) -> bool:
        if self.is_root(user_id):
            return True
        wanted = {parse_role(r) for r in roles} - {None}
        return any(role in wanted for role in self.get_user_roles(user_id))

    def can(self, user_id: object, action: Action | str) -> bool:
        if self.is_root(user_id):
            return True
        try:
            requirement = PERMISSIONS.get(Action(action))
        except ValueError:
            return False
        if requirement is None:
            return False
        if requirement.anyone:
            return True
        return requirement.allows(self.get_user_roles(user_id))
