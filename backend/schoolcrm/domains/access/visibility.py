"""Who may see a hidden task."""
import logging

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from schoolcrm.core.exceptions import LookupFailed
from schoolcrm.core.ids import as_uuid
from schoolcrm.domains.access.permissions import PermissionEvaluator
from schoolcrm.domains.tasks.models import Task, TaskAssignee, TaskAssigneeGroup
from schoolcrm.domains.users.models import GroupMember

logger = logging.getLogger(__name__)


class TaskVisibilityResolver:
    """Checks run cheapest and most precise first:

    root override, task flags, direct assignment, group assignment, and only
    then the role-power threshold.
    """

    def __init__(self, db: Session, permissions: PermissionEvaluator):
        self.db = db
        self.permissions = permissions

    def can_see(self, user_id: object, task_id: object) -> bool:
        if self.permissions.is_root(user_id):
            return True

        tid = as_uuid(task_id)
        if tid is None:
            return False
        uid = as_uuid(user_id)

        try:
            flags = self.db.execute(
                select(Task.hidden, Task.min_role_power_to_see_hidden).where(Task.id == tid).limit(1)
            ).first()
            if flags is None:
                return False
            if not flags.hidden:
                return True
            if uid is None:
                return False

            direct = self.db.execute(
                select(func.count())
                .select_from(TaskAssignee)
                .where(TaskAssignee.task_id == tid, TaskAssignee.user_id == uid)
            ).scalar_one()
            if direct > 0:
                return True

            via_group = self.db.execute(
                select(func.count())
                .select_from(TaskAssigneeGroup)
                .join(GroupMember, GroupMember.group_id == TaskAssigneeGroup.group_id)
                .where(TaskAssigneeGroup.task_id == tid, GroupMember.user_id == uid)
            ).scalar_one()
            if via_group > 0:
                return True
        except SQLAlchemyError as e:
            logger.error(f"Visibility lookup failed for task {tid}: {e}")
            raise LookupFailed("Could not resolve task visibility") from e

        return self.permissions.max_power(uid) >= (flags.min_role_power_to_see_hidden or 0)
