import logging
from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from schoolcrm.core.database import atomic
from schoolcrm.core.exceptions import Forbidden, NotFound
from schoolcrm.core.ids import as_uuid
from schoolcrm.domains.access.permissions import Action, PermissionEvaluator
from schoolcrm.domains.users.models import Group, GroupMember, User

logger = logging.getLogger(__name__)


class GroupService:
    def __init__(self, db: Session, permissions: PermissionEvaluator):
        self.db = db
        self.permissions = permissions

    def _require_manage(self, actor_id: object) -> None:
        if not self.permissions.can(actor_id, Action.GROUP_MANAGE):
            raise Forbidden()

    def get_group(self, group_id: object) -> Group:
        gid = as_uuid(group_id)
        group = self.db.get(Group, gid) if gid is not None else None
        if group is None:
            raise NotFound("Group not found")
        return group

    def list_groups(self) -> list[tuple[Group, int]]:
        counts = (
            select(GroupMember.group_id, func.count(GroupMember.id).label("members"))
            .group_by(GroupMember.group_id)
            .subquery()
        )
        rows = self.db.execute(
            select(Group, func.coalesce(counts.c.members, 0))
            .outerjoin(counts, counts.c.group_id == Group.id)
            .order_by(Group.name)
        ).all()
        return [(group, count) for group, count in rows]

    def create_group(self, actor_id: object, name: str) -> Group:
        self._require_manage(actor_id)
        group = Group(name=name.strip())
        with atomic(self.db, "Group creation"):
            self.db.add(group)
        logger.info(f"Group '{group.name}' created by {actor_id}")
        return group

    def rename_group(self, actor_id: object, group_id: object, name: str) -> Group:
        self._require_manage(actor_id)
        group = self.get_group(group_id)
        with atomic(self.db, "Group rename"):
            group.name = name.strip()
        return group

    def delete_group(self, actor_id: object, group_id: object) -> None:
        self._require_manage(actor_id)
        group = self.get_group(group_id)
        with atomic(self.db, "Group deletion"):
            self.db.delete(group)
        logger.info(f"Group {group_id} deleted by {actor_id}")

    def add_members(self, actor_id: object, group_id: object, user_ids: Sequence[UUID]) -> int:
        """Add users to a group; users already in it are skipped."""
        self._require_manage(actor_id)
        group = self.get_group(group_id)

        wanted = list(dict.fromkeys(user_ids))
        known = set(self.db.execute(select(User.id).where(User.id.in_(wanted))).scalars().all())
        missing = [str(uid) for uid in wanted if uid not in known]
        if missing:
            raise NotFound(f"Unknown users: {', '.join(missing)}")

        present = set(
            self.db.execute(
                select(GroupMember.user_id).where(GroupMember.group_id == group.id, GroupMember.user_id.in_(wanted))
            ).scalars().all()
        )
        added = [uid for uid in wanted if uid not in present]
        with atomic(self.db, "Membership update"):
            self.db.add_all(GroupMember(group_id=group.id, user_id=uid) for uid in added)
        return len(added)

    def remove_member(self, actor_id: object, group_id: object, user_id: object) -> None:
        self._require_manage(actor_id)
        group = self.get_group(group_id)
        member = self.db.execute(
            select(GroupMember).where(GroupMember.group_id == group.id, GroupMember.user_id == as_uuid(user_id))
        ).scalar_one_or_none()
        if member is None:
            raise NotFound("User is not a member of this group")
        with atomic(self.db, "Membership removal"):
            self.db.delete(member)

    def list_members(self, group_id: object) -> list[User]:
        group = self.get_group(group_id)
        return self.db.execute(
            select(User)
            .join(GroupMember, GroupMember.user_id == User.id)
            .where(GroupMember.group_id == group.id)
            .order_by(User.name)
        ).scalars().all()
