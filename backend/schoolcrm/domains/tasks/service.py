import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session, selectinload

from schoolcrm.core.cache import REVIEWS_VIEW, TASKS_VIEW, ViewCache, view_key
from schoolcrm.core.database import atomic
from schoolcrm.core.exceptions import Conflict, Forbidden, InvalidState, NotFound, ValidationFailed
from schoolcrm.core.ids import as_uuid
from schoolcrm.domains.access.permissions import Action, PermissionEvaluator
from schoolcrm.domains.access.visibility import TaskVisibilityResolver
from schoolcrm.domains.files.service import AttachmentsService
from schoolcrm.domains.files.storage import FileStorage, UploadedFile
from schoolcrm.domains.tasks.models import (
    AssigneeStatus,
    Submission,
    Task,
    TaskAssignee,
    TaskAssigneeGroup,
    TaskAttachment,
    utcnow,
)
from schoolcrm.domains.tasks.schemas import TaskCreate, TaskSummary, TaskUpdate
from schoolcrm.domains.users.models import GroupMember, User

logger = logging.getLogger(__name__)

INBOX_TABS = ("assigned", "created")


class TasksService:
    def __init__(
        self,
        db: Session,
        permissions: PermissionEvaluator,
        visibility: TaskVisibilityResolver,
        storage: FileStorage | None = None,
        cache: ViewCache | None = None,
    ):
        self.db = db
        self.permissions = permissions
        self.visibility = visibility
        self.attachments = AttachmentsService(db, storage or FileStorage())
        self.cache = cache

    def _invalidate(self) -> None:
        if self.cache is not None:
            self.cache.invalidate(TASKS_VIEW, REVIEWS_VIEW)

    def _load(self, task_id: object) -> Task:
        tid = as_uuid(task_id)
        task = self.db.get(Task, tid) if tid is not None else None
        if task is None:
            raise NotFound("Task not found")
        return task

    def _require_owner(self, actor_id: object, task: Task) -> None:
        if str(task.created_by_id) == str(actor_id):
            return
        if not self.permissions.has_full_access(actor_id):
            raise Forbidden("Only the task author or a full-access role may change this task")

    def _own_assignment(self, actor_id: object, task_id: object) -> TaskAssignee:
        tid, uid = as_uuid(task_id), as_uuid(actor_id)
        assignee = None
        if tid is not None and uid is not None:
            assignee = self.db.execute(
                select(TaskAssignee)
                .options(selectinload(TaskAssignee.task))
                .where(TaskAssignee.task_id == tid, TaskAssignee.user_id == uid)
            ).scalar_one_or_none()
        if assignee is None:
            raise NotFound("You are not assigned to this task")
        return assignee

    def next_number(self) -> int:
        last = self.db.execute(select(func.max(Task.number))).scalar_one_or_none()
        return (last or 0) + 1

    def get_task(self, actor_id: object, task_id: object) -> Task:
        """Return the task, or ``NotFound`` when it is hidden from the actor."""
        task = self._load(task_id)
        if str(task.created_by_id) == str(actor_id):
            return task
        if not self.visibility.can_see(actor_id, task.id):
            raise NotFound("Task not found")
        return task

    def create_task(self, actor_id: object, payload: TaskCreate) -> Task:
        if not self.permissions.can(actor_id, Action.TASK_CREATE):
            raise Forbidden("Not allowed to create tasks")
        if (payload.hidden or payload.min_role_power_to_see_hidden) and not self.permissions.can(
            actor_id, Action.TASK_HIDE
        ):
            raise Forbidden("Not allowed to create hidden tasks")

        creator_id = as_uuid(actor_id)
        creator = self.db.get(User, creator_id) if creator_id is not None else None
        if creator is None:
            raise NotFound("User not found")

        user_ids = list(dict.fromkeys(payload.assignee_user_ids))
        group_ids = list(dict.fromkeys(payload.assignee_group_ids))
        if group_ids:
            members = self.db.execute(
                select(GroupMember.user_id).where(GroupMember.group_id.in_(group_ids))
            ).scalars().all()
            user_ids.extend(uid for uid in members if uid not in user_ids)
        if not user_ids:
            raise ValidationFailed("At least one assignee is required")

        known = set(self.db.execute(select(User.id).where(User.id.in_(user_ids))).scalars().all())
        missing = [str(uid) for uid in user_ids if uid not in known]
        if missing:
            raise NotFound(f"Unknown assignees: {', '.join(missing)}")

        now = utcnow()
        with atomic(self.db, "Task creation"):
            task = Task(
                number=self.next_number(),
                title=payload.title.strip(),
                description=payload.description.strip(),
                due_date=payload.due_date,
                priority=payload.priority.value,
                hidden=payload.hidden,
                min_role_power_to_see_hidden=payload.min_role_power_to_see_hidden,
                review_required=payload.review_required,
                created_by_id=creator.id,
                created_by_name=creator.name,
            )
            task.assignees = [
                TaskAssignee(user_id=uid, status=AssigneeStatus.IN_PROGRESS.value, assigned_at=now)
                for uid in user_ids
            ]
            task.assignee_groups = [TaskAssigneeGroup(group_id=gid) for gid in group_ids]
            self.db.add(task)

        logger.info(f"Task #{task.number} created by {creator.id} for {len(user_ids)} assignee(s)")
        self._invalidate()
        return task

    def add_attachments(self, actor_id: object, task_id: object, files: Sequence[UploadedFile]) -> Task:
        task = self._load(task_id)
        self._require_owner(actor_id, task)

        uploads = [f for f in files if f.data]
        self.attachments.validate(uploads)
        try:
            with atomic(self.db, "Attachment upload"):
                for upload in uploads:
                    attachment = self.attachments.store(upload)
                    if attachment is not None:
                        self.db.add(TaskAttachment(task_id=task.id, attachment_id=attachment.id))
        except BaseException:
            self.attachments.discard_written()
            raise
        self.attachments.written.clear()

        self.db.refresh(task)
        return task

    def update_task(self, actor_id: object, task_id: object, payload: TaskUpdate) -> Task:
        task = self._load(task_id)
        self._require_owner(actor_id, task)

        update_data = payload.model_dump(exclude_unset=True, exclude_none=True)
        with atomic(self.db, "Task update"):
            for field, value in update_data.items():
                if field == "priority":
                    value = value.value
                elif isinstance(value, str):
                    value = value.strip()
                setattr(task, field, value)

        self._invalidate()
        self.db.refresh(task)
        return task

    def delete_task(self, actor_id: object, task_id: object) -> None:
        task = self._load(task_id)
        self._require_owner(actor_id, task)
        with atomic(self.db, "Task deletion"):
            self.db.delete(task)
        logger.info(f"Task {task_id} deleted by {actor_id}")
        self._invalidate()

    def purge_hidden(self, actor_id: object) -> int:
        """Delete every hidden task the actor created."""
        if not self.permissions.can(actor_id, Action.TASK_PURGE_HIDDEN):
            raise Forbidden("Not allowed to purge hidden tasks")
        creator_id = as_uuid(actor_id)
        if creator_id is None:
            return 0

        with atomic(self.db, "Hidden task purge"):
            ids = self.db.execute(
                select(Task.id).where(Task.created_by_id == creator_id, Task.hidden.is_(True))
            ).scalars().all()
            if ids:
                assignee_ids = select(TaskAssignee.id).where(TaskAssignee.task_id.in_(ids))
                self.db.execute(delete(Submission).where(Submission.task_assignee_id.in_(assignee_ids)))
                self.db.execute(delete(TaskAssignee).where(TaskAssignee.task_id.in_(ids)))
                self.db.execute(delete(TaskAssigneeGroup).where(TaskAssigneeGroup.task_id.in_(ids)))
                self.db.execute(delete(TaskAttachment).where(TaskAttachment.task_id.in_(ids)))
                self.db.execute(delete(Task).where(Task.id.in_(ids)))

        logger.info(f"Purged {len(ids)} hidden task(s) of {creator_id}")
        if ids:
            self._invalidate()
        return len(ids)

    def _flip_own(self, assignee: TaskAssignee, expected: AssigneeStatus, **values: Any) -> None:
        with atomic(self.db, "Status change"):
            result = self.db.execute(
                update(TaskAssignee)
                .where(TaskAssignee.id == assignee.id, TaskAssignee.status == expected.value)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise Conflict()
        self.db.refresh(assignee)
        self._invalidate()

    def mark_done(self, actor_id: object, task_id: object) -> TaskAssignee:
        """Close the actor's own assignment of a task that needs no review."""
        assignee = self._own_assignment(actor_id, task_id)
        if assignee.task.review_required:
            raise InvalidState("This task must be submitted for review")
        if assignee.status != AssigneeStatus.IN_PROGRESS.value:
            raise InvalidState(f"Assignee is '{assignee.status}', expected 'in_progress'")
        self._flip_own(
            assignee, AssigneeStatus.IN_PROGRESS, status=AssigneeStatus.DONE.value, completed_at=utcnow()
        )
        return assignee

    def reopen(self, actor_id: object, task_id: object) -> TaskAssignee:
        """Move the actor's own finished assignment back to work."""
        assignee = self._own_assignment(actor_id, task_id)
        if assignee.task.review_required:
            raise InvalidState("Reviewed work can only be returned by the reviewer")
        if assignee.status != AssigneeStatus.DONE.value:
            raise InvalidState(f"Assignee is '{assignee.status}', expected 'done'")
        self._flip_own(assignee, AssigneeStatus.DONE, status=AssigneeStatus.IN_PROGRESS.value, completed_at=None)
        return assignee

    def list_inbox(self, actor_id: object, tab: str = "assigned", include_done: bool = False) -> list[dict[str, Any]]:
        if tab not in INBOX_TABS:
            raise ValidationFailed(f"Unknown inbox tab '{tab}'")
        uid = as_uuid(actor_id)
        if uid is None:
            return []

        key = view_key(TASKS_VIEW, str(uid), tab, "all" if include_done else "open")
        if self.cache is not None:
            cached = self.cache.get_json(key)
            if cached is not None:
                return cached

        query = select(Task).options(selectinload(Task.assignees)).order_by(Task.due_date, Task.number)
        if tab == "assigned":
            query = query.join(TaskAssignee, TaskAssignee.task_id == Task.id).where(TaskAssignee.user_id == uid)
            if not include_done:
                query = query.where(TaskAssignee.status != AssigneeStatus.DONE.value)
        else:
            query = query.where(Task.created_by_id == uid)

        rows = []
        for task in self.db.execute(query).scalars().unique().all():
            if tab == "assigned" and task.hidden and not self.visibility.can_see(uid, task.id):
                continue
            mine = next((a for a in task.assignees if a.user_id == uid), None)
            done = sum(1 for a in task.assignees if a.status == AssigneeStatus.DONE.value)
            if tab == "created" and not include_done and task.assignees and done == len(task.assignees):
                continue
            summary = TaskSummary(
                id=task.id,
                number=task.number,
                title=task.title,
                due_date=task.due_date,
                priority=task.priority,
                hidden=task.hidden,
                review_required=task.review_required,
                created_by_id=task.created_by_id,
                created_by_name=task.created_by_name,
                my_status=mine.status if mine else None,
                done_count=done,
                total_count=len(task.assignees),
            )
            rows.append(summary.model_dump(mode="json"))

        if self.cache is not None:
            self.cache.set_json(key, rows)
        return rows
