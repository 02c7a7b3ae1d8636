"""Submission and review workflow for task assignees.

States per assignee::

    in_progress --submit--> submitted --approve--> done
         ^                      |
         +-------reject---------+

Authorization and state guards run before any write. Every transition is a
single transaction whose status change is a conditional update on the
expected status, so of two racing transitions at most one wins; the other
gets ``Conflict`` and its transaction is rolled back.
"""
import enum
import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from schoolcrm.core.cache import REVIEWS_VIEW, TASKS_VIEW, ViewCache, view_key
from schoolcrm.core.database import transaction
from schoolcrm.core.exceptions import (
    Conflict,
    Forbidden,
    InvalidState,
    LookupFailed,
    NotFound,
    ReviewNotRequired,
    ValidationFailed,
)
from schoolcrm.core.ids import as_uuid
from schoolcrm.domains.access.permissions import PermissionEvaluator
from schoolcrm.domains.files.service import AttachmentsService
from schoolcrm.domains.files.storage import FileStorage, UploadedFile
from schoolcrm.domains.tasks.models import (
    AssigneeStatus,
    Submission,
    SubmissionAttachment,
    Task,
    TaskAssignee,
    utcnow,
)
from schoolcrm.domains.users.models import User

logger = logging.getLogger(__name__)


class BulkOperation(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"


def _clean(text: str | None) -> str | None:
    return (text or "").strip() or None


class ReviewService:
    def __init__(
        self,
        db: Session,
        permissions: PermissionEvaluator,
        storage: FileStorage | None = None,
        cache: ViewCache | None = None,
    ):
        self.db = db
        self.permissions = permissions
        self.attachments = AttachmentsService(db, storage or FileStorage())
        self.cache = cache

    # --- Lookups and guards ---

    def get_assignee(self, task_assignee_id: object) -> TaskAssignee:
        aid = as_uuid(task_assignee_id)
        if aid is None:
            raise NotFound("Task assignee not found")
        try:
            assignee = self.db.get(TaskAssignee, aid, options=[joinedload(TaskAssignee.task)])
        except SQLAlchemyError as e:
            raise LookupFailed("Could not load task assignee") from e
        if assignee is None:
            raise NotFound("Task assignee not found")
        return assignee

    def get_task(self, task_id: object) -> Task:
        tid = as_uuid(task_id)
        if tid is None:
            raise NotFound("Task not found")
        try:
            task = self.db.get(Task, tid)
        except SQLAlchemyError as e:
            raise LookupFailed("Could not load task") from e
        if task is None:
            raise NotFound("Task not found")
        return task

    def may_review(self, actor_id: object, task: Task) -> bool:
        """Task author, or a full-access role (root included)."""
        if str(task.created_by_id) == str(actor_id):
            return True
        return self.permissions.has_full_access(actor_id)

    def _authorize_review(self, actor_id: object, task: Task) -> None:
        if not self.may_review(actor_id, task):
            raise Forbidden("Only the task author or a full-access role may review")

    @staticmethod
    def _require_status(assignee: TaskAssignee, expected: AssigneeStatus) -> None:
        if assignee.status != expected.value:
            raise InvalidState(f"Assignee is '{assignee.status}', expected '{expected.value}'")

    # --- Transaction helpers ---

    @contextmanager
    def _atomic(self) -> Iterator[None]:
        try:
            with transaction(self.db):
                yield
        except SQLAlchemyError as e:
            logger.error(f"Review transition rolled back: {e}")
            raise LookupFailed("Review transition failed; nothing was saved") from e

    def _close_open_submissions(self, assignee_ids: Sequence[UUID], **values: Any) -> None:
        self.db.execute(
            update(Submission)
            .where(Submission.task_assignee_id.in_(assignee_ids), Submission.open.is_(True))
            .values(open=False, **values)
            .execution_options(synchronize_session=False)
        )

    def _transition(self, assignee_ids: Sequence[UUID], expected: AssigneeStatus, **values: Any) -> None:
        result = self.db.execute(
            update(TaskAssignee)
            .where(TaskAssignee.id.in_(assignee_ids), TaskAssignee.status == expected.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != len(assignee_ids):
            raise Conflict(
                f"{len(assignee_ids) - result.rowcount} of {len(assignee_ids)} assignees "
                f"left '{expected.value}' concurrently"
            )

    def _invalidate(self) -> None:
        if self.cache is not None:
            self.cache.invalidate(TASKS_VIEW, REVIEWS_VIEW)

    # --- Transitions ---

    def submit_for_review(
        self,
        actor_id: object,
        task_assignee_id: object,
        files: Sequence[UploadedFile] = (),
        comment: str | None = None,
    ) -> Submission:
        """in_progress -> submitted, with a fresh open submission."""
        assignee = self.get_assignee(task_assignee_id)
        if str(assignee.user_id) != str(actor_id):
            raise Forbidden("Only the assignee may submit this work")
        if not assignee.task.review_required:
            raise ReviewNotRequired()
        self._require_status(assignee, AssigneeStatus.IN_PROGRESS)

        uploads = [f for f in files if f.data]
        self.attachments.validate(uploads)
        now = utcnow()

        try:
            with self._atomic():
                self._close_open_submissions([assignee.id])

                submission = Submission(
                    task_assignee_id=assignee.id,
                    comment=_clean(comment),
                    open=True,
                    created_at=now,
                )
                self.db.add(submission)
                self.db.flush()

                for upload in uploads:
                    attachment = self.attachments.store(upload)
                    if attachment is not None:
                        self.db.add(SubmissionAttachment(submission_id=submission.id, attachment_id=attachment.id))

                self._transition(
                    [assignee.id],
                    AssigneeStatus.IN_PROGRESS,
                    status=AssigneeStatus.SUBMITTED.value,
                    submitted_at=now,
                )
        except BaseException:
            self.attachments.discard_written()
            raise
        self.attachments.written.clear()

        logger.info(f"Assignee {assignee.id} submitted for review with {len(uploads)} file(s)")
        self._invalidate()
        return submission

    def approve_submission(self, actor_id: object, task_assignee_id: object, comment: str | None = None) -> TaskAssignee:
        """submitted -> done."""
        assignee = self.get_assignee(task_assignee_id)
        self._authorize_review(actor_id, assignee.task)
        self._require_status(assignee, AssigneeStatus.SUBMITTED)

        now = utcnow()
        reviewer_id = as_uuid(actor_id)
        with self._atomic():
            self._close_open_submissions(
                [assignee.id],
                reviewed_at=now,
                reviewed_by_id=reviewer_id,
                reviewer_comment=_clean(comment),
            )
            self._transition(
                [assignee.id],
                AssigneeStatus.SUBMITTED,
                status=AssigneeStatus.DONE.value,
                reviewed_at=now,
                reviewed_by_id=reviewer_id,
                completed_at=now,
            )

        logger.info(f"Assignee {assignee.id} approved by {actor_id}")
        self._invalidate()
        return assignee

    def reject_submission(self, actor_id: object, task_assignee_id: object, reason: str | None = None) -> Submission:
        """submitted -> in_progress; the reason is recorded as a new submission."""
        assignee = self.get_assignee(task_assignee_id)
        self._authorize_review(actor_id, assignee.task)
        self._require_status(assignee, AssigneeStatus.SUBMITTED)

        now = utcnow()
        reviewer_id = as_uuid(actor_id)
        reason = _clean(reason)
        with self._atomic():
            self._close_open_submissions([assignee.id], reviewed_at=now, reviewed_by_id=reviewer_id)
            rejection = Submission(
                task_assignee_id=assignee.id,
                comment=reason,
                open=False,
                reviewed_at=now,
                reviewed_by_id=reviewer_id,
                created_at=now,
            )
            self.db.add(rejection)
            self.db.flush()
            self._transition(
                [assignee.id],
                AssigneeStatus.SUBMITTED,
                status=AssigneeStatus.IN_PROGRESS.value,
                reviewed_at=now,
                reviewed_by_id=reviewer_id,
            )

        logger.info(f"Assignee {assignee.id} returned by {actor_id}")
        self._invalidate()
        return rejection

    def approve_all_in_task(self, actor_id: object, task_id: object) -> int:
        """Approve every submitted assignee of one task in a single batch."""
        task = self.get_task(task_id)
        self._authorize_review(actor_id, task)

        now = utcnow()
        reviewer_id = as_uuid(actor_id)
        with self._atomic():
            ids = self.db.execute(
                select(TaskAssignee.id).where(
                    TaskAssignee.task_id == task.id,
                    TaskAssignee.status == AssigneeStatus.SUBMITTED.value,
                )
            ).scalars().all()
            if ids:
                self._close_open_submissions(ids, reviewed_at=now, reviewed_by_id=reviewer_id)
                self._transition(
                    ids,
                    AssigneeStatus.SUBMITTED,
                    status=AssigneeStatus.DONE.value,
                    reviewed_at=now,
                    reviewed_by_id=reviewer_id,
                    completed_at=now,
                )

        logger.info(f"Approved {len(ids)} assignee(s) of task {task.id}")
        if ids:
            self._invalidate()
        return len(ids)

    def bulk_review(
        self,
        actor_id: object,
        ids: Sequence[object],
        operation: BulkOperation | str,
        reason: str | None = None,
    ) -> int:
        """Approve or return an explicit selection of assignees, all or nothing."""
        try:
            operation = BulkOperation(operation)
        except ValueError:
            raise ValidationFailed(f"Unknown bulk operation '{operation}'")

        assignee_ids: list[UUID] = []
        for raw in ids:
            aid = as_uuid(raw)
            if aid is None:
                raise NotFound(f"Task assignee '{raw}' not found")
            if aid not in assignee_ids:
                assignee_ids.append(aid)
        if not assignee_ids:
            return 0

        try:
            assignees = self.db.execute(
                select(TaskAssignee)
                .options(joinedload(TaskAssignee.task))
                .where(TaskAssignee.id.in_(assignee_ids))
            ).scalars().all()
        except SQLAlchemyError as e:
            raise LookupFailed("Could not load task assignees") from e
        if len(assignees) != len(assignee_ids):
            raise NotFound("Some selected task assignees do not exist")

        full_access = None
        for assignee in assignees:
            if str(assignee.task.created_by_id) == str(actor_id):
                continue
            if full_access is None:
                full_access = self.permissions.has_full_access(actor_id)
            if not full_access:
                raise Forbidden(f"Not allowed to review task {assignee.task_id}")
        for assignee in assignees:
            self._require_status(assignee, AssigneeStatus.SUBMITTED)

        now = utcnow()
        reviewer_id = as_uuid(actor_id)
        with self._atomic():
            if operation is BulkOperation.APPROVE:
                self._close_open_submissions(assignee_ids, reviewed_at=now, reviewed_by_id=reviewer_id)
                self._transition(
                    assignee_ids,
                    AssigneeStatus.SUBMITTED,
                    status=AssigneeStatus.DONE.value,
                    reviewed_at=now,
                    reviewed_by_id=reviewer_id,
                    completed_at=now,
                )
            else:
                self._close_open_submissions(
                    assignee_ids,
                    reviewed_at=now,
                    reviewed_by_id=reviewer_id,
                    reviewer_comment=_clean(reason),
                )
                self._transition(
                    assignee_ids,
                    AssigneeStatus.SUBMITTED,
                    status=AssigneeStatus.IN_PROGRESS.value,
                    reviewed_at=now,
                    reviewed_by_id=reviewer_id,
                )

        logger.info(f"Bulk {operation.value} of {len(assignee_ids)} assignee(s) by {actor_id}")
        self._invalidate()
        return len(assignee_ids)

    # --- Read paths ---

    def list_pending_reviews(self, actor_id: object) -> list[dict[str, Any]]:
        """Tasks of the actor that have assignees waiting for review."""
        key = view_key(REVIEWS_VIEW, str(actor_id))
        if self.cache is not None:
            cached = self.cache.get_json(key)
            if cached is not None:
                return cached

        query = (
            select(Task)
            .join(TaskAssignee, TaskAssignee.task_id == Task.id)
            .where(Task.review_required.is_(True), TaskAssignee.status == AssigneeStatus.SUBMITTED.value)
            .options(selectinload(Task.assignees).selectinload(TaskAssignee.submissions).selectinload(Submission.attachments))
            .order_by(Task.due_date)
            .distinct()
        )
        if not self.permissions.has_full_access(actor_id):
            creator_id = as_uuid(actor_id)
            if creator_id is None:
                return []
            query = query.where(Task.created_by_id == creator_id)

        tasks = self.db.execute(query).scalars().all()
        user_ids = {a.user_id for t in tasks for a in t.assignees}
        names = dict(self.db.execute(select(User.id, User.name).where(User.id.in_(user_ids))).all()) if user_ids else {}

        result = []
        for task in tasks:
            waiting = [a for a in task.assignees if a.status == AssigneeStatus.SUBMITTED.value]
            waiting.sort(key=lambda a: a.submitted_at or a.assigned_at)
            result.append({
                "task_id": str(task.id),
                "number": task.number,
                "title": task.title,
                "due_date": task.due_date.isoformat(),
                "assignees": [
                    {
                        "id": str(a.id),
                        "user_id": str(a.user_id),
                        "user_name": names.get(a.user_id),
                        "submitted_at": a.submitted_at.isoformat() if a.submitted_at else None,
                        "comment": a.submissions[-1].comment if a.submissions else None,
                        "attachment_count": len(a.submissions[-1].attachments) if a.submissions else 0,
                    }
                    for a in waiting
                ],
            })

        if self.cache is not None:
            self.cache.set_json(key, result)
        return result

    def get_history(self, actor_id: object, task_assignee_id: object) -> tuple[TaskAssignee, list[Submission]]:
        """All submissions of one assignee, newest first."""
        assignee = self.get_assignee(task_assignee_id)
        if str(assignee.user_id) != str(actor_id):
            self._authorize_review(actor_id, assignee.task)
        submissions = self.db.execute(
            select(Submission)
            .options(selectinload(Submission.attachments).selectinload(SubmissionAttachment.attachment))
            .where(Submission.task_assignee_id == assignee.id)
            .order_by(Submission.created_at.desc())
        ).scalars().all()
        return assignee, list(submissions)

    def count_waiting(self, actor_id: object) -> int:
        """Number of assignees waiting for the actor's review; matches ``list_pending_reviews``."""
        query = (
            select(func.count())
            .select_from(TaskAssignee)
            .join(Task, Task.id == TaskAssignee.task_id)
            .where(Task.review_required.is_(True), TaskAssignee.status == AssigneeStatus.SUBMITTED.value)
        )
        if not self.permissions.has_full_access(actor_id):
            creator_id = as_uuid(actor_id)
            if creator_id is None:
                return 0
            query = query.where(Task.created_by_id == creator_id)
        return self.db.execute(query).scalar_one()
