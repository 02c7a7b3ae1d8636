from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from schoolcrm.domains.tasks.models import AssigneeStatus, TaskPriority
from schoolcrm.domains.tasks.review_service import BulkOperation


class AttachmentResponse(BaseModel):
    id: UUID
    name: str
    original_name: str | None
    mime: str
    size: int
    sha256: str
    created_at: datetime

    class Config:
        from_attributes = True


class TaskBase(BaseModel):
    title: str = Field(min_length=1, max_length=256)
    description: str = Field(default="", max_length=10000)
    due_date: datetime
    priority: TaskPriority = TaskPriority.NORMAL


class TaskCreate(TaskBase):
    review_required: bool = False
    hidden: bool = False
    min_role_power_to_see_hidden: int = Field(default=0, ge=0)
    assignee_user_ids: list[UUID] = []
    assignee_group_ids: list[UUID] = []


class TaskUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=256)
    description: str | None = Field(default=None, max_length=10000)
    due_date: datetime | None = None
    priority: TaskPriority | None = None


class TaskAssigneeResponse(BaseModel):
    id: UUID
    task_id: UUID
    user_id: UUID
    status: AssigneeStatus
    assigned_at: datetime
    submitted_at: datetime | None
    reviewed_at: datetime | None
    completed_at: datetime | None
    reviewed_by_id: UUID | None

    class Config:
        from_attributes = True


class TaskResponse(TaskBase):
    id: UUID
    number: int
    hidden: bool
    min_role_power_to_see_hidden: int
    review_required: bool
    created_by_id: UUID
    created_by_name: str | None
    created_at: datetime
    updated_at: datetime
    assignees: list[TaskAssigneeResponse] = []
    files: list[AttachmentResponse] = []

    class Config:
        from_attributes = True


class TaskSummary(BaseModel):
    """Row of the task inbox."""
    id: UUID
    number: int
    title: str
    due_date: datetime
    priority: TaskPriority
    hidden: bool
    review_required: bool
    created_by_id: UUID
    created_by_name: str | None
    my_status: AssigneeStatus | None = None
    done_count: int = 0
    total_count: int = 0


class PurgeResponse(BaseModel):
    purged: int


# --- Reviews ---


class SubmissionResponse(BaseModel):
    id: UUID
    task_assignee_id: UUID
    open: bool
    comment: str | None
    reviewer_comment: str | None
    reviewed_at: datetime | None
    reviewed_by_id: UUID | None
    created_at: datetime
    files: list[AttachmentResponse] = []

    class Config:
        from_attributes = True


class ReviewDecision(BaseModel):
    comment: str | None = Field(default=None, max_length=10000)


class RejectRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=10000)


class BulkReviewRequest(BaseModel):
    ids: list[UUID] = Field(min_length=1)
    operation: BulkOperation
    reason: str | None = Field(default=None, max_length=10000)


class ReviewCountResponse(BaseModel):
    count: int


class PendingAssignee(BaseModel):
    id: UUID
    user_id: UUID
    user_name: str | None
    submitted_at: datetime | None
    comment: str | None
    attachment_count: int


class PendingReview(BaseModel):
    task_id: UUID
    number: int
    title: str
    due_date: datetime
    assignees: list[PendingAssignee]


class ReviewHistoryResponse(BaseModel):
    assignee: TaskAssigneeResponse
    submissions: list[SubmissionResponse]
