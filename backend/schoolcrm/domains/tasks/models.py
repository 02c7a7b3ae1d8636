import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from schoolcrm.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AssigneeStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    DONE = "done"


class TaskPriority(str, enum.Enum):
    NORMAL = "normal"
    HIGH = "high"


class Task(Base):
    __tablename__ = "tasks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    number: Mapped[int] = mapped_column(Integer, nullable=False, unique=True, index=True)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    priority: Mapped[str] = mapped_column(String(20), default=TaskPriority.NORMAL.value)
    hidden: Mapped[bool] = mapped_column(Boolean, default=False)
    min_role_power_to_see_hidden: Mapped[int] = mapped_column(Integer, default=0)
    review_required: Mapped[bool] = mapped_column(Boolean, default=False)
    created_by_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    created_by_name: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow)

    assignees: Mapped[list["TaskAssignee"]] = relationship("TaskAssignee", back_populates="task", cascade="all, delete-orphan")
    assignee_groups: Mapped[list["TaskAssigneeGroup"]] = relationship(
        "TaskAssigneeGroup", back_populates="task", cascade="all, delete-orphan"
    )
    attachments: Mapped[list["TaskAttachment"]] = relationship("TaskAttachment", back_populates="task", cascade="all, delete-orphan")

    @property
    def files(self) -> list["Attachment"]:
        return [link.attachment for link in self.attachments]


class TaskAssignee(Base):
    """One user's progress against one task."""
    __tablename__ = "task_assignees"
    __table_args__ = (UniqueConstraint("task_id", "user_id", name="uq_task_assignees_task_user"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    task_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), default=AssigneeStatus.IN_PROGRESS.value, index=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    reviewed_by_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"), nullable=True)

    task: Mapped["Task"] = relationship("Task", back_populates="assignees")
    submissions: Mapped[list["Submission"]] = relationship(
        "Submission", back_populates="task_assignee", cascade="all, delete-orphan", order_by="Submission.created_at"
    )


class TaskAssigneeGroup(Base):
    """Assignment of a task to every member of a group."""
    __tablename__ = "task_assignee_groups"
    __table_args__ = (UniqueConstraint("task_id", "group_id", name="uq_task_assignee_groups_task_group"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    task_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    group_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)

    task: Mapped["Task"] = relationship("Task", back_populates="assignee_groups")


class Submission(Base):
    """One attempt in the review workflow."""
    __tablename__ = "submissions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    task_assignee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("task_assignees.id", ondelete="CASCADE"), nullable=False, index=True
    )
    open: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    comment: Mapped[str | None] = mapped_column(Text)
    reviewer_comment: Mapped[str | None] = mapped_column(Text)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    reviewed_by_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)

    task_assignee: Mapped["TaskAssignee"] = relationship("TaskAssignee", back_populates="submissions")
    attachments: Mapped[list["SubmissionAttachment"]] = relationship(
        "SubmissionAttachment", back_populates="submission", cascade="all, delete-orphan"
    )

    @property
    def files(self) -> list["Attachment"]:
        return [link.attachment for link in self.attachments]


class Attachment(Base):
    """Metadata of a stored blob; the blob itself is immutable."""
    __tablename__ = "attachments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    original_name: Mapped[str | None] = mapped_column(String(255))
    mime: Mapped[str] = mapped_column(String(255), default="application/octet-stream")
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    sha256: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class SubmissionAttachment(Base):
    __tablename__ = "submission_attachments"

    submission_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("submissions.id", ondelete="CASCADE"), primary_key=True)
    attachment_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("attachments.id", ondelete="CASCADE"), primary_key=True)

    submission: Mapped["Submission"] = relationship("Submission", back_populates="attachments")
    attachment: Mapped["Attachment"] = relationship("Attachment")


class TaskAttachment(Base):
    __tablename__ = "task_attachments"

    task_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True)
    attachment_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("attachments.id", ondelete="CASCADE"), primary_key=True)

    task: Mapped["Task"] = relationship("Task", back_populates="attachments")
    attachment: Mapped["Attachment"] = relationship("Attachment")
