import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from schoolcrm.core.database import Base
from schoolcrm.domains.tasks.models import utcnow
from schoolcrm.domains.users.models import User


class DiscussionPost(Base):
    __tablename__ = "discussion_posts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    author_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    pinned: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=utcnow)

    author: Mapped["User"] = relationship("User")
    comments: Mapped[list["DiscussionComment"]] = relationship(
        "DiscussionComment", back_populates="post", cascade="all, delete-orphan"
    )
    reactions: Mapped[list["DiscussionReaction"]] = relationship(
        "DiscussionReaction", back_populates="post", cascade="all, delete-orphan"
    )


class DiscussionComment(Base):
    __tablename__ = "discussion_comments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    post_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("discussion_posts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    author_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    post: Mapped["DiscussionPost"] = relationship("DiscussionPost", back_populates="comments")
    author: Mapped["User"] = relationship("User")


class DiscussionReaction(Base):
    """One like per user and post."""
    __tablename__ = "discussion_reactions"
    __table_args__ = (UniqueConstraint("post_id", "user_id", name="uq_discussion_reactions_post_user"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    post_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("discussion_posts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), default="like")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    post: Mapped["DiscussionPost"] = relationship("DiscussionPost", back_populates="reactions")
    user: Mapped["User"] = relationship("User")
