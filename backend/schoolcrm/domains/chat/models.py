import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from schoolcrm.core.database import Base
from schoolcrm.domains.tasks.models import utcnow
from schoolcrm.domains.users.models import User


class Thread(Base):
    """Private conversation between two users; ``a_id`` sorts before ``b_id``."""
    __tablename__ = "chat_threads"
    __table_args__ = (UniqueConstraint("a_id", "b_id", name="uq_chat_threads_pair"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    a_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    b_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title: Mapped[str | None] = mapped_column(String(255))
    last_message_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), index=True)
    last_message_text: Mapped[str | None] = mapped_column(String(255))
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    a: Mapped["User"] = relationship("User", foreign_keys=[a_id])
    b: Mapped["User"] = relationship("User", foreign_keys=[b_id])
    messages: Mapped[list["Message"]] = relationship(
        "Message", back_populates="thread", cascade="all, delete-orphan", order_by="Message.created_at"
    )

    def peer_of(self, user_id: uuid.UUID) -> "User":
        return self.b if self.a_id == user_id else self.a


class Message(Base):
    __tablename__ = "chat_messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    thread_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("chat_threads.id", ondelete="CASCADE"), nullable=False, index=True
    )
    author_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)

    thread: Mapped["Thread"] = relationship("Thread", back_populates="messages")
    author: Mapped["User"] = relationship("User")


class ThreadRead(Base):
    """Last moment a participant read a thread."""
    __tablename__ = "chat_thread_reads"
    __table_args__ = (UniqueConstraint("thread_id", "user_id", name="uq_chat_thread_reads_thread_user"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    thread_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("chat_threads.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    last_read_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
