import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from schoolcrm.core.database import Base
from schoolcrm.domains.tasks.models import utcnow
from schoolcrm.domains.users.models import User


class RequestStatus(str, enum.Enum):
    NEW = "new"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    REJECTED = "rejected"


OPEN_STATUSES = (RequestStatus.NEW.value, RequestStatus.IN_PROGRESS.value)


class RequestTarget(str, enum.Enum):
    """Role that processes the request."""
    DEPUTY_AXH = "deputy_axh"
    SYSADMIN = "sysadmin"


class Request(Base):
    """Service request to the maintenance deputy or the system administrator."""
    __tablename__ = "requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    author_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    target: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    body: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String(20), default=RequestStatus.NEW.value, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    last_message_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), index=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    processed_by_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"))
    rejected_reason: Mapped[str | None] = mapped_column(Text)

    author: Mapped["User"] = relationship("User", foreign_keys=[author_id])
    messages: Mapped[list["RequestMessage"]] = relationship(
        "RequestMessage", back_populates="request", cascade="all, delete-orphan", order_by="RequestMessage.created_at"
    )


class RequestMessage(Base):
    __tablename__ = "request_messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    author_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    request: Mapped["Request"] = relationship("Request", back_populates="messages")
    author: Mapped["User"] = relationship("User")
