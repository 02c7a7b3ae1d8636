from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class ThreadOpen(BaseModel):
    peer_id: UUID


class ThreadResponse(BaseModel):
    id: UUID
    a_id: UUID
    b_id: UUID
    title: str | None
    last_message_at: datetime | None
    last_message_text: str | None
    archived_at: datetime | None
    created_at: datetime

    class Config:
        from_attributes = True


class ThreadSummary(BaseModel):
    id: UUID
    title: str | None
    peer_id: UUID
    peer_name: str
    peer_role: str | None
    last_message_at: datetime | None
    last_message_text: str | None
    archived_at: datetime | None
    unread_count: int
    has_unread: bool


class ThreadArchive(BaseModel):
    archived: bool = True


class MessageCreate(BaseModel):
    text: str = Field(min_length=1, max_length=4000)


class MessageResponse(BaseModel):
    id: UUID
    thread_id: UUID
    author_id: UUID
    text: str
    created_at: datetime

    class Config:
        from_attributes = True


class ReadStateResponse(BaseModel):
    my: datetime | None
    peer: datetime | None
    last_message_at: datetime | None
