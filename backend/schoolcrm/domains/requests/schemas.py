import enum
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from schoolcrm.domains.requests.models import RequestTarget


class RequestCreate(BaseModel):
    target: RequestTarget
    title: str = Field(min_length=1, max_length=256)
    body: str = Field(default="", max_length=8000)


class RequestReply(BaseModel):
    body: str = Field(min_length=1, max_length=8000)


class CloseOutcome(str, enum.Enum):
    DONE = "done"
    REJECTED = "rejected"


class RequestClose(BaseModel):
    outcome: CloseOutcome
    reason: str | None = Field(default=None, max_length=2000)


class RequestMessageResponse(BaseModel):
    id: UUID
    author_id: UUID
    body: str
    created_at: datetime

    class Config:
        from_attributes = True


class RequestResponse(BaseModel):
    id: UUID
    author_id: UUID
    target: str
    title: str
    body: str
    status: str
    created_at: datetime
    last_message_at: datetime | None
    closed_at: datetime | None
    processed_by_id: UUID | None
    rejected_reason: str | None

    class Config:
        from_attributes = True


class RequestDetail(RequestResponse):
    messages: list[RequestMessageResponse] = []


class RequestSummary(BaseModel):
    id: UUID
    title: str
    status: str
    target: str
    author_name: str | None
    created_at: datetime
    last_message_at: datetime | None
