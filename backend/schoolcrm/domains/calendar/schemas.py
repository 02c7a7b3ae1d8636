from datetime import date, datetime, time
from uuid import UUID

from pydantic import BaseModel, Field


class NoteWrite(BaseModel):
    """``day`` and ``start_time`` are school-local; ``start_time`` is ignored for all-day notes."""
    day: date
    start_time: time | None = None
    all_day: bool = False
    title: str | None = Field(default=None, max_length=255)
    text: str = Field(default="", max_length=8000)


class NoteResponse(BaseModel):
    id: UUID
    user_id: UUID
    at: datetime
    all_day: bool
    title: str | None
    text: str
    created_at: datetime

    class Config:
        from_attributes = True


class AgendaTask(BaseModel):
    task_id: UUID
    number: int
    title: str
    due_date: datetime
    my_status: str


class AgendaResponse(BaseModel):
    notes: list[NoteResponse]
    tasks: list[AgendaTask]
