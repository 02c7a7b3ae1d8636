from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, status

from schoolcrm.core.dependencies import CurrentUser, DbSession
from schoolcrm.domains.calendar.schemas import AgendaResponse, NoteResponse, NoteWrite
from schoolcrm.domains.calendar.service import CalendarService

router = APIRouter()


@router.get("", response_model=AgendaResponse)
def get_agenda(start: datetime, end: datetime, db: DbSession, current_user: CurrentUser):
    """Notes and own task deadlines in ``[start, end)``."""
    service = CalendarService(db)
    return service.agenda(current_user.sub, start, end)


@router.post("/notes", response_model=NoteResponse, status_code=status.HTTP_201_CREATED)
def create_note(request: NoteWrite, db: DbSession, current_user: CurrentUser):
    service = CalendarService(db)
    return service.create_note(current_user.sub, request)


@router.put("/notes/{note_id}", response_model=NoteResponse)
def update_note(note_id: UUID, request: NoteWrite, db: DbSession, current_user: CurrentUser):
    service = CalendarService(db)
    return service.update_note(current_user.sub, note_id, request)


@router.delete("/notes/{note_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_note(note_id: UUID, db: DbSession, current_user: CurrentUser):
    service = CalendarService(db)
    service.delete_note(current_user.sub, note_id)
