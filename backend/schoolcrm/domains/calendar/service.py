import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from schoolcrm.core.config import settings
from schoolcrm.core.database import atomic
from schoolcrm.core.exceptions import NotFound, ValidationFailed
from schoolcrm.core.ids import as_uuid
from schoolcrm.domains.calendar.models import Note
from schoolcrm.domains.calendar.schemas import NoteWrite
from schoolcrm.domains.tasks.models import Task, TaskAssignee

logger = logging.getLogger(__name__)

MAX_RANGE = timedelta(days=92)


class CalendarService:
    def __init__(self, db: Session, tz: str | None = None):
        self.db = db
        self.tz = ZoneInfo(tz or settings.CALENDAR_TIMEZONE)

    def _me(self, actor_id: object) -> UUID:
        uid = as_uuid(actor_id)
        if uid is None:
            raise NotFound("User not found")
        return uid

    def to_utc(self, day: date, start_time: time | None, all_day: bool) -> datetime:
        """School-local day and time to UTC; all-day notes sit at local midnight."""
        local = datetime.combine(day, time(0) if all_day or start_time is None else start_time, tzinfo=self.tz)
        return local.astimezone(timezone.utc)

    def _own_note(self, actor_id: object, note_id: object) -> Note:
        me = self._me(actor_id)
        nid = as_uuid(note_id)
        note = self.db.get(Note, nid) if nid is not None else None
        # someone else's note is reported as missing
        if note is None or note.user_id != me:
            raise NotFound("Note not found")
        return note

    def _apply(self, note: Note, payload: NoteWrite) -> None:
        note.at = self.to_utc(payload.day, payload.start_time, payload.all_day)
        note.all_day = payload.all_day
        note.title = (payload.title or "").strip() or None
        note.text = payload.text

    def create_note(self, actor_id: object, payload: NoteWrite) -> Note:
        note = Note(user_id=self._me(actor_id))
        self._apply(note, payload)
        with atomic(self.db, "Note creation"):
            self.db.add(note)
        return note

    def update_note(self, actor_id: object, note_id: object, payload: NoteWrite) -> Note:
        note = self._own_note(actor_id, note_id)
        with atomic(self.db, "Note update"):
            self._apply(note, payload)
        self.db.refresh(note)
        return note

    def delete_note(self, actor_id: object, note_id: object) -> None:
        note = self._own_note(actor_id, note_id)
        with atomic(self.db, "Note deletion"):
            self.db.delete(note)
        logger.info(f"Calendar note {note_id} deleted by {actor_id}")

    def _check_range(self, start: datetime, end: datetime) -> None:
        if end <= start:
            raise ValidationFailed("Range end must be after its start")
        if end - start > MAX_RANGE:
            raise ValidationFailed(f"Range is limited to {MAX_RANGE.days} days")

    def list_notes(self, actor_id: object, start: datetime, end: datetime) -> list[Note]:
        start, end = _utc(start), _utc(end)
        self._check_range(start, end)
        return self.db.execute(
            select(Note)
            .where(Note.user_id == self._me(actor_id), Note.at >= start, Note.at < end)
            .order_by(Note.at)
        ).scalars().all()

    def agenda(self, actor_id: object, start: datetime, end: datetime) -> dict[str, Any]:
        """Own notes plus own assignments due in ``[start, end)``."""
        start, end = _utc(start), _utc(end)
        notes = self.list_notes(actor_id, start, end)
        rows = self.db.execute(
            select(Task.id, Task.number, Task.title, Task.due_date, TaskAssignee.status)
            .join(TaskAssignee, TaskAssignee.task_id == Task.id)
            .where(TaskAssignee.user_id == self._me(actor_id), Task.due_date >= start, Task.due_date < end)
            .order_by(Task.due_date, Task.number)
        ).all()
        return {
            "notes": notes,
            "tasks": [
                {"task_id": r.id, "number": r.number, "title": r.title, "due_date": r.due_date, "my_status": r.status}
                for r in rows
            ],
        }


def _utc(moment: datetime) -> datetime:
    """Range bounds without an offset are taken as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)
