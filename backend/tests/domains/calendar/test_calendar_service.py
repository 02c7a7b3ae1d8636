"""Tests for personal calendar notes and the agenda view."""
from datetime import date, datetime, time, timedelta, timezone
from uuid import uuid4

import pytest

from schoolcrm.core.exceptions import NotFound, ValidationFailed
from schoolcrm.domains.calendar.schemas import NoteWrite
from schoolcrm.domains.calendar.service import CalendarService
from schoolcrm.domains.tasks.models import AssigneeStatus, utcnow


@pytest.fixture
def calendar(db):
    return CalendarService(db, tz="Asia/Yekaterinburg")


def _as_utc(moment: datetime) -> datetime:
    # SQLite returns naive UTC values
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


class TestLocalTime:
    def test_local_time_is_stored_in_utc(self, calendar):
        at = calendar.to_utc(date(2026, 10, 19), time(9, 30), all_day=False)
        assert at == datetime(2026, 10, 19, 4, 30, tzinfo=timezone.utc)

    def test_all_day_ignores_time(self, calendar):
        at = calendar.to_utc(date(2026, 10, 19), time(9, 30), all_day=True)
        assert at == datetime(2026, 10, 18, 19, 0, tzinfo=timezone.utc)


class TestNotes:
    def test_create_update_delete(self, calendar, make_user):
        owner = make_user()
        note = calendar.create_note(
            owner.id, NoteWrite(day=date(2026, 10, 20), start_time=time(14, 0), title="  ", text="Parents meeting")
        )
        assert note.title is None
        assert _as_utc(note.at) == datetime(2026, 10, 20, 9, 0, tzinfo=timezone.utc)

        updated = calendar.update_note(
            owner.id, note.id, NoteWrite(day=date(2026, 10, 21), all_day=True, title="Meeting", text="Moved")
        )
        assert updated.all_day is True
        assert updated.title == "Meeting"

        note_id = note.id
        calendar.delete_note(owner.id, note_id)
        with pytest.raises(NotFound):
            calendar.delete_note(owner.id, note_id)

    def test_foreign_note_is_not_found(self, calendar, make_user):
        note = calendar.create_note(make_user().id, NoteWrite(day=date(2026, 10, 20)))
        intruder = make_user()
        with pytest.raises(NotFound):
            calendar.update_note(intruder.id, note.id, NoteWrite(day=date(2026, 10, 22)))
        with pytest.raises(NotFound):
            calendar.delete_note(intruder.id, uuid4())


class TestAgenda:
    def test_notes_and_own_deadlines(self, calendar, make_user, make_task):
        me, other = make_user(), make_user()
        creator = make_user(role="deputy")
        mine = make_task(creator, [me])
        make_task(creator, [other])
        make_task(creator, [me], status=AssigneeStatus.DONE)
        calendar.create_note(me.id, NoteWrite(day=(utcnow() + timedelta(days=1)).date(), all_day=True))
        calendar.create_note(other.id, NoteWrite(day=(utcnow() + timedelta(days=1)).date(), all_day=True))

        start = utcnow() - timedelta(days=1)
        agenda = calendar.agenda(me.id, start, start + timedelta(days=7))

        assert len(agenda["notes"]) == 1
        assert [t["task_id"] for t in agenda["tasks"]][0] == mine.id
        assert [t["my_status"] for t in agenda["tasks"]] == ["in_progress", "done"]

    def test_range_bounds(self, calendar, make_user):
        me = make_user()
        start = datetime(2026, 10, 1)
        with pytest.raises(ValidationFailed):
            calendar.list_notes(me.id, start, start)
        with pytest.raises(ValidationFailed):
            calendar.list_notes(me.id, start, start + timedelta(days=120))
        assert calendar.list_notes(me.id, start, start + timedelta(days=31)) == []
