"""Tests for private chat threads."""
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from schoolcrm.core.exceptions import Forbidden, NotFound, ValidationFailed
from schoolcrm.domains.chat.models import Message, Thread, ThreadRead
from schoolcrm.domains.chat.service import MAX_MESSAGE_LENGTH, ChatService


@pytest.fixture
def chat(db):
    return ChatService(db)


@pytest.fixture
def pair(make_user):
    return make_user(name="Anna"), make_user(name="Boris")


class TestThreads:
    def test_open_is_symmetric(self, chat, pair):
        anna, boris = pair
        first = chat.open_thread(anna.id, boris.id)
        second = chat.open_thread(boris.id, anna.id)
        assert first.id == second.id
        assert str(first.a_id) < str(first.b_id)

    def test_cannot_talk_to_self_or_nobody(self, chat, pair):
        anna, _ = pair
        with pytest.raises(ValidationFailed):
            chat.open_thread(anna.id, anna.id)
        with pytest.raises(NotFound):
            chat.open_thread(anna.id, uuid4())

    def test_outsider_is_forbidden(self, chat, pair, make_user):
        thread = chat.open_thread(*[u.id for u in pair])
        with pytest.raises(Forbidden):
            chat.list_messages(make_user().id, thread.id)
        with pytest.raises(NotFound):
            chat.get_thread(pair[0].id, uuid4())


class TestMessages:
    def test_send_updates_preview_and_unread(self, chat, pair):
        anna, boris = pair
        thread = chat.open_thread(anna.id, boris.id)
        chat.send_message(anna.id, thread.id, "  Hello!  ")
        chat.send_message(anna.id, thread.id, "Are you there?")

        [row] = chat.list_threads(boris.id)
        assert row["peer_name"] == "Anna"
        assert row["last_message_text"] == "Are you there?"
        assert row["unread_count"] == 2
        assert chat.list_threads(anna.id)[0]["unread_count"] == 0

        chat.mark_read(boris.id, thread.id)
        assert chat.list_threads(boris.id)[0]["has_unread"] is False
        assert [m.text for m in chat.list_messages(boris.id, thread.id)] == ["Hello!", "Are you there?"]

        state = chat.read_state(anna.id, thread.id)
        assert state["my"] is None
        assert state["peer"] is not None

    def test_message_validation(self, chat, pair):
        thread = chat.open_thread(*[u.id for u in pair])
        with pytest.raises(ValidationFailed):
            chat.send_message(pair[0].id, thread.id, "   ")
        with pytest.raises(ValidationFailed):
            chat.send_message(pair[0].id, thread.id, "x" * (MAX_MESSAGE_LENGTH + 1))

    def test_mark_read_is_an_upsert(self, db, chat, pair):
        thread = chat.open_thread(*[u.id for u in pair])
        chat.mark_read(pair[0].id, thread.id)
        chat.mark_read(pair[0].id, thread.id)
        assert db.execute(select(func.count()).select_from(ThreadRead)).scalar_one() == 1


class TestArchiveAndPurge:
    def test_archived_thread_is_hidden_until_new_message(self, chat, pair):
        anna, boris = pair
        thread = chat.open_thread(anna.id, boris.id)
        chat.archive(anna.id, thread.id)
        assert chat.list_threads(anna.id) == []
        assert len(chat.list_threads(anna.id, include_archived=True)) == 1

        chat.send_message(boris.id, thread.id, "ping")
        assert len(chat.list_threads(anna.id)) == 1

    def test_purge_removes_messages_and_marks(self, db, chat, pair):
        thread = chat.open_thread(*[u.id for u in pair])
        thread_id = thread.id
        chat.send_message(pair[0].id, thread_id, "bye")
        chat.mark_read(pair[1].id, thread_id)

        chat.purge(pair[0].id, thread_id)

        assert db.get(Thread, thread_id) is None
        for model in (Message, ThreadRead):
            assert db.execute(select(func.count()).select_from(model)).scalar_one() == 0
