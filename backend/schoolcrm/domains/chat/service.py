import logging
from uuid import UUID

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.orm import Session, selectinload

from schoolcrm.core.database import atomic
from schoolcrm.core.exceptions import Forbidden, NotFound, ValidationFailed
from schoolcrm.core.ids import as_uuid
from schoolcrm.domains.chat.models import Message, Thread, ThreadRead
from schoolcrm.domains.tasks.models import utcnow
from schoolcrm.domains.users.models import User

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4000
PREVIEW_LENGTH = 200


class ChatService:
    def __init__(self, db: Session):
        self.db = db

    def _me(self, actor_id: object) -> UUID:
        uid = as_uuid(actor_id)
        if uid is None:
            raise NotFound("User not found")
        return uid

    def get_thread(self, actor_id: object, thread_id: object) -> Thread:
        """Load a thread the actor participates in."""
        me = self._me(actor_id)
        tid = as_uuid(thread_id)
        thread = self.db.get(Thread, tid) if tid is not None else None
        if thread is None:
            raise NotFound("Thread not found")
        if me not in (thread.a_id, thread.b_id):
            raise Forbidden("Not a participant of this thread")
        return thread

    def open_thread(self, actor_id: object, peer_id: object) -> Thread:
        me = self._me(actor_id)
        peer = as_uuid(peer_id)
        if peer is None or self.db.get(User, peer) is None:
            raise NotFound("User not found")
        if peer == me:
            raise ValidationFailed("Cannot open a thread with yourself")

        a_id, b_id = sorted((me, peer), key=str)
        thread = self.db.execute(
            select(Thread).where(Thread.a_id == a_id, Thread.b_id == b_id)
        ).scalar_one_or_none()
        if thread is not None:
            if thread.archived_at is not None:
                with atomic(self.db, "Thread restore"):
                    thread.archived_at = None
            return thread

        thread = Thread(a_id=a_id, b_id=b_id)
        with atomic(self.db, "Thread creation"):
            self.db.add(thread)
        logger.info(f"Chat thread {thread.id} opened between {a_id} and {b_id}")
        return thread

    def list_threads(self, actor_id: object, limit: int = 50, include_archived: bool = False) -> list[dict]:
        me = self._me(actor_id)
        limit = min(max(limit, 1), 200)

        query = (
            select(Thread)
            .options(selectinload(Thread.a), selectinload(Thread.b))
            .where(or_(Thread.a_id == me, Thread.b_id == me))
            .order_by(Thread.last_message_at.desc().nulls_last(), Thread.id)
            .limit(limit)
        )
        if not include_archived:
            query = query.where(Thread.archived_at.is_(None))
        threads = self.db.execute(query).scalars().all()
        if not threads:
            return []

        unread = dict(self.db.execute(
            select(Message.thread_id, func.count(Message.id))
            .outerjoin(ThreadRead, and_(ThreadRead.thread_id == Message.thread_id, ThreadRead.user_id == me))
            .where(
                Message.thread_id.in_([t.id for t in threads]),
                Message.author_id != me,
                or_(ThreadRead.last_read_at.is_(None), Message.created_at > ThreadRead.last_read_at),
            )
            .group_by(Message.thread_id)
        ).all())

        result = []
        for thread in threads:
            peer = thread.peer_of(me)
            count = unread.get(thread.id, 0)
            result.append({
                "id": thread.id,
                "title": thread.title,
                "peer_id": peer.id,
                "peer_name": peer.name,
                "peer_role": peer.role,
                "last_message_at": thread.last_message_at,
                "last_message_text": thread.last_message_text,
                "archived_at": thread.archived_at,
                "unread_count": count,
                "has_unread": count > 0,
            })
        return result

    def list_messages(self, actor_id: object, thread_id: object) -> list[Message]:
        thread = self.get_thread(actor_id, thread_id)
        return self.db.execute(
            select(Message)
            .options(selectinload(Message.author))
            .where(Message.thread_id == thread.id)
            .order_by(Message.created_at)
        ).scalars().all()

    def send_message(self, actor_id: object, thread_id: object, text: str) -> Message:
        thread = self.get_thread(actor_id, thread_id)
        text = (text or "").strip()
        if not text:
            raise ValidationFailed("Message text is required")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise ValidationFailed(f"Message is longer than {MAX_MESSAGE_LENGTH} characters")

        now = utcnow()
        message = Message(thread_id=thread.id, author_id=self._me(actor_id), text=text, created_at=now)
        with atomic(self.db, "Message send"):
            self.db.add(message)
            thread.last_message_at = now
            thread.last_message_text = text[:PREVIEW_LENGTH]
            thread.archived_at = None
        return message

    def mark_read(self, actor_id: object, thread_id: object) -> ThreadRead:
        thread = self.get_thread(actor_id, thread_id)
        me = self._me(actor_id)
        mark = self.db.execute(
            select(ThreadRead).where(ThreadRead.thread_id == thread.id, ThreadRead.user_id == me)
        ).scalar_one_or_none()
        with atomic(self.db, "Read mark"):
            if mark is None:
                mark = ThreadRead(thread_id=thread.id, user_id=me)
                self.db.add(mark)
            mark.last_read_at = utcnow()
        return mark

    def read_state(self, actor_id: object, thread_id: object) -> dict:
        thread = self.get_thread(actor_id, thread_id)
        me = self._me(actor_id)
        marks = dict(self.db.execute(
            select(ThreadRead.user_id, ThreadRead.last_read_at).where(ThreadRead.thread_id == thread.id)
        ).all())
        peer_id = thread.b_id if thread.a_id == me else thread.a_id
        return {"my": marks.get(me), "peer": marks.get(peer_id), "last_message_at": thread.last_message_at}

    def archive(self, actor_id: object, thread_id: object, archived: bool = True) -> Thread:
        thread = self.get_thread(actor_id, thread_id)
        with atomic(self.db, "Thread archive"):
            thread.archived_at = utcnow() if archived else None
        return thread

    def purge(self, actor_id: object, thread_id: object) -> None:
        """Delete a thread with all of its messages and read marks."""
        thread = self.get_thread(actor_id, thread_id)
        with atomic(self.db, "Thread purge"):
            self.db.execute(delete(ThreadRead).where(ThreadRead.thread_id == thread.id))
            self.db.delete(thread)
        logger.info(f"Chat thread {thread_id} purged by {actor_id}")
