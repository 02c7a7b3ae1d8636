import logging
from typing import Any
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session, selectinload

from schoolcrm.core.database import atomic
from schoolcrm.core.exceptions import Conflict, Forbidden, InvalidState, NotFound, ValidationFailed
from schoolcrm.core.ids import as_uuid
from schoolcrm.domains.access.permissions import PermissionEvaluator
from schoolcrm.domains.requests.models import (
    OPEN_STATUSES,
    Request,
    RequestMessage,
    RequestStatus,
    RequestTarget,
)
from schoolcrm.domains.requests.schemas import CloseOutcome, RequestCreate
from schoolcrm.domains.tasks.models import utcnow
from schoolcrm.domains.users.models import User

logger = logging.getLogger(__name__)


class RequestsService:
    """Service requests: authors open them, the target role closes them.

    ``new`` and ``in_progress`` are open; ``done`` and ``rejected`` are
    closed. Only the author may reopen, and only a ``done`` request.
    """

    def __init__(self, db: Session, permissions: PermissionEvaluator):
        self.db = db
        self.permissions = permissions

    def _me(self, actor_id: object) -> UUID:
        uid = as_uuid(actor_id)
        if uid is None:
            raise NotFound("User not found")
        return uid

    def _processes(self, actor_id: object, target: str) -> bool:
        return self.permissions.has_any_role(actor_id, [target])

    def _load(self, request_id: object) -> Request:
        rid = as_uuid(request_id)
        request = self.db.get(Request, rid) if rid is not None else None
        if request is None:
            raise NotFound("Request not found")
        return request

    def get_request(self, actor_id: object, request_id: object) -> Request:
        """Visible to its author, to the target role and to full-access roles."""
        me = self._me(actor_id)
        request = self._load(request_id)
        if request.author_id == me or self._processes(actor_id, request.target):
            return request
        if not self.permissions.has_full_access(actor_id):
            raise Forbidden("Not allowed to view this request")
        return request

    def create_request(self, actor_id: object, payload: RequestCreate) -> Request:
        me = self._me(actor_id)
        if self.db.get(User, me) is None:
            raise NotFound("User not found")
        if self.permissions.max_power(me) == 0:
            raise Forbidden("Not allowed to create requests")

        title = payload.title.strip()
        if not title:
            raise ValidationFailed("Request title is required")
        body = payload.body.strip()

        now = utcnow()
        request = Request(
            author_id=me,
            target=payload.target.value,
            title=title,
            body=body,
            status=RequestStatus.NEW.value,
            created_at=now,
            last_message_at=now,
        )
        if body:
            request.messages = [RequestMessage(author_id=me, body=body, created_at=now)]
        with atomic(self.db, "Request creation"):
            self.db.add(request)

        logger.info(f"Request {request.id} for {request.target} opened by {me}")
        return request

    def list_requests(self, actor_id: object, status: str | None = None, mine_only: bool = False) -> list[dict[str, Any]]:
        """Own requests; processors also get the ones addressed to them unless ``mine_only``."""
        me = self._me(actor_id)
        targets = [t.value for t in RequestTarget if self._processes(actor_id, t.value)]

        query = (
            select(Request, User.name)
            .join(User, User.id == Request.author_id)
            .order_by(Request.last_message_at.desc().nulls_last(), Request.created_at.desc())
        )
        if targets and not mine_only:
            query = query.where(or_(Request.target.in_(targets), Request.author_id == me))
        else:
            query = query.where(Request.author_id == me)
        if status:
            query = query.where(Request.status == status)

        return [
            {
                "id": request.id,
                "title": request.title,
                "status": request.status,
                "target": request.target,
                "author_name": author_name,
                "created_at": request.created_at,
                "last_message_at": request.last_message_at,
            }
            for request, author_name in self.db.execute(query).all()
        ]

    def get_detail(self, actor_id: object, request_id: object) -> Request:
        request = self.get_request(actor_id, request_id)
        return self.db.execute(
            select(Request).options(selectinload(Request.messages)).where(Request.id == request.id)
        ).scalar_one()

    def reply(self, actor_id: object, request_id: object, body: str) -> RequestMessage:
        request = self.get_request(actor_id, request_id)
        body = (body or "").strip()
        if not body:
            raise ValidationFailed("Reply text is required")

        now = utcnow()
        message = RequestMessage(request_id=request.id, author_id=self._me(actor_id), body=body, created_at=now)
        with atomic(self.db, "Request reply"):
            self.db.add(message)
            request.last_message_at = now
        return message

    def _move(self, request: Request, expected: tuple[str, ...], **values: Any) -> None:
        with atomic(self.db, "Request status change"):
            result = self.db.execute(
                update(Request)
                .where(Request.id == request.id, Request.status.in_(expected))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise Conflict()
        self.db.refresh(request)

    def close(self, actor_id: object, request_id: object, outcome: CloseOutcome, reason: str | None = None) -> Request:
        request = self._load(request_id)
        if not self._processes(actor_id, request.target):
            raise Forbidden("Only the addressed role may close this request")
        if request.status not in OPEN_STATUSES:
            raise InvalidState(f"Request is already '{request.status}'")

        values: dict[str, Any] = {
            "status": outcome.value,
            "closed_at": utcnow(),
            "processed_by_id": self._me(actor_id),
        }
        if outcome is CloseOutcome.REJECTED:
            reason = (reason or "").strip()
            if not reason:
                raise ValidationFailed("A reason is required to reject a request")
            values["rejected_reason"] = reason

        self._move(request, OPEN_STATUSES, **values)
        logger.info(f"Request {request.id} closed as {outcome.value} by {actor_id}")
        return request

    def reopen(self, actor_id: object, request_id: object) -> Request:
        request = self._load(request_id)
        if request.author_id != self._me(actor_id):
            raise Forbidden("Only the author may reopen a request")
        if request.status != RequestStatus.DONE.value:
            raise InvalidState(f"Request is '{request.status}', expected 'done'")

        self._move(request, (RequestStatus.DONE.value,), status=RequestStatus.IN_PROGRESS.value, closed_at=None)
        logger.info(f"Request {request.id} reopened by its author")
        return request

    def delete_request(self, actor_id: object, request_id: object) -> None:
        request = self._load(request_id)
        if request.author_id != self._me(actor_id) and not self.permissions.has_any_role(
            actor_id, [t.value for t in RequestTarget]
        ):
            raise Forbidden("Not allowed to delete this request")
        with atomic(self.db, "Request deletion"):
            self.db.delete(request)
        logger.info(f"Request {request_id} deleted by {actor_id}")
