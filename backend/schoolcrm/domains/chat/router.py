from uuid import UUID

from fastapi import APIRouter, Query, status

from schoolcrm.core.dependencies import CurrentUser, DbSession
from schoolcrm.domains.chat.schemas import (
    MessageCreate,
    MessageResponse,
    ReadStateResponse,
    ThreadArchive,
    ThreadOpen,
    ThreadResponse,
    ThreadSummary,
)
from schoolcrm.domains.chat.service import ChatService

router = APIRouter()


@router.get("/threads", response_model=list[ThreadSummary])
def list_threads(
    db: DbSession,
    current_user: CurrentUser,
    limit: int = Query(50, ge=1, le=200),
    include_archived: bool = False,
):
    service = ChatService(db)
    return service.list_threads(current_user.sub, limit=limit, include_archived=include_archived)


@router.post("/threads", response_model=ThreadResponse)
def open_thread(request: ThreadOpen, db: DbSession, current_user: CurrentUser):
    service = ChatService(db)
    return service.open_thread(current_user.sub, request.peer_id)


@router.get("/threads/{thread_id}", response_model=ThreadResponse)
def get_thread(thread_id: UUID, db: DbSession, current_user: CurrentUser):
    service = ChatService(db)
    return service.get_thread(current_user.sub, thread_id)


@router.patch("/threads/{thread_id}", response_model=ThreadResponse)
def archive_thread(thread_id: UUID, request: ThreadArchive, db: DbSession, current_user: CurrentUser):
    service = ChatService(db)
    return service.archive(current_user.sub, thread_id, archived=request.archived)


@router.delete("/threads/{thread_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_thread(thread_id: UUID, db: DbSession, current_user: CurrentUser, purge: bool = False):
    """Archive the thread, or delete it for good with ``purge=true``."""
    service = ChatService(db)
    if purge:
        service.purge(current_user.sub, thread_id)
    else:
        service.archive(current_user.sub, thread_id)


@router.get("/threads/{thread_id}/messages", response_model=list[MessageResponse])
def list_messages(thread_id: UUID, db: DbSession, current_user: CurrentUser):
    service = ChatService(db)
    return service.list_messages(current_user.sub, thread_id)


@router.post("/threads/{thread_id}/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
def send_message(thread_id: UUID, request: MessageCreate, db: DbSession, current_user: CurrentUser):
    service = ChatService(db)
    return service.send_message(current_user.sub, thread_id, request.text)


@router.get("/threads/{thread_id}/read", response_model=ReadStateResponse)
def get_read_state(thread_id: UUID, db: DbSession, current_user: CurrentUser):
    service = ChatService(db)
    return service.read_state(current_user.sub, thread_id)


@router.put("/threads/{thread_id}/read", response_model=ReadStateResponse)
def mark_read(thread_id: UUID, db: DbSession, current_user: CurrentUser):
    service = ChatService(db)
    service.mark_read(current_user.sub, thread_id)
    return service.read_state(current_user.sub, thread_id)
