from uuid import UUID

from fastapi import APIRouter, Query, status

from schoolcrm.core.dependencies import CurrentUser, DbSession
from schoolcrm.domains.access.dependencies import Permissions
from schoolcrm.domains.requests.models import RequestStatus
from schoolcrm.domains.requests.schemas import (
    RequestClose,
    RequestCreate,
    RequestDetail,
    RequestMessageResponse,
    RequestReply,
    RequestResponse,
    RequestSummary,
)
from schoolcrm.domains.requests.service import RequestsService

router = APIRouter()


@router.get("", response_model=list[RequestSummary])
def list_requests(
    db: DbSession,
    current_user: CurrentUser,
    permissions: Permissions,
    request_status: RequestStatus | None = Query(None, alias="status"),
    mine_only: bool = False,
):
    service = RequestsService(db, permissions)
    return service.list_requests(
        current_user.sub, status=request_status.value if request_status else None, mine_only=mine_only
    )


@router.post("", response_model=RequestResponse, status_code=status.HTTP_201_CREATED)
def create_request(request: RequestCreate, db: DbSession, current_user: CurrentUser, permissions: Permissions):
    service = RequestsService(db, permissions)
    return service.create_request(current_user.sub, request)


@router.get("/{request_id}", response_model=RequestDetail)
def get_request(request_id: UUID, db: DbSession, current_user: CurrentUser, permissions: Permissions):
    service = RequestsService(db, permissions)
    return service.get_detail(current_user.sub, request_id)


@router.post("/{request_id}/messages", response_model=RequestMessageResponse, status_code=status.HTTP_201_CREATED)
def reply_to_request(
    request_id: UUID, request: RequestReply, db: DbSession, current_user: CurrentUser, permissions: Permissions
):
    service = RequestsService(db, permissions)
    return service.reply(current_user.sub, request_id, request.body)


@router.post("/{request_id}/close", response_model=RequestResponse)
def close_request(
    request_id: UUID, request: RequestClose, db: DbSession, current_user: CurrentUser, permissions: Permissions
):
    service = RequestsService(db, permissions)
    return service.close(current_user.sub, request_id, request.outcome, request.reason)


@router.post("/{request_id}/reopen", response_model=RequestResponse)
def reopen_request(request_id: UUID, db: DbSession, current_user: CurrentUser, permissions: Permissions):
    service = RequestsService(db, permissions)
    return service.reopen(current_user.sub, request_id)


@router.delete("/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_request(request_id: UUID, db: DbSession, current_user: CurrentUser, permissions: Permissions):
    service = RequestsService(db, permissions)
    service.delete_request(current_user.sub, request_id)
