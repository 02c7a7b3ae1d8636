from uuid import UUID

from fastapi import APIRouter, Depends, File, Query, UploadFile, status

from schoolcrm.core.dependencies import CurrentUser, DbSession, ViewCacheDep
from schoolcrm.core.security import TokenPayload
from schoolcrm.domains.access.dependencies import Permissions, Visibility, require_permission
from schoolcrm.domains.access.permissions import Action
from schoolcrm.domains.files.dependencies import Storage, read_uploads
from schoolcrm.domains.tasks.schemas import (
    PurgeResponse,
    TaskAssigneeResponse,
    TaskCreate,
    TaskResponse,
    TaskSummary,
    TaskUpdate,
)
from schoolcrm.domains.tasks.service import TasksService

router = APIRouter()


def _service(db, permissions, visibility, storage=None, cache=None) -> TasksService:
    return TasksService(db, permissions, visibility, storage=storage, cache=cache)


@router.get("", response_model=list[TaskSummary])
def list_inbox(
    db: DbSession,
    permissions: Permissions,
    visibility: Visibility,
    cache: ViewCacheDep,
    tab: str = Query("assigned", pattern="^(assigned|created)$"),
    include_done: bool = False,
    current_user: TokenPayload = Depends(require_permission(Action.TASK_VIEW)),
):
    service = _service(db, permissions, visibility, cache=cache)
    return service.list_inbox(current_user.sub, tab=tab, include_done=include_done)


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    payload: TaskCreate,
    db: DbSession,
    current_user: CurrentUser,
    permissions: Permissions,
    visibility: Visibility,
    cache: ViewCacheDep,
):
    service = _service(db, permissions, visibility, cache=cache)
    return service.create_task(current_user.sub, payload)


@router.post("/purge-hidden", response_model=PurgeResponse)
def purge_hidden_tasks(
    db: DbSession,
    current_user: CurrentUser,
    permissions: Permissions,
    visibility: Visibility,
    cache: ViewCacheDep,
):
    service = _service(db, permissions, visibility, cache=cache)
    return PurgeResponse(purged=service.purge_hidden(current_user.sub))


@router.get("/{task_id}", response_model=TaskResponse)
def get_task(task_id: UUID, db: DbSession, current_user: CurrentUser, permissions: Permissions, visibility: Visibility):
    service = _service(db, permissions, visibility)
    return service.get_task(current_user.sub, task_id)


@router.patch("/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: UUID,
    payload: TaskUpdate,
    db: DbSession,
    current_user: CurrentUser,
    permissions: Permissions,
    visibility: Visibility,
    cache: ViewCacheDep,
):
    service = _service(db, permissions, visibility, cache=cache)
    return service.update_task(current_user.sub, task_id, payload)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
    permissions: Permissions,
    visibility: Visibility,
    cache: ViewCacheDep,
):
    service = _service(db, permissions, visibility, cache=cache)
    service.delete_task(current_user.sub, task_id)


@router.post("/{task_id}/attachments", response_model=TaskResponse)
async def upload_task_attachments(
    task_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
    permissions: Permissions,
    visibility: Visibility,
    storage: Storage,
    files: list[UploadFile] = File(..., description="Files attached to the task itself"),
):
    uploads = await read_uploads(files)
    service = _service(db, permissions, visibility, storage=storage)
    return service.add_attachments(current_user.sub, task_id, uploads)


@router.post("/{task_id}/done", response_model=TaskAssigneeResponse)
def mark_done(
    task_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
    permissions: Permissions,
    visibility: Visibility,
    cache: ViewCacheDep,
):
    service = _service(db, permissions, visibility, cache=cache)
    return service.mark_done(current_user.sub, task_id)


@router.post("/{task_id}/reopen", response_model=TaskAssigneeResponse)
def reopen(
    task_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
    permissions: Permissions,
    visibility: Visibility,
    cache: ViewCacheDep,
):
    service = _service(db, permissions, visibility, cache=cache)
    return service.reopen(current_user.sub, task_id)
