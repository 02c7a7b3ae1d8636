from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile

from schoolcrm.core.dependencies import CurrentUser, DbSession, ViewCacheDep
from schoolcrm.core.security import TokenPayload
from schoolcrm.domains.access.dependencies import Permissions, require_permission
from schoolcrm.domains.access.permissions import Action
from schoolcrm.domains.files.dependencies import Storage, read_uploads
from schoolcrm.domains.tasks.review_service import ReviewService
from schoolcrm.domains.tasks.schemas import (
    BulkReviewRequest,
    PendingReview,
    RejectRequest,
    ReviewCountResponse,
    ReviewDecision,
    ReviewHistoryResponse,
    SubmissionResponse,
    TaskAssigneeResponse,
)


router = APIRouter()


@router.get("", response_model=list[PendingReview])
def list_pending_reviews(
    db: DbSession,
    permissions: Permissions,
    cache: ViewCacheDep,
    current_user: TokenPayload = Depends(require_permission(Action.TASK_REVIEW)),
):
    service = ReviewService(db, permissions, cache=cache)
    return service.list_pending_reviews(current_user.sub)


@router.get("/count", response_model=ReviewCountResponse)
def count_waiting(db: DbSession, current_user: CurrentUser, permissions: Permissions):
    service = ReviewService(db, permissions)
    return ReviewCountResponse(count=service.count_waiting(current_user.sub))


@router.post("/submit", response_model=SubmissionResponse)
async def submit_for_review(
    db: DbSession,
    current_user: CurrentUser,
    permissions: Permissions,
    storage: Storage,
    cache: ViewCacheDep,
    task_assignee_id: UUID = Form(...),
    comment: str | None = Form(None),
    files: list[UploadFile] = File([], description="Work product attached to the submission"),
):
    """
    Submit the caller's work on a task for review.

    Empty files are skipped. The assignment moves from ``in_progress`` to
    ``submitted``; a concurrent change yields 409 with code ``conflict``.
    """
    uploads = await read_uploads(files)
    service = ReviewService(db, permissions, storage=storage, cache=cache)
    return service.submit_for_review(current_user.sub, task_assignee_id, uploads, comment)


@router.get("/{task_assignee_id}", response_model=ReviewHistoryResponse)
def get_review_history(task_assignee_id: UUID, db: DbSession, current_user: CurrentUser, permissions: Permissions):
    service = ReviewService(db, permissions)
    assignee, submissions = service.get_history(current_user.sub, task_assignee_id)
    return ReviewHistoryResponse(
        assignee=TaskAssigneeResponse.model_validate(assignee),
        submissions=[SubmissionResponse.model_validate(s) for s in submissions],
    )


@router.post("/{task_assignee_id}/approve", response_model=TaskAssigneeResponse)
def approve_submission(
    task_assignee_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
    permissions: Permissions,
    cache: ViewCacheDep,
    decision: ReviewDecision | None = None,
):
    service = ReviewService(db, permissions, cache=cache)
    return service.approve_submission(current_user.sub, task_assignee_id, decision.comment if decision else None)


@router.post("/{task_assignee_id}/reject", response_model=SubmissionResponse)
def reject_submission(
    task_assignee_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
    permissions: Permissions,
    cache: ViewCacheDep,
    request: RejectRequest | None = None,
):
    service = ReviewService(db, permissions, cache=cache)
    return service.reject_submission(current_user.sub, task_assignee_id, request.reason if request else None)


@router.post("/tasks/{task_id}/approve-all", response_model=ReviewCountResponse)
def approve_all_in_task(
    task_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
    permissions: Permissions,
    cache: ViewCacheDep,
):
    service = ReviewService(db, permissions, cache=cache)
    return ReviewCountResponse(count=service.approve_all_in_task(current_user.sub, task_id))


@router.post("/bulk", response_model=ReviewCountResponse)
def bulk_review(
    request: BulkReviewRequest,
    db: DbSession,
    current_user: CurrentUser,
    permissions: Permissions,
    cache: ViewCacheDep,
):
    service = ReviewService(db, permissions, cache=cache)
    count = service.bulk_review(current_user.sub, request.ids, request.operation, request.reason)
    return ReviewCountResponse(count=count)
