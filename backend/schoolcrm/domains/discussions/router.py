from uuid import UUID

from fastapi import APIRouter, Query, status

from schoolcrm.core.dependencies import CurrentUser, DbSession
from schoolcrm.domains.access.dependencies import Permissions
from schoolcrm.domains.discussions.schemas import (
    CommentCreate,
    CommentResponse,
    Liker,
    MentionCandidate,
    PostDetail,
    PostResponse,
    PostSummary,
    PostWrite,
    ReactionResponse,
)
from schoolcrm.domains.discussions.service import DiscussionsService

router = APIRouter()


@router.get("", response_model=list[PostSummary])
def list_posts(db: DbSession, current_user: CurrentUser, permissions: Permissions, limit: int = Query(30, ge=1, le=100)):
    service = DiscussionsService(db, permissions)
    return service.list_posts(limit=limit)


@router.post("", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
def create_post(request: PostWrite, db: DbSession, current_user: CurrentUser, permissions: Permissions):
    service = DiscussionsService(db, permissions)
    return service.create_post(current_user.sub, request.text, pinned=request.pinned)


@router.get("/mentions", response_model=list[MentionCandidate])
def search_mentions(db: DbSession, current_user: CurrentUser, permissions: Permissions, q: str = ""):
    """Autocomplete for ``@username`` tags."""
    service = DiscussionsService(db, permissions)
    return service.mention_candidates(q)


@router.get("/{post_id}", response_model=PostDetail)
def get_post(post_id: UUID, db: DbSession, current_user: CurrentUser, permissions: Permissions):
    service = DiscussionsService(db, permissions)
    return service.get_detail(current_user.sub, post_id)


@router.put("/{post_id}", response_model=PostResponse)
def update_post(post_id: UUID, request: PostWrite, db: DbSession, current_user: CurrentUser, permissions: Permissions):
    service = DiscussionsService(db, permissions)
    return service.update_post(current_user.sub, post_id, request.text, pinned=request.pinned)


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_post(post_id: UUID, db: DbSession, current_user: CurrentUser, permissions: Permissions):
    service = DiscussionsService(db, permissions)
    service.delete_post(current_user.sub, post_id)


@router.post("/{post_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
def add_comment(
    post_id: UUID, request: CommentCreate, db: DbSession, current_user: CurrentUser, permissions: Permissions
):
    service = DiscussionsService(db, permissions)
    comment = service.add_comment(current_user.sub, post_id, request.text)
    return CommentResponse(
        id=comment.id,
        post_id=comment.post_id,
        author_id=comment.author_id,
        author_name=current_user.name,
        text=comment.text,
        created_at=comment.created_at,
    )


@router.delete("/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_comment(comment_id: UUID, db: DbSession, current_user: CurrentUser, permissions: Permissions):
    service = DiscussionsService(db, permissions)
    service.delete_comment(current_user.sub, comment_id)


@router.post("/{post_id}/like", response_model=ReactionResponse)
def toggle_like(post_id: UUID, db: DbSession, current_user: CurrentUser, permissions: Permissions):
    service = DiscussionsService(db, permissions)
    liked, count = service.toggle_like(current_user.sub, post_id)
    return ReactionResponse(liked=liked, like_count=count)


@router.get("/{post_id}/likes", response_model=list[Liker])
def list_likers(post_id: UUID, db: DbSession, current_user: CurrentUser, permissions: Permissions):
    service = DiscussionsService(db, permissions)
    return service.list_likers(post_id)
