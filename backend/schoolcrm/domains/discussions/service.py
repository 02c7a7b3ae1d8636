"""Staff discussion board: posts, comments, likes and @mention lookup."""
import logging
from typing import Any
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from schoolcrm.core.database import atomic
from schoolcrm.core.exceptions import Forbidden, NotFound, ValidationFailed
from schoolcrm.core.ids import as_uuid
from schoolcrm.domains.access.permissions import PermissionEvaluator
from schoolcrm.domains.discussions.models import DiscussionComment, DiscussionPost, DiscussionReaction
from schoolcrm.domains.users.models import User

logger = logging.getLogger(__name__)

MAX_POST_LENGTH = 8000
MAX_COMMENT_LENGTH = 4000
RECENT_POSTS = 30
MENTION_LIMIT = 8


def clean_text(value: str | None, field: str, limit: int) -> str:
    text = (value or "").replace("\r\n", "\n").strip()
    if not text:
        raise ValidationFailed(f"{field} is required")
    if len(text) > limit:
        raise ValidationFailed(f"{field} is longer than {limit} characters")
    return text


class DiscussionsService:
    """Pinning and moderating belong to full-access roles; authors manage their own posts."""

    def __init__(self, db: Session, permissions: PermissionEvaluator):
        self.db = db
        self.permissions = permissions

    def _me(self, actor_id: object) -> UUID:
        uid = as_uuid(actor_id)
        if uid is None:
            raise NotFound("User not found")
        return uid

    def _moderates(self, actor_id: object) -> bool:
        return self.permissions.has_full_access(actor_id)

    def get_post(self, post_id: object) -> DiscussionPost:
        pid = as_uuid(post_id)
        post = self.db.get(DiscussionPost, pid) if pid is not None else None
        if post is None:
            raise NotFound("Post not found")
        return post

    def create_post(self, actor_id: object, text: str, pinned: bool = False) -> DiscussionPost:
        """A pin request from a role that may not pin is dropped, not refused."""
        post = DiscussionPost(
            author_id=self._me(actor_id),
            text=clean_text(text, "Post text", MAX_POST_LENGTH),
            pinned=pinned and self._moderates(actor_id),
        )
        with atomic(self.db, "Post creation"):
            self.db.add(post)
        logger.info(f"Discussion post {post.id} created by {actor_id}")
        return post

    def update_post(self, actor_id: object, post_id: object, text: str, pinned: bool = False) -> DiscussionPost:
        post = self.get_post(post_id)
        moderator = self._moderates(actor_id)
        if post.author_id != self._me(actor_id) and not moderator:
            raise Forbidden("Not allowed to edit this post")

        text = clean_text(text, "Post text", MAX_POST_LENGTH)
        with atomic(self.db, "Post update"):
            post.text = text
            if moderator:
                post.pinned = pinned
        self.db.refresh(post)
        return post

    def delete_post(self, actor_id: object, post_id: object) -> None:
        post = self.get_post(post_id)
        if post.author_id != self._me(actor_id) and not self._moderates(actor_id):
            raise Forbidden("Not allowed to delete this post")
        with atomic(self.db, "Post deletion"):
            self.db.delete(post)
        logger.info(f"Discussion post {post_id} deleted by {actor_id}")

    def list_posts(self, limit: int = RECENT_POSTS) -> list[dict[str, Any]]:
        """Every pinned post, then the most recent unpinned ones, newest first."""
        comments = (
            select(DiscussionComment.post_id, func.count(DiscussionComment.id).label("n"))
            .group_by(DiscussionComment.post_id)
            .subquery()
        )
        likes = (
            select(DiscussionReaction.post_id, func.count(DiscussionReaction.id).label("n"))
            .group_by(DiscussionReaction.post_id)
            .subquery()
        )
        base = (
            select(DiscussionPost, User.name, func.coalesce(comments.c.n, 0), func.coalesce(likes.c.n, 0))
            .join(User, User.id == DiscussionPost.author_id)
            .outerjoin(comments, comments.c.post_id == DiscussionPost.id)
            .outerjoin(likes, likes.c.post_id == DiscussionPost.id)
            .order_by(DiscussionPost.created_at.desc())
        )
        pinned = self.db.execute(base.where(DiscussionPost.pinned.is_(True))).all()
        recent = self.db.execute(base.where(DiscussionPost.pinned.is_(False)).limit(limit)).all()

        return [
            {
                "id": post.id,
                "author_id": post.author_id,
                "author_name": author_name,
                "text": post.text,
                "pinned": post.pinned,
                "created_at": post.created_at,
                "comment_count": comment_count,
                "like_count": like_count,
            }
            for post, author_name, comment_count, like_count in [*pinned, *recent]
        ]

    def get_detail(self, actor_id: object, post_id: object) -> dict[str, Any]:
        post = self.get_post(post_id)
        me = self._me(actor_id)
        comments = self.db.execute(
            select(DiscussionComment, User.name)
            .join(User, User.id == DiscussionComment.author_id)
            .where(DiscussionComment.post_id == post.id)
            .order_by(DiscussionComment.created_at.desc())
        ).all()
        like_count, liked_by_me = self._likes(post.id, me)
        author = self.db.get(User, post.author_id)
        return {
            "post": post,
            "author_name": author.name if author else None,
            "comments": [
                {
                    "id": c.id,
                    "post_id": c.post_id,
                    "author_id": c.author_id,
                    "author_name": name,
                    "text": c.text,
                    "created_at": c.created_at,
                }
                for c, name in comments
            ],
            "like_count": like_count,
            "liked_by_me": liked_by_me,
        }

    def add_comment(self, actor_id: object, post_id: object, text: str) -> DiscussionComment:
        post = self.get_post(post_id)
        comment = DiscussionComment(
            post_id=post.id,
            author_id=self._me(actor_id),
            text=clean_text(text, "Comment", MAX_COMMENT_LENGTH),
        )
        with atomic(self.db, "Comment creation"):
            self.db.add(comment)
        return comment

    def delete_comment(self, actor_id: object, comment_id: object) -> None:
        cid = as_uuid(comment_id)
        comment = self.db.get(DiscussionComment, cid) if cid is not None else None
        if comment is None:
            raise NotFound("Comment not found")
        if comment.author_id != self._me(actor_id) and not self._moderates(actor_id):
            raise Forbidden("Not allowed to delete this comment")
        with atomic(self.db, "Comment deletion"):
            self.db.delete(comment)

    def _likes(self, post_id: UUID, user_id: UUID) -> tuple[int, bool]:
        count = self.db.execute(
            select(func.count()).select_from(DiscussionReaction).where(DiscussionReaction.post_id == post_id)
        ).scalar_one()
        mine = self.db.execute(
            select(DiscussionReaction.id).where(
                DiscussionReaction.post_id == post_id, DiscussionReaction.user_id == user_id
            )
        ).first()
        return count, mine is not None

    def toggle_like(self, actor_id: object, post_id: object) -> tuple[bool, int]:
        """Like the post, or take the like back; returns the new state and count."""
        post = self.get_post(post_id)
        me = self._me(actor_id)
        existing = self.db.execute(
            select(DiscussionReaction).where(DiscussionReaction.post_id == post.id, DiscussionReaction.user_id == me)
        ).scalar_one_or_none()
        with atomic(self.db, "Like toggle"):
            if existing is not None:
                self.db.delete(existing)
            else:
                self.db.add(DiscussionReaction(post_id=post.id, user_id=me))
        count, liked = self._likes(post.id, me)
        return liked, count

    def list_likers(self, post_id: object) -> list[dict[str, Any]]:
        post = self.get_post(post_id)
        rows = self.db.execute(
            select(User.id, User.name)
            .join(DiscussionReaction, DiscussionReaction.user_id == User.id)
            .where(DiscussionReaction.post_id == post.id)
            .order_by(DiscussionReaction.created_at)
        ).all()
        return [{"user_id": uid, "name": name} for uid, name in rows]

    def mention_candidates(self, query: str) -> list[dict[str, str]]:
        """Active users whose name or username starts with ``query``."""
        query = (query or "").strip()
        if not query:
            return []
        rows = self.db.execute(
            select(User.username, User.name)
            .where(
                User.is_archived.is_(False),
                or_(User.name.istartswith(query, autoescape=True), User.username.istartswith(query, autoescape=True)),
            )
            .order_by(User.name)
            .limit(MENTION_LIMIT)
        ).all()
        return [{"username": username, "name": name or ""} for username, name in rows if username]
