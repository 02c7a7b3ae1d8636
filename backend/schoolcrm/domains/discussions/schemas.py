from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class PostWrite(BaseModel):
    text: str = Field(min_length=1, max_length=8000)
    pinned: bool = False


class CommentCreate(BaseModel):
    text: str = Field(min_length=1, max_length=4000)


class PostSummary(BaseModel):
    id: UUID
    author_id: UUID
    author_name: str | None
    text: str
    pinned: bool
    created_at: datetime
    comment_count: int
    like_count: int


class PostResponse(BaseModel):
    id: UUID
    author_id: UUID
    text: str
    pinned: bool
    created_at: datetime
    updated_at: datetime | None

    class Config:
        from_attributes = True


class CommentResponse(BaseModel):
    id: UUID
    post_id: UUID
    author_id: UUID
    author_name: str | None = None
    text: str
    created_at: datetime


class PostDetail(BaseModel):
    post: PostResponse
    author_name: str | None
    comments: list[CommentResponse]
    like_count: int
    liked_by_me: bool


class ReactionResponse(BaseModel):
    liked: bool
    like_count: int


class Liker(BaseModel):
    user_id: UUID
    name: str


class MentionCandidate(BaseModel):
    username: str
    name: str
