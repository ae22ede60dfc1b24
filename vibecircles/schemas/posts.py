from datetime import datetime
from typing import Annotated, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from .users import UserBrief

Privacy = Literal['public', 'friends', 'private']


class PostIn(BaseModel):
    content: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=5000)]] = None
    privacy: Privacy = 'public'
    group_id: Optional[int] = Field(default=None, ge=1)
    image_url: Optional[str] = Field(default=None, max_length=255)


class PostUpdateIn(BaseModel):
    content: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=5000)]] = None
    privacy: Optional[Privacy] = None


class PostOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    author_id: int
    group_id: Optional[int] = None
    content: Optional[str] = None
    image_url: Optional[str] = None
    privacy: str
    likes_count: int
    comments_count: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    author: Optional[UserBrief] = None
    is_liked: Optional[bool] = None


class CommentIn(BaseModel):
    """Comment on the post route: 1-1000 characters."""
    content: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=1000)]
    parent_id: Optional[int] = Field(default=None, ge=1)


class CommentCreateIn(BaseModel):
    post_id: int = Field(ge=1)
    content: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=500)]
    parent_id: Optional[int] = Field(default=None, ge=1)


class CommentUpdateIn(BaseModel):
    content: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=500)]


class CommentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    post_id: int
    author_id: int
    parent_id: Optional[int] = None
    content: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    author: Optional[UserBrief] = None


class LikeOut(BaseModel):
    liked: bool
    likes_count: int
