from typing import List, Optional
import datetime

from pydantic import Field

from domain.base import ApiModel


class CommentCreate(ApiModel):
    post_id: str = Field(min_length=1)
    parent_id: Optional[str] = None  # For threaded comments
    name: str = Field(min_length=1, max_length=120)
    content: str = Field(min_length=1, max_length=10000)


class Comment(ApiModel):
    id: str
    post_id: str
    parent_id: Optional[str] = None
    name: str
    content: str
    created_at: datetime.datetime


class CommentNode(Comment):
    replies: List["CommentNode"] = Field(default_factory=list)


CommentNode.model_rebuild()
