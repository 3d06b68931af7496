import logging
from typing import Annotated, List

from fastapi import APIRouter, Depends, status

import AuthAndUser as auth
from domain.comments import Comment, CommentCreate, CommentNode
from domain.user import UserInDB
from errors import NotFoundError, ValidationError
from services.comment_tree import MAX_RENDER_DEPTH, build_comment_forest
from storage import Storage, get_storage

logger = logging.getLogger('uvicorn.error')

router = APIRouter(prefix="/api/comments", tags=["comments"])


@router.get("/post/{post_id}", response_model=List[CommentNode])
async def get_comments_for_post(post_id: str, storage: Storage = Depends(get_storage)):
    """All comments of a post as a forest; every node carries its `replies`."""
    comments = await storage.list_comments(post_id)
    return build_comment_forest(comments).to_nodes(max_depth=MAX_RENDER_DEPTH)


@router.post("", response_model=Comment, status_code=status.HTTP_201_CREATED)
async def create_comment(comment_in: CommentCreate, storage: Storage = Depends(get_storage)):
    post = await storage.get_post(comment_in.post_id)
    if post is None:
        logger.warning(f"Attempt to comment on non-existent post {comment_in.post_id}")
        raise NotFoundError("Post not found")

    if comment_in.parent_id is not None:
        parent = await storage.get_comment(comment_in.parent_id)
        if parent is None or parent.post_id != comment_in.post_id:
            logger.warning(
                f"Rejected reply to comment {comment_in.parent_id}, which is not a comment on post {comment_in.post_id}"
            )
            raise ValidationError.for_field("parentId", "Parent comment does not belong to this post")

    comment = await storage.create_comment(comment_in.model_dump())
    logger.info(f"'{comment.name}' commented '{comment.id}' on post '{comment.post_id}'")
    return comment


@router.delete("/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    comment_id: str,
    current_user: Annotated[UserInDB, Depends(auth.require_admin)],
    storage: Storage = Depends(get_storage),
):
    if not await storage.delete_comment(comment_id):
        raise NotFoundError("Comment not found")
    logger.info(f"User '{current_user.username}' deleted comment {comment_id}")
