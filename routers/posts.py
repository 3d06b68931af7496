# In routers/posts.py

import logging
from fastapi import APIRouter, Depends, status
from typing import List, Annotated, Optional
import datetime
import uuid
import re # Import the 're' module for regular expressions

import AuthAndUser as auth
from domain.content import Post, PostFields, PostUpdate
from domain.user import UserInDB
from errors import NotFoundError, ValidationError
from storage import Storage, get_storage

logger = logging.getLogger('uvicorn.error')

# --- Constants ---
MAX_SLUG_LENGTH = 200 # Define a max length for generated slugs

router = APIRouter(
    prefix="/api/posts",
    tags=["posts"]
)


def as_utc(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """Naive datetimes from the editor are taken to be UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=datetime.timezone.utc)


def generate_post_slug(title: str) -> str:
    """
    Generates a URL-friendly slug from a title.
    """
    if not title or not title.strip():
        # Fallback for empty or whitespace-only titles
        return f"untitled-post-{uuid.uuid4().hex[:12]}"

    # Convert to lowercase and strip leading/trailing whitespace
    slug = title.lower().strip()

    # Drop everything that is not a word character, whitespace or hyphen
    slug = re.sub(r'[^\w\s-]', '', slug)

    # Replace whitespace, underscores and sequences of hyphens with a single hyphen
    slug = re.sub(r'[-\s_]+', '-', slug)

    # Remove leading/trailing hyphens that might have formed
    slug = slug.strip('-')

    # If slug becomes empty after processing (e.g., title was "!!! ???"), generate a unique one
    if not slug:
        return f"untitled-post-{uuid.uuid4().hex[:12]}"

    # Truncate to a maximum length to avoid overly long slugs
    if len(slug) > MAX_SLUG_LENGTH:
        slug = slug[:MAX_SLUG_LENGTH].rsplit('-', 1)[0] # Truncate and try to cut at a hyphen
        slug = slug.strip('-') # Clean up if truncation left a hyphen

    # Final check if slug became empty after truncation
    if not slug:
        return f"untitled-post-{uuid.uuid4().hex[:12]}"

    return slug


@router.get("", response_model=List[Post])
async def get_all_posts(storage: Storage = Depends(get_storage)):
    return await storage.list_posts()


@router.get("/tag/{tag}", response_model=List[Post])
async def get_posts_by_tag(tag: str, storage: Storage = Depends(get_storage)):
    return await storage.list_posts(tag=tag)


@router.get("/{slug}", response_model=Post)
async def get_post_by_slug(slug: str, storage: Storage = Depends(get_storage)):
    post = await storage.get_post_by_slug(slug)
    if post is None:
        logger.warning(f"Post with slug {slug} not found.")
        raise NotFoundError("Post not found")
    return post


@router.post("", response_model=Post, status_code=status.HTTP_201_CREATED)
async def create_post(
    post_in: PostFields,
    current_user: Annotated[UserInDB, Depends(auth.require_admin)],
    storage: Storage = Depends(get_storage),
):
    fields = post_in.model_dump()
    fields["slug"] = fields["slug"] or generate_post_slug(post_in.title)
    if fields["slug"] != generate_post_slug(fields["slug"]):
        raise ValidationError.for_field("slug", "Slug may only contain lowercase letters, digits and hyphens")
    fields["published_at"] = as_utc(post_in.published_at) or datetime.datetime.now(datetime.timezone.utc)
    fields["author_id"] = current_user.id

    post = await storage.create_post(fields)
    logger.info(f"User '{current_user.username}' created post '{post.slug}' ({post.id})")
    return post


@router.put("/{post_id}", response_model=Post)
async def update_post(
    post_id: str,
    post_in: PostUpdate,
    current_user: Annotated[UserInDB, Depends(auth.require_admin)],
    storage: Storage = Depends(get_storage),
):
    changes = post_in.model_dump(exclude_unset=True)
    if changes.get("slug") and changes["slug"] != generate_post_slug(changes["slug"]):
        raise ValidationError.for_field("slug", "Slug may only contain lowercase letters, digits and hyphens")
    for required in ("title", "slug", "content", "published_at", "tags"):
        if required in changes and changes[required] is None:
            raise ValidationError.for_field(required, f"{required} cannot be cleared")
    if "published_at" in changes:
        changes["published_at"] = as_utc(changes["published_at"])

    post = await storage.update_post(post_id, changes)
    if post is None:
        raise NotFoundError("Post not found")
    logger.info(f"User '{current_user.username}' updated post {post_id}")
    return post


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post(
    post_id: str,
    current_user: Annotated[UserInDB, Depends(auth.require_admin)],
    storage: Storage = Depends(get_storage),
):
    if not await storage.delete_post(post_id):
        raise NotFoundError("Post not found")
    logger.info(f"User '{current_user.username}' deleted post {post_id} and its comments")
