import hashlib
import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore import AsyncClient
from google.cloud.firestore_v1 import FieldFilter

from domain.comments import Comment
from domain.content import AboutPage, Message, Post, Project, Subscriber
from domain.user import Role, UserInDB
from errors import ConflictError, DuplicateUsername, StoreUnavailable
from storage import Storage, new_id, utcnow

logger = logging.getLogger('uvicorn.error')

USERS_COLLECTION = "users"
POSTS_COLLECTION = "posts"
PROJECTS_COLLECTION = "projects"
COMMENTS_COLLECTION = "comments"
MESSAGES_COLLECTION = "messages"
SUBSCRIBERS_COLLECTION = "subscribers"
SITE_COLLECTION = "site"
ABOUT_DOCUMENT = "about"


@contextmanager
def firestore_errors(action: str):
    try:
        yield
    except google_exceptions.GoogleAPICallError as e:
        logger.exception(f"Firestore error while {action}: {e}")
        raise StoreUnavailable(f"Firestore error while {action}") from e


def user_document_id(username: str) -> str:
    """Usernames are free text; the document id is a digest so it is always a legal Firestore id."""
    return hashlib.sha256(username.encode("utf-8")).hexdigest()


def is_valid_document_id(doc_id: str) -> bool:
    # Firestore rejects ids with a slash, "." and "..", and reserves __.*__
    if not doc_id or "/" in doc_id or doc_id in (".", ".."):
        return False
    return not (doc_id.startswith("__") and doc_id.endswith("__"))


def _user_data(user: UserInDB) -> Dict[str, Any]:
    data = user.model_dump()
    data["role"] = user.role.value
    return data


class FirestoreStorage(Storage):
    """Storage on a Firestore AsyncClient; every record keeps its id in the document body."""

    def __init__(self, db: AsyncClient):
        self.db = db

    async def _first(self, collection: str, field: str, value: Any):
        query = self.db.collection(collection).where(filter=FieldFilter(field, "==", value)).limit(1)
        async for doc in query.stream():
            return doc
        return None

    async def _get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        if not is_valid_document_id(doc_id):
            return None
        doc = await self.db.collection(collection).document(doc_id).get()
        return doc.to_dict() if doc.exists else None

    async def _update(self, collection: str, doc_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not is_valid_document_id(doc_id):
            return None
        ref = self.db.collection(collection).document(doc_id)
        doc = await ref.get()
        if not doc.exists:
            return None
        if changes:
            await ref.update(changes)
        data = doc.to_dict()
        data.update(changes)
        return data

    async def _delete(self, collection: str, doc_id: str) -> bool:
        if not is_valid_document_id(doc_id):
            return False
        ref = self.db.collection(collection).document(doc_id)
        doc = await ref.get()
        if not doc.exists:
            return False
        await ref.delete()
        return True

    # --- Users: the document id is derived from the username, so create() enforces uniqueness ---
    async def get_user(self, user_id: str) -> Optional[UserInDB]:
        with firestore_errors(f"loading user {user_id}"):
            doc = await self._first(USERS_COLLECTION, "id", user_id)
        return UserInDB(**doc.to_dict()) if doc else None

    async def get_user_by_username(self, username: str) -> Optional[UserInDB]:
        with firestore_errors(f"loading user '{username}'"):
            data = await self._get(USERS_COLLECTION, user_document_id(username))
        return UserInDB(**data) if data else None

    async def create_user(self, username: str, password_hash: str, role: Role = Role.USER, **profile: Any) -> UserInDB:
        user = UserInDB(id=new_id("user"), username=username, password_hash=password_hash, role=role, **profile)
        try:
            await self.db.collection(USERS_COLLECTION).document(user_document_id(username)).create(_user_data(user))
        except google_exceptions.AlreadyExists as e:
            raise DuplicateUsername() from e
        except google_exceptions.GoogleAPICallError as e:
            logger.exception(f"Firestore error while creating user '{username}': {e}")
            raise StoreUnavailable("Firestore error while creating user") from e
        return user

    async def update_user(self, user_id: str, changes: Dict[str, Any]) -> Optional[UserInDB]:
        with firestore_errors(f"updating user {user_id}"):
            doc = await self._first(USERS_COLLECTION, "id", user_id)
            if doc is None:
                return None
            await doc.reference.update(changes)
        data = doc.to_dict()
        data.update(changes)
        return UserInDB(**data)

    # --- Posts ---
    async def list_posts(self, tag: Optional[str] = None) -> List[Post]:
        collection = self.db.collection(POSTS_COLLECTION)
        if tag is None:
            query = collection.order_by("published_at", direction=firestore.Query.DESCENDING)
        else:
            query = collection.where(filter=FieldFilter("tags", "array_contains", tag))
        posts = []
        with firestore_errors("listing posts"):
            async for doc in query.stream():
                try:
                    posts.append(Post(**doc.to_dict()))
                except ValueError as validation_error:
                    logger.error(f"Data validation error for post doc {doc.id}: {validation_error}")
        return sorted(posts, key=lambda post: post.published_at, reverse=True)

    async def get_post(self, post_id: str) -> Optional[Post]:
        with firestore_errors(f"loading post {post_id}"):
            data = await self._get(POSTS_COLLECTION, post_id)
        return Post(**data) if data else None

    async def get_post_by_slug(self, slug: str) -> Optional[Post]:
        with firestore_errors(f"loading post '{slug}'"):
            doc = await self._first(POSTS_COLLECTION, "slug", slug)
        return Post(**doc.to_dict()) if doc else None

    async def create_post(self, fields: Dict[str, Any]) -> Post:
        post = Post(id=new_id("post"), **fields)
        with firestore_errors(f"creating post '{post.slug}'"):
            if await self._first(POSTS_COLLECTION, "slug", post.slug) is not None:
                raise ConflictError(f"A post with the slug '{post.slug}' already exists.")
            await self.db.collection(POSTS_COLLECTION).document(post.id).set(post.model_dump())
        return post

    async def update_post(self, post_id: str, changes: Dict[str, Any]) -> Optional[Post]:
        with firestore_errors(f"updating post {post_id}"):
            slug = changes.get("slug")
            if slug:
                existing = await self._first(POSTS_COLLECTION, "slug", slug)
                if existing is not None and existing.id != post_id:
                    raise ConflictError(f"A post with the slug '{slug}' already exists.")
            data = await self._update(POSTS_COLLECTION, post_id, changes)
        return Post(**data) if data else None

    async def delete_post(self, post_id: str) -> bool:
        with firestore_errors(f"deleting post {post_id}"):
            if not await self._delete(POSTS_COLLECTION, post_id):
                return False
            batch = self.db.batch()
            query = self.db.collection(COMMENTS_COLLECTION).where(filter=FieldFilter("post_id", "==", post_id))
            async for doc in query.stream():
                batch.delete(doc.reference)
            await batch.commit()
        return True

    # --- Projects ---
    async def list_projects(self) -> List[Project]:
        projects = []
        with firestore_errors("listing projects"):
            async for doc in self.db.collection(PROJECTS_COLLECTION).stream():
                projects.append(Project(**doc.to_dict()))
        return projects

    async def get_project(self, project_id: str) -> Optional[Project]:
        with firestore_errors(f"loading project {project_id}"):
            data = await self._get(PROJECTS_COLLECTION, project_id)
        return Project(**data) if data else None

    async def create_project(self, fields: Dict[str, Any]) -> Project:
        project = Project(id=new_id("project"), **fields)
        with firestore_errors("creating project"):
            await self.db.collection(PROJECTS_COLLECTION).document(project.id).set(project.model_dump())
        return project

    async def update_project(self, project_id: str, changes: Dict[str, Any]) -> Optional[Project]:
        with firestore_errors(f"updating project {project_id}"):
            data = await self._update(PROJECTS_COLLECTION, project_id, changes)
        return Project(**data) if data else None

    async def delete_project(self, project_id: str) -> bool:
        with firestore_errors(f"deleting project {project_id}"):
            return await self._delete(PROJECTS_COLLECTION, project_id)

    # --- Comments ---
    async def get_comment(self, comment_id: str) -> Optional[Comment]:
        with firestore_errors(f"loading comment {comment_id}"):
            data = await self._get(COMMENTS_COLLECTION, comment_id)
        return Comment(**data) if data else None

    async def list_comments(self, post_id: str) -> List[Comment]:
        comments = []
        query = self.db.collection(COMMENTS_COLLECTION).where(filter=FieldFilter("post_id", "==", post_id))
        with firestore_errors(f"listing comments for post {post_id}"):
            async for doc in query.stream():
                comments.append(Comment(**doc.to_dict()))
        return sorted(comments, key=lambda c: c.created_at)

    async def create_comment(self, fields: Dict[str, Any]) -> Comment:
        comment = Comment(id=new_id("comment"), created_at=utcnow(), **fields)
        with firestore_errors(f"creating comment on post {comment.post_id}"):
            await self.db.collection(COMMENTS_COLLECTION).document(comment.id).set(comment.model_dump())
        return comment

    async def delete_comment(self, comment_id: str) -> bool:
        with firestore_errors(f"deleting comment {comment_id}"):
            return await self._delete(COMMENTS_COLLECTION, comment_id)

    # --- Messages ---
    async def list_messages(self) -> List[Message]:
        messages = []
        query = self.db.collection(MESSAGES_COLLECTION).order_by("created_at", direction=firestore.Query.DESCENDING)
        with firestore_errors("listing messages"):
            async for doc in query.stream():
                messages.append(Message(**doc.to_dict()))
        return messages

    async def create_message(self, fields: Dict[str, Any]) -> Message:
        message = Message(id=new_id("message"), created_at=utcnow(), **fields)
        with firestore_errors("creating message"):
            await self.db.collection(MESSAGES_COLLECTION).document(message.id).set(message.model_dump())
        return message

    async def delete_message(self, message_id: str) -> bool:
        with firestore_errors(f"deleting message {message_id}"):
            return await self._delete(MESSAGES_COLLECTION, message_id)

    # --- Subscribers: the id is derived from the email so create() enforces uniqueness ---
    async def list_subscribers(self) -> List[Subscriber]:
        subscribers = []
        with firestore_errors("listing subscribers"):
            async for doc in self.db.collection(SUBSCRIBERS_COLLECTION).stream():
                subscribers.append(Subscriber(**doc.to_dict()))
        return subscribers

    async def create_subscriber(self, email: str) -> Subscriber:
        digest = hashlib.sha256(email.encode("utf-8")).hexdigest()[:32]
        subscriber = Subscriber(id=f"subscriber-{digest}", email=email, created_at=utcnow())
        try:
            await self.db.collection(SUBSCRIBERS_COLLECTION).document(subscriber.id).create(subscriber.model_dump())
        except google_exceptions.AlreadyExists as e:
            raise ConflictError("This email is already subscribed.") from e
        except google_exceptions.GoogleAPICallError as e:
            logger.exception(f"Firestore error while creating subscriber: {e}")
            raise StoreUnavailable("Firestore error while creating subscriber") from e
        return subscriber

    async def delete_subscriber(self, subscriber_id: str) -> bool:
        with firestore_errors(f"deleting subscriber {subscriber_id}"):
            return await self._delete(SUBSCRIBERS_COLLECTION, subscriber_id)

    # --- About page ---
    async def get_about(self) -> Optional[AboutPage]:
        with firestore_errors("loading about page"):
            data = await self._get(SITE_COLLECTION, ABOUT_DOCUMENT)
        return AboutPage(**data) if data else None

    async def save_about(self, about: AboutPage) -> AboutPage:
        with firestore_errors("saving about page"):
            await self.db.collection(SITE_COLLECTION).document(ABOUT_DOCUMENT).set(about.model_dump())
        return about
