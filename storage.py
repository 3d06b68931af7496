"""
Data access for users and site content.

`Storage` is the seam the routers and the auth gate talk to. MemoryStorage
backs tests and local development; FirestoreStorage (firestore_storage.py)
is the production implementation.
"""
import datetime
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from fastapi import Request

from domain.comments import Comment
from domain.content import AboutPage, Message, Post, Project, Subscriber
from domain.user import Role, UserInDB
from errors import ConflictError, DuplicateUsername


def new_id(kind: str) -> str:
    return f"{kind}-{uuid.uuid4().hex}"


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def get_storage(request: Request) -> "Storage":
    return request.app.state.storage


class Storage(ABC):
    # --- Users ---
    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserInDB]: ...

    @abstractmethod
    async def get_user_by_username(self, username: str) -> Optional[UserInDB]: ...

    @abstractmethod
    async def create_user(self, username: str, password_hash: str, role: Role = Role.USER, **profile: Any) -> UserInDB:
        """Create a user; raises DuplicateUsername when the name is taken."""

    @abstractmethod
    async def update_user(self, user_id: str, changes: Dict[str, Any]) -> Optional[UserInDB]: ...

    # --- Posts ---
    @abstractmethod
    async def list_posts(self, tag: Optional[str] = None) -> List[Post]:
        """Newest first by published_at, optionally only posts carrying `tag`."""

    @abstractmethod
    async def get_post(self, post_id: str) -> Optional[Post]: ...

    @abstractmethod
    async def get_post_by_slug(self, slug: str) -> Optional[Post]: ...

    @abstractmethod
    async def create_post(self, fields: Dict[str, Any]) -> Post:
        """Raises ConflictError when the slug is taken."""

    @abstractmethod
    async def update_post(self, post_id: str, changes: Dict[str, Any]) -> Optional[Post]: ...

    @abstractmethod
    async def delete_post(self, post_id: str) -> bool:
        """Deletes the post and its comments."""

    # --- Projects ---
    @abstractmethod
    async def list_projects(self) -> List[Project]: ...

    @abstractmethod
    async def get_project(self, project_id: str) -> Optional[Project]: ...

    @abstractmethod
    async def create_project(self, fields: Dict[str, Any]) -> Project: ...

    @abstractmethod
    async def update_project(self, project_id: str, changes: Dict[str, Any]) -> Optional[Project]: ...

    @abstractmethod
    async def delete_project(self, project_id: str) -> bool: ...

    # --- Comments ---
    @abstractmethod
    async def get_comment(self, comment_id: str) -> Optional[Comment]: ...

    @abstractmethod
    async def list_comments(self, post_id: str) -> List[Comment]:
        """Oldest first by created_at."""

    @abstractmethod
    async def create_comment(self, fields: Dict[str, Any]) -> Comment: ...

    @abstractmethod
    async def delete_comment(self, comment_id: str) -> bool: ...

    # --- Messages ---
    @abstractmethod
    async def list_messages(self) -> List[Message]:
        """Newest first."""

    @abstractmethod
    async def create_message(self, fields: Dict[str, Any]) -> Message: ...

    @abstractmethod
    async def delete_message(self, message_id: str) -> bool: ...

    # --- Subscribers ---
    @abstractmethod
    async def list_subscribers(self) -> List[Subscriber]: ...

    @abstractmethod
    async def create_subscriber(self, email: str) -> Subscriber:
        """Raises ConflictError when the email is already subscribed."""

    @abstractmethod
    async def delete_subscriber(self, subscriber_id: str) -> bool: ...

    # --- About page ---
    @abstractmethod
    async def get_about(self) -> Optional[AboutPage]: ...

    @abstractmethod
    async def save_about(self, about: AboutPage) -> AboutPage: ...


class MemoryStorage(Storage):
    def __init__(self):
        self._lock = threading.Lock()
        self.users: Dict[str, UserInDB] = {}
        self.posts: Dict[str, Post] = {}
        self.projects: Dict[str, Project] = {}
        self.comments: Dict[str, Comment] = {}
        self.messages: Dict[str, Message] = {}
        self.subscribers: Dict[str, Subscriber] = {}
        self.about: Optional[AboutPage] = None

    # Users
    async def get_user(self, user_id: str) -> Optional[UserInDB]:
        user = self.users.get(user_id)
        return user.model_copy() if user else None

    async def get_user_by_username(self, username: str) -> Optional[UserInDB]:
        for user in list(self.users.values()):
            if user.username == username:
                return user.model_copy()
        return None

    async def create_user(self, username: str, password_hash: str, role: Role = Role.USER, **profile: Any) -> UserInDB:
        with self._lock:
            if any(user.username == username for user in self.users.values()):
                raise DuplicateUsername()
            user = UserInDB(id=new_id("user"), username=username, password_hash=password_hash, role=role, **profile)
            self.users[user.id] = user
        return user.model_copy()

    async def update_user(self, user_id: str, changes: Dict[str, Any]) -> Optional[UserInDB]:
        with self._lock:
            user = self.users.get(user_id)
            if user is None:
                return None
            user = user.model_copy(update=changes)
            self.users[user_id] = user
        return user.model_copy()

    # Posts
    async def list_posts(self, tag: Optional[str] = None) -> List[Post]:
        posts = [post for post in self.posts.values() if tag is None or tag in post.tags]
        return sorted(posts, key=lambda post: post.published_at, reverse=True)

    async def get_post(self, post_id: str) -> Optional[Post]:
        return self.posts.get(post_id)

    async def get_post_by_slug(self, slug: str) -> Optional[Post]:
        return next((post for post in self.posts.values() if post.slug == slug), None)

    async def create_post(self, fields: Dict[str, Any]) -> Post:
        with self._lock:
            if any(post.slug == fields["slug"] for post in self.posts.values()):
                raise ConflictError(f"A post with the slug '{fields['slug']}' already exists.")
            post = Post(id=new_id("post"), **fields)
            self.posts[post.id] = post
        return post

    async def update_post(self, post_id: str, changes: Dict[str, Any]) -> Optional[Post]:
        with self._lock:
            post = self.posts.get(post_id)
            if post is None:
                return None
            slug = changes.get("slug")
            if slug and any(other.slug == slug and other.id != post_id for other in self.posts.values()):
                raise ConflictError(f"A post with the slug '{slug}' already exists.")
            post = post.model_copy(update=changes)
            self.posts[post_id] = post
        return post

    async def delete_post(self, post_id: str) -> bool:
        with self._lock:
            if self.posts.pop(post_id, None) is None:
                return False
            for comment_id in [c.id for c in self.comments.values() if c.post_id == post_id]:
                del self.comments[comment_id]
        return True

    # Projects
    async def list_projects(self) -> List[Project]:
        return list(self.projects.values())

    async def get_project(self, project_id: str) -> Optional[Project]:
        return self.projects.get(project_id)

    async def create_project(self, fields: Dict[str, Any]) -> Project:
        project = Project(id=new_id("project"), **fields)
        with self._lock:
            self.projects[project.id] = project
        return project

    async def update_project(self, project_id: str, changes: Dict[str, Any]) -> Optional[Project]:
        with self._lock:
            project = self.projects.get(project_id)
            if project is None:
                return None
            project = project.model_copy(update=changes)
            self.projects[project_id] = project
        return project

    async def delete_project(self, project_id: str) -> bool:
        with self._lock:
            return self.projects.pop(project_id, None) is not None

    # Comments
    async def get_comment(self, comment_id: str) -> Optional[Comment]:
        return self.comments.get(comment_id)

    async def list_comments(self, post_id: str) -> List[Comment]:
        comments = [c for c in self.comments.values() if c.post_id == post_id]
        return sorted(comments, key=lambda c: c.created_at)

    async def create_comment(self, fields: Dict[str, Any]) -> Comment:
        comment = Comment(id=new_id("comment"), created_at=utcnow(), **fields)
        with self._lock:
            self.comments[comment.id] = comment
        return comment

    async def delete_comment(self, comment_id: str) -> bool:
        with self._lock:
            return self.comments.pop(comment_id, None) is not None

    # Messages
    async def list_messages(self) -> List[Message]:
        return sorted(self.messages.values(), key=lambda m: m.created_at, reverse=True)

    async def create_message(self, fields: Dict[str, Any]) -> Message:
        message = Message(id=new_id("message"), created_at=utcnow(), **fields)
        with self._lock:
            self.messages[message.id] = message
        return message

    async def delete_message(self, message_id: str) -> bool:
        with self._lock:
            return self.messages.pop(message_id, None) is not None

    # Subscribers
    async def list_subscribers(self) -> List[Subscriber]:
        return list(self.subscribers.values())

    async def create_subscriber(self, email: str) -> Subscriber:
        with self._lock:
            if any(s.email == email for s in self.subscribers.values()):
                raise ConflictError("This email is already subscribed.")
            subscriber = Subscriber(id=new_id("subscriber"), email=email, created_at=utcnow())
            self.subscribers[subscriber.id] = subscriber
        return subscriber

    async def delete_subscriber(self, subscriber_id: str) -> bool:
        with self._lock:
            return self.subscribers.pop(subscriber_id, None) is not None

    # About page
    async def get_about(self) -> Optional[AboutPage]:
        return self.about

    async def save_about(self, about: AboutPage) -> AboutPage:
        self.about = about
        return about
