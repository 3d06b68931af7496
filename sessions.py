"""
Server-side sessions bound to an opaque, HTTP-only cookie.

The cookie only carries a random session id; the record (user id and expiry)
lives in a SessionStore. Lookups slide the expiry forward, and any store
failure during a lookup is treated as "not logged in".
"""
import asyncio
import datetime
import logging
import secrets
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

from fastapi import Request, Response
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore import AsyncClient
from pydantic import BaseModel

from errors import StoreUnavailable
from firestore_storage import is_valid_document_id

logger = logging.getLogger('uvicorn.error')

SESSIONS_COLLECTION = "sessions"
SESSION_ID_BYTES = 32


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class SessionRecord(BaseModel):
    session_id: str
    user_id: str
    issued_at: datetime.datetime
    expires_at: datetime.datetime


class SessionStore(ABC):
    @abstractmethod
    async def get(self, session_id: str) -> Optional[SessionRecord]:
        ...

    @abstractmethod
    async def set(self, session_id: str, record: SessionRecord) -> None:
        ...

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        ...


class InMemorySessionStore(SessionStore):
    def __init__(self):
        self._records: Dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    async def get(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            record = self._records.get(session_id)
        return record.model_copy() if record else None

    async def set(self, session_id: str, record: SessionRecord) -> None:
        with self._lock:
            self._records[session_id] = record.model_copy()

    async def delete(self, session_id: str) -> None:
        with self._lock:
            self._records.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._records)


class FirestoreSessionStore(SessionStore):
    def __init__(self, db: AsyncClient, collection: str = SESSIONS_COLLECTION):
        self._collection = db.collection(collection)

    async def get(self, session_id: str) -> Optional[SessionRecord]:
        if not is_valid_document_id(session_id):
            return None
        try:
            doc = await self._collection.document(session_id).get()
        except google_exceptions.GoogleAPICallError as e:
            raise StoreUnavailable(f"Session lookup failed: {e}") from e
        if not doc.exists:
            return None
        return SessionRecord(**doc.to_dict())

    async def set(self, session_id: str, record: SessionRecord) -> None:
        try:
            await self._collection.document(session_id).set(record.model_dump())
        except google_exceptions.GoogleAPICallError as e:
            raise StoreUnavailable(f"Session write failed: {e}") from e

    async def delete(self, session_id: str) -> None:
        if not is_valid_document_id(session_id):
            return
        try:
            await self._collection.document(session_id).delete()
        except google_exceptions.GoogleAPICallError as e:
            raise StoreUnavailable(f"Session delete failed: {e}") from e


class SessionManager:
    def __init__(
        self,
        store: SessionStore,
        max_age: datetime.timedelta = datetime.timedelta(days=14),
        cookie_name: str = "blog_sid",
        secure: bool = False,
        store_timeout: float = 5.0,
        clock: Callable[[], datetime.datetime] = utcnow,
    ):
        self.store = store
        self.max_age = max_age
        self.cookie_name = cookie_name
        self.secure = secure
        self.store_timeout = store_timeout
        self.clock = clock

    async def _call(self, operation):
        try:
            return await asyncio.wait_for(operation, self.store_timeout)
        except asyncio.TimeoutError as e:
            raise StoreUnavailable(f"Session store did not answer within {self.store_timeout}s") from e

    def session_id_from(self, request: Request) -> Optional[str]:
        return request.cookies.get(self.cookie_name) or None

    async def issue(self, user_id: str) -> SessionRecord:
        now = self.clock()
        record = SessionRecord(
            session_id=secrets.token_urlsafe(SESSION_ID_BYTES),
            user_id=user_id,
            issued_at=now,
            expires_at=now + self.max_age,
        )
        await self._call(self.store.set(record.session_id, record))
        return record

    async def resolve(self, session_id: Optional[str]) -> Optional[SessionRecord]:
        """Return the live session for `session_id` with its expiry pushed forward, or None."""
        if not session_id:
            return None
        try:
            record = await self._call(self.store.get(session_id))
            if record is None:
                return None
            now = self.clock()
            if record.expires_at <= now:
                logger.info(f"Session for user {record.user_id} expired at {record.expires_at.isoformat()}")
                await self._call(self.store.delete(session_id))
                return None
            record.expires_at = now + self.max_age
            await self._call(self.store.set(session_id, record))
            return record
        except StoreUnavailable as e:
            logger.error(f"Session store unavailable, treating request as anonymous: {e}")
            return None

    async def revoke(self, session_id: Optional[str]) -> None:
        if session_id:
            await self._call(self.store.delete(session_id))

    def _secure_for(self, request: Optional[Request]) -> bool:
        return self.secure or (request is not None and request.url.scheme == "https")

    def set_cookie(self, response: Response, record: SessionRecord, request: Optional[Request] = None) -> None:
        response.set_cookie(
            self.cookie_name,
            record.session_id,
            max_age=int(self.max_age.total_seconds()),
            path="/",
            secure=self._secure_for(request),
            httponly=True,
            samesite="lax",
        )

    def clear_cookie(self, response: Response, request: Optional[Request] = None) -> None:
        # Name and path must match set_cookie or browsers keep the cookie.
        response.delete_cookie(
            self.cookie_name,
            path="/",
            secure=self._secure_for(request),
            httponly=True,
            samesite="lax",
        )
