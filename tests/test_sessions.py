import asyncio
import datetime

import pytest
from starlette.responses import Response

from errors import StoreUnavailable
from sessions import InMemorySessionStore, SessionManager, SessionStore

pytestmark = pytest.mark.anyio

WINDOW = datetime.timedelta(days=14)


class FakeClock:
    def __init__(self):
        self.now = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += datetime.timedelta(**kwargs)


class BrokenStore(SessionStore):
    async def get(self, session_id):
        raise StoreUnavailable("session store down")

    async def set(self, session_id, record):
        raise StoreUnavailable("session store down")

    async def delete(self, session_id):
        raise StoreUnavailable("session store down")


class SlowStore(InMemorySessionStore):
    async def get(self, session_id):
        await asyncio.sleep(1)
        return await super().get(session_id)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def manager(store, clock):
    return SessionManager(store, max_age=WINDOW, clock=clock)


async def test_issue_and_resolve(manager, store, clock):
    record = await manager.issue("user-1")
    assert record.expires_at == clock.now + WINDOW
    assert len(store) == 1

    resolved = await manager.resolve(record.session_id)
    assert resolved.user_id == "user-1"


async def test_session_ids_are_unique_and_unguessable(manager):
    ids = {(await manager.issue("user-1")).session_id for _ in range(20)}
    assert len(ids) == 20
    assert all(len(session_id) >= 40 for session_id in ids)


async def test_resolve_slides_expiry(manager, store, clock):
    record = await manager.issue("user-1")
    clock.advance(days=10)
    await manager.resolve(record.session_id)
    stored = await store.get(record.session_id)
    assert stored.expires_at == clock.now + WINDOW

    # Active use keeps the session alive past the original expiry.
    clock.advance(days=10)
    assert await manager.resolve(record.session_id) is not None


async def test_expired_session_is_anonymous_and_removed(manager, store, clock):
    record = await manager.issue("user-1")
    clock.advance(days=15)
    assert await manager.resolve(record.session_id) is None
    assert await store.get(record.session_id) is None


async def test_unknown_or_missing_session_id(manager):
    assert await manager.resolve(None) is None
    assert await manager.resolve("") is None
    assert await manager.resolve("not-a-session") is None


async def test_revoke_is_idempotent(manager, store):
    record = await manager.issue("user-1")
    await manager.revoke(record.session_id)
    await manager.revoke(record.session_id)
    await manager.revoke(None)
    assert await manager.resolve(record.session_id) is None


async def test_store_failure_fails_closed(clock):
    manager = SessionManager(BrokenStore(), max_age=WINDOW, clock=clock)
    assert await manager.resolve("anything") is None


async def test_store_timeout_fails_closed(clock):
    store = SlowStore()
    manager = SessionManager(store, max_age=WINDOW, clock=clock, store_timeout=0.05)
    record = await manager.issue("user-1")
    assert await manager.resolve(record.session_id) is None


async def test_cookie_attributes(manager):
    record = await manager.issue("user-1")
    response = Response()
    manager.set_cookie(response, record)
    header = response.headers["set-cookie"]
    assert header.startswith(f"blog_sid={record.session_id};")
    assert "HttpOnly" in header
    assert "Path=/" in header
    assert "SameSite=lax" in header
    assert f"Max-Age={int(WINDOW.total_seconds())}" in header
    assert "Secure" not in header


async def test_secure_cookie_when_configured(store, clock):
    manager = SessionManager(store, max_age=WINDOW, clock=clock, secure=True)
    record = await manager.issue("user-1")
    response = Response()
    manager.set_cookie(response, record)
    assert "Secure" in response.headers["set-cookie"]


def test_clear_cookie_uses_same_name_and_path(store):
    manager = SessionManager(store, cookie_name="custom_sid")
    response = Response()
    manager.clear_cookie(response)
    header = response.headers["set-cookie"]
    assert header.startswith("custom_sid=")
    assert "Max-Age=0" in header
    assert "Path=/" in header
