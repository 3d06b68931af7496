import pytest
from fastapi.testclient import TestClient

from conftest import register
from errors import StoreUnavailable
from main import create_app
from sessions import InMemorySessionStore, SessionStore
from storage import MemoryStorage

COOKIE = "blog_sid"
INTERNAL_DETAIL = "firestore quota exceeded for project blog-prod-4711"


class DownSessionStore(SessionStore):
    async def get(self, session_id):
        raise StoreUnavailable(INTERNAL_DETAIL)

    async def set(self, session_id, record):
        raise StoreUnavailable(INTERNAL_DETAIL)

    async def delete(self, session_id):
        raise StoreUnavailable(INTERNAL_DETAIL)


class DownStorage(MemoryStorage):
    async def get_user(self, user_id):
        raise StoreUnavailable(INTERNAL_DETAIL)

    async def list_posts(self, tag=None):
        raise StoreUnavailable(INTERNAL_DETAIL)


def test_injected_empty_session_store_is_used(settings, storage):
    store = InMemorySessionStore()
    app = create_app(settings=settings, storage=storage, session_store=store)
    with TestClient(app) as client:
        register(client)
        assert len(store) == 1
        assert app.state.sessions.store is store


def test_login_with_session_store_down_is_generic_500(settings, storage):
    app = create_app(settings=settings, storage=storage, session_store=DownSessionStore())
    with TestClient(app) as client:
        response = register(client)
    assert response.status_code == 500
    assert response.json() == {"message": "Internal server error"}
    assert "quota" not in response.text
    assert COOKIE not in response.headers.get("set-cookie", "")


def test_session_store_down_fails_closed(settings, storage):
    app = create_app(settings=settings, storage=storage, session_store=DownSessionStore())
    with TestClient(app) as client:
        response = client.get("/api/user", headers={"Cookie": f"{COOKIE}=some-session"})
        assert response.status_code == 401
        assert response.json() == {"message": "Not authenticated"}

        response = client.post("/api/posts", json={"title": "T", "content": "C"}, headers={"Cookie": f"{COOKIE}=x"})
        assert response.status_code == 401


def test_logout_with_session_store_down_still_clears_cookie(settings, storage):
    app = create_app(settings=settings, storage=storage, session_store=DownSessionStore())
    with TestClient(app) as client:
        response = client.post("/api/logout", headers={"Cookie": f"{COOKIE}=some-session"})
    assert response.status_code == 200
    assert "Max-Age=0" in response.headers["set-cookie"]


@pytest.fixture
def down_storage():
    return DownStorage()


def test_content_store_down_is_generic_500(settings, down_storage, session_store):
    app = create_app(settings=settings, storage=down_storage, session_store=session_store)
    with TestClient(app) as client:
        response = client.get("/api/posts")
    assert response.status_code == 500
    assert response.json() == {"message": "Internal server error"}
    assert INTERNAL_DETAIL not in response.text


def test_user_store_down_fails_closed(settings, down_storage, session_store):
    app = create_app(settings=settings, storage=down_storage, session_store=session_store)
    with TestClient(app) as client:
        assert register(client).status_code == 201
        assert len(session_store) == 1
        response = client.get("/api/user")
    assert response.status_code == 401
