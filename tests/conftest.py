import pytest
from fastapi.testclient import TestClient

import AuthAndUser
from config import Settings
from main import create_app
from sessions import InMemorySessionStore
from storage import MemoryStorage

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "admin-pass"


@pytest.fixture(autouse=True)
def cheap_kdf(monkeypatch):
    # One bcrypt-pbkdf round keeps the suite fast; the format is unchanged.
    monkeypatch.setattr(AuthAndUser, "KDF_ROUNDS", 1)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        storage_backend="memory",
        admin_username=ADMIN_USERNAME,
        admin_password=ADMIN_PASSWORD,
    )


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def session_store():
    return InMemorySessionStore()


@pytest.fixture
def app(settings, storage, session_store):
    return create_app(settings=settings, storage=storage, session_store=session_store)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_client(app):
    with TestClient(app) as c:
        response = c.post("/api/login", json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD})
        assert response.status_code == 200
        yield c


def register(client, username="alice", password="secret123", **profile):
    return client.post("/api/register", json={"username": username, "password": password, **profile})
