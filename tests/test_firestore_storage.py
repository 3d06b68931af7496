import pytest
from google.api_core import exceptions as google_exceptions

from domain.user import Role
from errors import DuplicateUsername
from firestore_storage import FirestoreStorage, is_valid_document_id, user_document_id
from sessions import FirestoreSessionStore

pytestmark = pytest.mark.anyio


class FakeSnapshot:
    def __init__(self, data):
        self._data = data
        self.exists = data is not None

    def to_dict(self):
        return dict(self._data)


class FakeDocument:
    def __init__(self, documents, doc_id):
        self.documents = documents
        self.id = doc_id

    async def get(self):
        return FakeSnapshot(self.documents.get(self.id))

    async def create(self, data):
        if self.id in self.documents:
            raise google_exceptions.AlreadyExists(f"{self.id} exists")
        self.documents[self.id] = dict(data)

    async def set(self, data):
        self.documents[self.id] = dict(data)

    async def delete(self):
        self.documents.pop(self.id, None)


class FakeCollection:
    def __init__(self):
        self.documents = {}

    def document(self, doc_id):
        # The real client refuses ids that would address a sub-collection.
        if "/" in doc_id:
            raise ValueError(f"A document must have an even number of path elements: {doc_id}")
        return FakeDocument(self.documents, doc_id)


class FakeFirestore:
    def __init__(self):
        self.collections = {}

    def collection(self, name):
        return self.collections.setdefault(name, FakeCollection())


@pytest.fixture
def db():
    return FakeFirestore()


@pytest.mark.parametrize("doc_id", ["", "a/b", ".", "..", "__x__"])
def test_illegal_document_ids(doc_id):
    assert not is_valid_document_id(doc_id)


@pytest.mark.parametrize("doc_id", ["post-1f2e", "__prefix", "suffix__", "a.b"])
def test_legal_document_ids(doc_id):
    assert is_valid_document_id(doc_id)


@pytest.mark.parametrize("username", ["alice", "a/b", ".", "..", "__x__"])
def test_user_document_id_is_always_legal(username):
    assert is_valid_document_id(user_document_id(username))


async def test_usernames_with_path_characters(db):
    storage = FirestoreStorage(db)
    assert await storage.get_user_by_username("a/b") is None

    created = await storage.create_user("a/b", "digest.salt", role=Role.USER)
    found = await storage.get_user_by_username("a/b")
    assert found.id == created.id
    assert found.username == "a/b"

    with pytest.raises(DuplicateUsername):
        await storage.create_user("a/b", "other.salt")


async def test_unaddressable_ids_read_as_missing(db):
    storage = FirestoreStorage(db)
    assert await storage.get_post("a/b") is None
    assert await storage.get_comment("..") is None
    assert await storage.delete_project("__x__") is False


async def test_forged_session_id_reads_as_missing(db):
    store = FirestoreSessionStore(db)
    assert await store.get("a/b") is None
    await store.delete("a/b")
