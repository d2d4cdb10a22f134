"""Shared fixtures for shell tests: in-memory Firestore and a mocked Identity Toolkit."""

import json

import httpx
import pytest

from src.shell import mcp_server
from src.shell.auth import AuthConfig, IdentityToolkitClient, Session
from src.shell.firestore_client import CalorieFirestoreClient
from src.core.models import AuthUser


USER_ID = "user-1234567890"
GOOD_TOKEN = "good-token"


class FakeSnapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return dict(self._data) if self._data is not None else None


class FakeWatch:
    def __init__(self, db, listener):
        self._db = db
        self._listener = listener
        self.unsubscribed = False

    def unsubscribe(self):
        self.unsubscribed = True
        if self._listener in self._db.listeners:
            self._db.listeners.remove(self._listener)


class FakeDocument:
    def __init__(self, db, path):
        self._db = db
        self.path = path

    @property
    def id(self):
        return self.path.rsplit("/", 1)[-1]

    def collection(self, name):
        return FakeCollection(self._db, f"{self.path}/{name}")

    def get(self):
        return FakeSnapshot(self.id, self._db.docs.get(self.path))

    def set(self, data, merge=False):
        if merge and self.path in self._db.docs:
            self._db.docs[self.path].update(data)
        else:
            self._db.docs[self.path] = dict(data)
        self._db.notify()

    def delete(self):
        self._db.docs.pop(self.path, None)
        self._db.notify()

    def on_snapshot(self, callback):
        return self._db.listen(lambda: callback([self.get()], [], None))


class FakeCollection:
    def __init__(self, db, path, order=None):
        self._db = db
        self.path = path
        self._order = order

    def document(self, doc_id):
        return FakeDocument(self._db, f"{self.path}/{doc_id}")

    def add(self, data):
        self._db.counter += 1
        doc = self.document(f"meal{self._db.counter}")
        doc.set(data)
        return None, doc

    def order_by(self, field):
        return FakeCollection(self._db, self.path, order=field)

    def stream(self):
        docs = [
            FakeSnapshot(path.rsplit("/", 1)[-1], data)
            for path, data in self._db.docs.items()
            if path.rsplit("/", 1)[0] == self.path
        ]
        if self._order:
            docs.sort(key=lambda d: d.to_dict().get(self._order, ""))
        return iter(docs)

    def on_snapshot(self, callback):
        return self._db.listen(lambda: callback(list(self.stream()), [], None))


class FakeFirestore:
    """Just enough of firestore.Client for merge writes and listeners."""

    def __init__(self):
        self.docs = {}
        self.listeners = []
        self.counter = 0

    def collection(self, name):
        return FakeCollection(self, name)

    def listen(self, listener):
        self.listeners.append(listener)
        listener()
        return FakeWatch(self, listener)

    def notify(self):
        for listener in list(self.listeners):
            listener()


def identity_handler(request: httpx.Request) -> httpx.Response:
    """Identity Toolkit stand-in with one known account."""
    body = json.loads(request.content or b"{}")
    path = request.url.path

    def error(message, status=400):
        return httpx.Response(status, json={"error": {"code": status, "message": message}})

    signed_in = {
        "localId": USER_ID,
        "email": body.get("email", "user@example.com"),
        "idToken": GOOD_TOKEN,
        "refreshToken": "refresh-token",
    }

    if path.endswith("accounts:lookup"):
        if body.get("idToken") == GOOD_TOKEN:
            return httpx.Response(200, json={"users": [{"localId": USER_ID, "email": "user@example.com"}]})
        return error("INVALID_ID_TOKEN")
    if path.endswith("accounts:signUp"):
        if body.get("email") == "taken@example.com":
            return error("EMAIL_EXISTS")
        return httpx.Response(200, json=signed_in)
    if path.endswith("accounts:signInWithPassword"):
        if body.get("password") != "secret123":
            return error("INVALID_LOGIN_CREDENTIALS")
        return httpx.Response(200, json=signed_in)
    if path.endswith("accounts:signInWithIdp"):
        return httpx.Response(200, json=signed_in)
    return error("UNKNOWN_METHOD", status=404)


@pytest.fixture
def identity_client():
    """Identity Toolkit client backed by a mock transport."""
    return IdentityToolkitClient(
        AuthConfig(api_key="test-key", base_url="https://identity.test/v1"),
        http_client=httpx.Client(transport=httpx.MockTransport(identity_handler)),
    )


@pytest.fixture
def fake_db():
    return FakeFirestore()


@pytest.fixture
def store(fake_db):
    """Firestore client wired to the in-memory fake."""
    client = CalorieFirestoreClient()
    client._client = fake_db
    return client


@pytest.fixture
def session(identity_client):
    """Session with the test user signed in."""
    s = Session(identity_client)
    s.current_user = AuthUser(uid=USER_ID, email="user@example.com", id_token=GOOD_TOKEN)
    s.loading = False
    return s


@pytest.fixture
def wired_clients(monkeypatch, store, identity_client):
    """Point the lazily created module clients at the fakes."""
    monkeypatch.setattr(mcp_server, "_store", store)
    monkeypatch.setattr(mcp_server, "_identity_client", identity_client)
    return store
