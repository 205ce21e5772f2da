import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTH_SECRET"] = "test-auth-secret"
os.environ["WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["REALTIME_KEY"] = "test-key"
os.environ["REALTIME_SECRET"] = "test-realtime-secret"

import jwt
import pytest
from fastapi.testclient import TestClient

from dmchat.api.deps import get_broker
from dmchat.client.db.repository import SqlChatRepository
from dmchat.db.session import Base, engine
from dmchat.main import app
from fakes import RecordingBroker


@pytest.fixture(autouse=True)
def database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def broker():
    recording = RecordingBroker()
    app.dependency_overrides[get_broker] = lambda: recording
    yield recording
    app.dependency_overrides.pop(get_broker, None)


@pytest.fixture(scope="function")
def client(broker):
    return TestClient(app)


@pytest.fixture
def repo():
    return SqlChatRepository()


@pytest.fixture
def alice(repo):
    return repo.upsert_user("clerk_alice", "alice@example.com", {"first_name": "Alice"})


@pytest.fixture
def bob(repo):
    return repo.upsert_user("clerk_bob", "bob@example.com", {"first_name": "Bob"})


@pytest.fixture
def carol(repo):
    return repo.upsert_user("clerk_carol", "carol@example.com", {"first_name": "Carol"})


@pytest.fixture
def make_token():
    def _make(sub, **claims):
        return jwt.encode({"sub": sub, **claims}, os.environ["AUTH_SECRET"], algorithm="HS256")

    return _make


@pytest.fixture
def auth_headers(make_token):
    def _headers(sub, **claims):
        return {"Authorization": f"Bearer {make_token(sub, **claims)}"}

    return _headers
