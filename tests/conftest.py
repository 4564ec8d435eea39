# tests/conftest.py
# PURPOSE: create a TestClient and override DB + task-generator dependencies.

# Ensure project root is on sys.path so `import taskpilot` works when running pytest.
import sys, os

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import json
import tempfile
from typing import Callable, Dict

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from taskpilot.db import Base  # DB metadata
from taskpilot.derivation import get_task_generator
from taskpilot.main import app  # FastAPI app
from taskpilot.rate_limit import limiter
from taskpilot.store_db import get_db  # original dependency to override


class FakeTaskGenerator:
    """
    Deterministic stand-in for the language model.

    - `next_output` is returned verbatim (str) or JSON-encoded (dict)
    - `error` is raised instead when set
    - calls are captured for assertions
    """

    def __init__(self) -> None:
        self.next_output: str | dict = {}
        self.error: Exception | None = None
        self.calls: list[tuple[str, object]] = []

    def generate(self, text, now):
        self.calls.append((text, now))
        if self.error is not None:
            raise self.error
        if isinstance(self.next_output, dict):
            return json.dumps(self.next_output)
        return self.next_output


@pytest.fixture()
def session_factory():
    # Temporary SQLite file so data is isolated per test
    tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    tmp.close()
    engine = create_engine(f"sqlite:///{tmp.name}", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    yield TestingSessionLocal

    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    os.unlink(tmp.name)


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def fake_generator():
    return FakeTaskGenerator()


@pytest.fixture()
def client(session_factory, fake_generator):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_task_generator] = lambda: fake_generator
    limiter.reset()

    # Context manager ensures proper startup/shutdown
    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture()
def register(client) -> Callable[..., Dict[str, str]]:
    """Register a user and return Authorization headers for it."""

    def _register(username: str = "alice", password: str = "secret-123") -> Dict[str, str]:
        r = client.post("/register", json={"username": username, "password": password})
        assert r.status_code == 201, r.text
        return {"Authorization": f"Bearer {r.json()['token']}"}

    return _register


@pytest.fixture()
def auth_headers(register) -> Dict[str, str]:
    return register()
