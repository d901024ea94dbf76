import unittest
from typing import Any, List, Tuple

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from devhub.core.auth import issue_token
from devhub.core.db import get_db
from devhub.core.init_db import init_db
from devhub.main import app
from devhub.models.user import User
from devhub.modules.notifications.hub import get_emitter


class RecordingEmitter:
    def __init__(self):
        self.events: List[Tuple[str, str, Any]] = []

    def publish(self, user_id, event, payload):
        self.events.append((user_id, event, payload))


class FailingEmitter:
    def publish(self, user_id, event, payload):
        raise RuntimeError("push channel down")


class StoreTestCase(unittest.TestCase):
    """Fresh in-memory store per test."""

    def setUp(self):
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        init_db(self.engine)
        self.Session = sessionmaker(bind=self.engine, autoflush=False, autocommit=False)

    def tearDown(self):
        self.engine.dispose()

    def make_user(self, name, email=None, role=None, user_id=None) -> str:
        with self.Session() as db:
            extra = {"id": user_id} if user_id else {}
            user = User(
                **extra,
                name=name,
                email=email or f"{name.lower()}@example.com",
                role=role,
            )
            db.add(user)
            db.commit()
            return user.id


class ApiTestCase(StoreTestCase):
    """StoreTestCase plus a TestClient wired to the in-memory store."""

    def setUp(self):
        super().setUp()
        self.emitter = RecordingEmitter()

        def override_get_db():
            db = self.Session()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_emitter] = lambda: self.emitter
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()
        super().tearDown()

    def auth(self, user_id) -> dict:
        return {"Authorization": f"Bearer {issue_token(user_id)}"}
