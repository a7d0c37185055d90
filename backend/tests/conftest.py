import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DB_INIT_MODE"] = "off"
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["LOG_FILE"] = os.path.join(tempfile.gettempdir(), "chat-backend-tests.log")

import pytest
from fastapi.testclient import TestClient

from app.core.database import Base, SessionLocal, engine
from app.core.security import get_password_hash
from app.main import app
from app.models.user import User
from app.services.realtime import Subscriber

PASSWORD = "password123"


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    """Client running the app lifespan, so the realtime channel exists."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(db):
    def _make(username: str, password: str = PASSWORD, **fields) -> User:
        user = User(username=username, password_hash=get_password_hash(password), **fields)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def recorder():
    """Subscriber class that keeps delivered frames in memory."""

    class Recorder(Subscriber):
        def __init__(self, user_id: int):
            super().__init__(user_id)
            self.frames = []

        def deliver(self, message):
            self.frames.append(message)

    return Recorder
