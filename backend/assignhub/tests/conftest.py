import os
import tempfile
from pathlib import Path
from uuid import uuid4

import pytest

TEST_DB_FILE = Path(tempfile.gettempdir()) / f"test_assignhub_{uuid4().hex}.db"
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB_FILE.as_posix()}"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ALGORITHM", "HS256")
os.environ.setdefault("DB_BOOTSTRAP_MODE", "off")
os.environ.setdefault("PUSH_PROVIDER", "log")
os.environ.setdefault("NOTIFY_MODE", "sync")

from assignhub import models  # noqa: E402,F401
from assignhub.database.base import Base  # noqa: E402
from assignhub.database.session import SessionLocal, engine  # noqa: E402
from assignhub.models.user import User  # noqa: E402
from assignhub.services.factory import build_coordinator  # noqa: E402

from .fakes import RecordingPushProvider  # noqa: E402


@pytest.fixture(autouse=True)
def reset_database():
    engine.dispose()
    if TEST_DB_FILE.exists():
        TEST_DB_FILE.unlink()
    Base.metadata.create_all(bind=engine)
    try:
        yield
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
        if TEST_DB_FILE.exists():
            TEST_DB_FILE.unlink()


@pytest.fixture
def session_factory():
    return SessionLocal


@pytest.fixture
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def push_provider():
    return RecordingPushProvider()


@pytest.fixture
def coordinator(session_factory, push_provider):
    return build_coordinator(session_factory, provider=push_provider, notify_mode="sync")


@pytest.fixture
def make_user(session_factory):
    def factory(name: str, role: str = "user") -> User:
        suffix = uuid4().hex[:8]
        with session_factory.begin() as db:
            user = User(name=name, email=f"{name.lower()}.{suffix}@test.local", role=role)
            db.add(user)
            db.flush()
            db.refresh(user)
        return user

    return factory
