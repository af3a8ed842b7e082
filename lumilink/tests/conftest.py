import os
import pytest

# Set required environment variables BEFORE importing app code
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ADMIN_USER_IDS", '["admin-user"]')

from fastapi.testclient import TestClient

from lumilink.db.base import Base
from lumilink.db.session import SessionLocal, engine
from lumilink.db.store import EventStore
from lumilink.main import app
from lumilink.services.gamification import seed_badges
from lumilink.tests.factories import FixedClock


@pytest.fixture
def db():
    # Fresh schema per test; the in-memory engine shares one connection
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    seed_badges(session)
    yield session
    session.close()


@pytest.fixture
def store(db):
    return EventStore(db)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def client(db):
    return TestClient(app)
