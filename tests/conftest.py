# tests/conftest.py
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker as _sessionmaker
from sqlalchemy.pool import StaticPool

# registers every table on Base.metadata
import taskboard.models  # noqa: F401
from taskboard.core.db import get_db, get_session_factory
from taskboard.main import app
from taskboard.models.base import Base
from taskboard.realtime.change_feed import change_feed
from taskboard.services.permission_service import permission_service


@pytest.fixture()
def engine():
    """
    Fresh in-memory SQLite per test.

    StaticPool keeps one connection so every session (and the TestClient's
    worker threads) sees the same database.
    """
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(eng, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cur = dbapi_connection.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    Base.metadata.create_all(eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(eng)
        eng.dispose()


@pytest.fixture()
def db(engine):
    Session = _sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def _reset_shared_state():
    """Permission cache and realtime subscriptions are process-wide singletons."""
    permission_service.clear_all_cache()
    yield
    permission_service.clear_all_cache()
    change_feed.unsubscribe_all()


@pytest.fixture()
def client(engine, db):
    def _get_db():
        yield db

    factory = _sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: factory
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.pop(get_db, None)
        app.dependency_overrides.pop(get_session_factory, None)
