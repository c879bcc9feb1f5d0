from pathlib import Path
import sys

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))
sys.path.insert(0, str(Path(__file__).resolve().parent))

from repfinder import main
from repfinder.database import Base, get_db
from repfinder.directory import DirectoryUnavailable, get_directory


class FakeDirectory:
    def __init__(self):
        self.users = {
            "jdoe": ("s3cret", {"user_id": "E100", "username": "jdoe", "full_name": "Jane Doe"}),
        }
        self.unavailable = False

    def authenticate(self, username, password):
        if self.unavailable:
            raise DirectoryUnavailable("Failed to connect to employee directory")
        entry = self.users.get(username.lower())
        if entry is None or entry[0] != password:
            return None
        return dict(entry[1])


@pytest.fixture()
def engine(tmp_path):
    db_path = tmp_path / "test.db"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def enable_foreign_keys(dbapi_conn, _):
        dbapi_conn.execute("PRAGMA foreign_keys = ON")

    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def db_session(engine):
    SessionTesting = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    db = SessionTesting()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def fake_directory():
    return FakeDirectory()


@pytest.fixture()
def client_and_engine(engine, fake_directory):
    SessionTesting = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    def override_get_db():
        db = SessionTesting()
        try:
            yield db
        finally:
            db.close()

    original_startup = list(main.app.router.on_startup)
    original_shutdown = list(main.app.router.on_shutdown)
    original_lifespan = main.app.router.lifespan_context

    async def _noop_lifespan(_app):
        yield

    main.app.router.on_startup = []
    main.app.router.on_shutdown = []
    main.app.router.lifespan_context = _noop_lifespan
    main.app.dependency_overrides[get_db] = override_get_db
    main.app.dependency_overrides[get_directory] = lambda: fake_directory

    client = TestClient(main.app)
    try:
        yield client, engine
    finally:
        client.close()
        main.app.dependency_overrides.clear()
        main.app.router.on_startup = original_startup
        main.app.router.on_shutdown = original_shutdown
        main.app.router.lifespan_context = original_lifespan
