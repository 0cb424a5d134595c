# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from datetime import date, timedelta
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("FANOUT_WORKER_ENABLED", "false")

from wanderbuddy.core.security import create_access_token
from wanderbuddy.db.session import Base
from wanderbuddy.db.session import get_db as app_get_session
from wanderbuddy.main import app as fastapi_app
from wanderbuddy.models import Meetup, Profile
from wanderbuddy.schemas.meetup import MeetupCreate
from wanderbuddy.services import meetups as meetup_service
from wanderbuddy.services import storage as storage_module
from wanderbuddy.services.storage import LocalStorage

TEST_DB_URL = "sqlite://"
TEST_STORAGE_URL = "http://test/storage"


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db_session(engine: Engine, session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        # Services commit, so every test starts from empty tables.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture(autouse=True)
def storage(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> LocalStorage:
    """Route attachment and avatar writes into a per-test directory."""
    local = LocalStorage(tmp_path / "storage", TEST_STORAGE_URL)
    monkeypatch.setattr(storage_module, "_storage", local)
    return local


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., Profile]:
    def _make_user(user_id: str, username: str | None = None, name: str | None = None) -> Profile:
        profile = Profile(
            id=user_id,
            username=username,
            name=name,
            languages=[],
            countries_traveled=[],
            interests=[],
        )
        db_session.add(profile)
        db_session.commit()
        return profile

    return _make_user


def auth_header(user: Profile | str) -> dict[str, str]:
    user_id = user if isinstance(user, str) else user.id
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture()
def alice(make_user: Callable[..., Profile]) -> Profile:
    return make_user("user-alice", username="alice", name="Alice")


@pytest.fixture()
def bob(make_user: Callable[..., Profile]) -> Profile:
    return make_user("user-bob", username="bob", name="Bob")


@pytest.fixture()
def carol(make_user: Callable[..., Profile]) -> Profile:
    return make_user("user-carol", username="carol")


@pytest.fixture()
def alice_headers(alice: Profile) -> dict[str, str]:
    return auth_header(alice)


@pytest.fixture()
def bob_headers(bob: Profile) -> dict[str, str]:
    return auth_header(bob)


@pytest.fixture()
def carol_headers(carol: Profile) -> dict[str, str]:
    return auth_header(carol)


def meetup_payload(**overrides: object) -> dict[str, object]:
    start = date.today() + timedelta(days=10)
    payload: dict[str, object] = {
        "title": "Lisbon Weekend",
        "destination": "Lisbon, Portugal",
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=3)).isoformat(),
        "type": "open",
        "max_members": 10,
        "is_paid": False,
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def make_meetup(db_session: Session) -> Callable[..., Meetup]:
    def _make_meetup(creator: Profile, **overrides: object) -> Meetup:
        data = MeetupCreate.model_validate(meetup_payload(**overrides))
        return meetup_service.create_meetup(db_session, creator, data)

    return _make_meetup


@pytest.fixture()
def meetup(make_meetup: Callable[..., Meetup], alice: Profile) -> Meetup:
    """Open meetup created by alice."""
    return make_meetup(alice)


@pytest.fixture()
def locked_meetup(make_meetup: Callable[..., Meetup], alice: Profile) -> Meetup:
    return make_meetup(alice, title="Patagonia Trek", destination="El Chalten", type="locked")


@pytest.fixture()
def auth_for() -> Callable[[Profile | str], dict[str, str]]:
    return auth_header


@pytest.fixture()
def meetup_data() -> Callable[..., dict[str, object]]:
    return meetup_payload
