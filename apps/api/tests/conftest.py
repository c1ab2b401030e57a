from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from teamchat.core.config import settings
from teamchat.core.principal import Principal
from teamchat.core.workspaces import create_workspace
from teamchat.db.base import Base
from teamchat.db.models import ROLE_MEMBER, User, WorkspaceMember


@pytest.fixture(autouse=True)
def _fast_settings(monkeypatch):
    monkeypatch.setattr(settings, "BCRYPT_ROUNDS", 4)
    # quota behaviour has its own tests
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", False)


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make(name: str | None = None) -> Principal:
        n = next(counter)
        user = User(email=f"user{n}@example.com", password_hash="x", name=name or f"User {n}")
        db.add(user)
        db.commit()
        return Principal(user_id=user.id)

    return _make


@pytest.fixture
def alice(make_user):
    return make_user("Alice")


@pytest.fixture
def bob(make_user):
    return make_user("Bob")


@pytest.fixture
def carol(make_user):
    return make_user("Carol")


@pytest.fixture
def add_member(db):
    def _add(workspace_id, principal: Principal, role: str = ROLE_MEMBER) -> None:
        db.add(WorkspaceMember(workspace_id=workspace_id, user_id=principal.user_id, role=role))
        db.commit()

    return _add


@pytest.fixture
def acme(db, alice, bob, add_member):
    """Workspace owned by alice with bob as a plain member."""
    ws = create_workspace(db, alice, name="Acme")
    add_member(ws.id, bob)
    return ws


@pytest.fixture
def clock():
    """Strictly increasing timestamps, one second apart."""
    start = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    ticks = itertools.count()
    return lambda: start + timedelta(seconds=next(ticks))
