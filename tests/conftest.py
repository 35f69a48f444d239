"""
Shared fixtures: in-memory SQLite database, a fake Access Server gateway and
user factories.
"""
import uuid

import pytest
from sqlalchemy.pool import StaticPool

from ovpn_sync.database import Base, make_engine, make_session_factory
from ovpn_sync.models import Device, User, UserRole  # noqa: F401 - register tables
from tests.fakes import FakeGateway


@pytest.fixture
def engine():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def make_user(db):
    """Create and commit a user. Defaults to a verified, sync-eligible regular user."""

    def _make(username="alice", **overrides):
        fields = {
            "id": str(uuid.uuid4()),
            "username": username,
            "email": f"{username or uuid.uuid4().hex[:8]}@example.com",
            "name": (username or "").capitalize(),
            "role": UserRole.USER.value,
            "email_verified": True,
        }
        fields.update(overrides)
        user = User(**fields)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make
