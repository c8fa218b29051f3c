"""
tests/conftest.py -- Shared fixtures.

Every test gets its own in-memory SQLite database (DBStorage uses a
StaticPool for "sqlite://" so all sessions share one connection), and a
FakeClock that drives grace windows, family expiry and revocation TTLs.
JWT expiry is still checked against wall-clock time by PyJWT, so tests
that need an expired token build a codec with a negative lifetime.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from authority.security import TokenCodec
from authority.service import TokenAuthority
from authority_api import create_app
from authority_store.db_storage import DBStorage
from authority_store.family_store import FamilyStore
from authority_store.token_family import TokenFamily
from authority_store.revocation_cache import SQLRevocationCache
from authority_store.user_store import UserStore

ACCESS_SECRET = "test-access-secret-0123456789abcdef0123"
REFRESH_SECRET = "test-refresh-secret-0123456789abcdef012"
GRACE = timedelta(seconds=60)


def family_count(storage: DBStorage, user_id: str) -> int:
    with storage.transaction() as session:
        return session.execute(
            select(func.count()).select_from(TokenFamily).where(TokenFamily.user_id == user_id)
        ).scalar_one()


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage():
    db = DBStorage("sqlite://")
    db.reload()
    yield db
    db.dispose()


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(ACCESS_SECRET, REFRESH_SECRET)


@pytest.fixture
def users(storage) -> UserStore:
    return UserStore(storage)


@pytest.fixture
def families(storage) -> FamilyStore:
    return FamilyStore(storage)


@pytest.fixture
def revocations(storage, clock) -> SQLRevocationCache:
    return SQLRevocationCache(storage, clock=clock)


@pytest.fixture
def authority(codec, users, families, revocations, clock) -> TokenAuthority:
    return TokenAuthority(
        codec=codec,
        users=users,
        families=families,
        revocations=revocations,
        grace_window=GRACE,
        family_max_age=timedelta(days=30),
        clock=clock,
    )


@pytest.fixture
def user(authority):
    return authority.register("a@x.com", "secret1", name="Ada").unwrap()


@pytest.fixture
def logged_in(authority, user):
    """LoginResult for a@x.com: tokens (A0, R0)."""
    return authority.login("a@x.com", "secret1").unwrap()


@pytest.fixture
def app():
    app = create_app("testing")
    yield app
    app.extensions["db_storage"].dispose()


@pytest.fixture
def client(app):
    return app.test_client()
