import fnmatch

import pytest
import redis
from fastapi.testclient import TestClient

from app.core.cache import CacheStore
from app.core.settings import Settings
from app.db import Base, CreateDbEngine, CreateSessionFactory
from app.main import CreateApp
from app.modules.auth.deps import UserContext
from app.modules.auth.models import User
from app.modules.auth.service import CreateAccessToken
from app.modules.notes import models as notes_models  # noqa: F401
from app.modules.notes.services.notes_service import NotesService


class _FakeRedis:
    """Enough of redis.Redis for CacheStore, with a switch to simulate an outage."""

    def __init__(self):
        self.store = {}
        self.ttls = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise redis.ConnectionError("redis unavailable")

    def get(self, key):
        self._check()
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self._check()
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            if key in self.store:
                del self.store[key]
                self.ttls.pop(key, None)
                removed += 1
        return removed

    def scan_iter(self, match=None, count=None):
        self._check()
        for key in list(self.store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    def ping(self):
        self._check()
        return True


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DatabaseUrl=f"sqlite:///{tmp_path / 'notes.db'}",
        JwtSecretKey="test-secret",
    )


@pytest.fixture
def session_factory(settings):
    engine = CreateDbEngine(settings)
    Base.metadata.create_all(engine)
    yield CreateSessionFactory(engine)
    engine.dispose()


@pytest.fixture
def fake_redis():
    return _FakeRedis()


@pytest.fixture
def cache(fake_redis):
    return CacheStore(fake_redis)


@pytest.fixture
def service(session_factory, cache, settings):
    return NotesService(session_factory, cache, settings)


def _AddUser(session_factory, username: str) -> UserContext:
    db = session_factory()
    try:
        user = User(Username=username, Email=f"{username}@example.com", PasswordHash="not-used")
        db.add(user)
        db.commit()
        return UserContext(Id=user.Id, Username=user.Username, Email=user.Email)
    finally:
        db.close()


@pytest.fixture
def users(session_factory):
    return {
        name: _AddUser(session_factory, name)
        for name in ("owner", "editor", "reader", "stranger")
    }


@pytest.fixture
def client(settings, session_factory, cache):
    app = CreateApp(settings=settings, session_factory=session_factory, cache=cache)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(settings):
    def _headers(user: UserContext) -> dict:
        token, _ttl = CreateAccessToken(settings, user.Id, user.Username, user.Email)
        return {"Authorization": f"Bearer {token}"}

    return _headers
