import fnmatch
import os
import sys

import pytest

CURRENT_DIR = os.path.dirname(__file__)
SERVICE_ROOT = os.path.dirname(CURRENT_DIR)
if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from course_authoring.infrastructure.models import Base
from course_authoring.infrastructure.db import get_db, get_session_factory
from course_authoring.interfaces.http.authz import require_instructor
from course_authoring.main import app

INSTRUCTOR = {"sub": "teacher@example.com", "role": "instructor"}

# Тестовая БД в памяти, одно соединение на все потоки TestClient
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


class FakeRedis:
    """Redis в памяти: get/setex/keys/delete"""

    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value

    def keys(self, pattern):
        return [k for k in self.store if fnmatch.fnmatch(k, pattern)]

    def delete(self, *keys):
        return sum(1 for k in keys if self.store.pop(k, None) is not None)


class FakeHandle:
    def __init__(self, when, seq, callback, args):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeTimers:
    """Ручные часы с интерфейсом loop.call_later"""

    def __init__(self):
        self.now = 0.0
        self._queue = []
        self._seq = 0

    def call_later(self, delay, callback, *args):
        handle = FakeHandle(self.now + delay, self._seq, callback, args)
        self._seq += 1
        self._queue.append(handle)
        return handle

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            self._queue = [h for h in self._queue if not h.cancelled]
            due = [h for h in self._queue if h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self._queue.remove(handle)
            self.now = handle.when
            handle.callback(*handle.args)
        self.now = target


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Настройка тестового окружения"""
    monkeypatch.setenv("DATABASE_URL", "sqlite:///./test.db")
    # Вместо Redis словарь в памяти
    fake = FakeRedis()
    monkeypatch.setattr("course_authoring.infrastructure.cache.get_redis", lambda: fake)
    yield fake


@pytest.fixture
def fake_redis(setup_test_environment):
    return setup_test_environment


@pytest.fixture
def timers():
    return FakeTimers()


@pytest.fixture(scope="function")
def client():
    # Создаем таблицы перед каждым тестом
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    yield TestClient(app)
    # Очищаем после теста
    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_session_factory, None)
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def instructor_override():
    """Фикстура для переопределения require_instructor"""
    def mock_require_instructor():
        return dict(INSTRUCTOR)

    app.dependency_overrides[require_instructor] = mock_require_instructor
    yield INSTRUCTOR
    if require_instructor in app.dependency_overrides:
        del app.dependency_overrides[require_instructor]


@pytest.fixture
def db_session(client):
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
