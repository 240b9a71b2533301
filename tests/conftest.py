import os
import sys
import tempfile
from pathlib import Path

TEST_DB_DIR = Path(tempfile.mkdtemp(prefix="election-auth-tests-"))

os.environ["DATABASE_URL"] = os.environ.get("ELECTION_AUTH_TEST_DATABASE_URL", f"sqlite:///{TEST_DB_DIR / 'election-auth.db'}")
os.environ["JWT_SECRET_KEY"] = "test-only-jwt-secret-key-with-enough-length-for-hs256"
os.environ["DEV"] = "TRUE"
os.environ["FRONTEND_URL"] = "http://testserver"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.pop("TWOFA_NOTIFY_WEBHOOK_URL", None)

# Add app directory to path, modules import each other as top level packages
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'app')))

import random  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from api import anti_abuse  # noqa: E402
from api.rate_limiter import limiter  # noqa: E402
from database.models import ElectionEngine, election_engine  # noqa: E402
from twofactor.service import TwoFactorService  # noqa: E402


class InMemoryRedis:
    """The handful of redis.asyncio calls the anti-abuse module makes."""

    def __init__(self):
        self.values = {}
        self.lists = {}

    async def get(self, key):
        return self.values.get(key)

    async def set(self, key, value, ex=None):
        self.values[key] = value
        return True

    async def delete(self, key):
        self.values.pop(key, None)
        self.lists.pop(key, None)
        return 1

    async def rpush(self, key, value):
        self.lists.setdefault(key, []).append(value)
        return len(self.lists[key])

    async def expire(self, key, seconds):
        return True

    async def llen(self, key):
        return len(self.lists.get(key, []))


class RecordingNotifier:
    def __init__(self, succeed: bool = True):
        self.sent = []
        self.succeed = succeed

    async def dispatch(self, user, code: str) -> bool:
        self.sent.append((user.username, code))
        return self.succeed

    def last_code_for(self, username: str):
        codes = [code for name, code in self.sent if name == username]
        return codes[-1] if codes else None


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    client = InMemoryRedis()
    monkeypatch.setattr(anti_abuse, "r", client)
    return client


@pytest.fixture(autouse=True)
def no_rate_limits():
    limiter.enabled = False
    yield
    limiter.enabled = True


@pytest_asyncio.fixture
async def db():
    async with election_engine.begin() as conn:
        await conn.run_sync(ElectionEngine.metadata.drop_all)
        await conn.run_sync(ElectionEngine.metadata.create_all)
    yield
    await election_engine.dispose()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def two_factor(notifier):
    return TwoFactorService(rng=random.SystemRandom(), notifier=notifier)


@pytest.fixture
def app_instance(two_factor):
    from main import app
    from api.auth.router import get_two_factor_service

    app.dependency_overrides[get_two_factor_service] = lambda: two_factor
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def async_client(app_instance, db):
    transport = ASGITransport(app=app_instance)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
