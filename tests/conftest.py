"""
Test configuration and fixtures for the HR chat API.

Provides:
- Settings pointing at in-memory SQLite and fakeredis
- An app built through ``create_app`` with injected engine, Redis and clock
- An httpx client over ASGI transport and JWT helpers
"""
from datetime import datetime, timedelta
from typing import Dict

import fakeredis
import httpx
import pytest
import pytest_asyncio

from app.core.config import Settings
from app.core.database import build_engine, build_session_factory, create_tables
from app.core.security import create_access_token
from app.main import create_app
from app.models.base import utcnow


class FakeClock:
    """Real time plus a manual offset, so tests can jump past TTL windows."""

    def __init__(self):
        self.offset = timedelta()

    def __call__(self) -> datetime:
        return utcnow() + self.offset

    def advance(self, seconds: float) -> None:
        self.offset += timedelta(seconds=seconds)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        redis_url="redis://localhost:6379/15",
        jwt_secret_key="test-secret-key",
        environment="test",
        log_level="warning",
        retry_base_delay=0.01,
        retry_max_delay=0.05,
    )


@pytest_asyncio.fixture
async def engine(settings):
    engine = build_engine(settings)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine):
    async with build_session_factory(engine)() as session:
        yield session


@pytest.fixture
def fake_redis():
    return fakeredis.FakeAsyncRedis(decode_responses=True)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def app(settings, engine, fake_redis, clock):
    return create_app(settings, engine=engine, redis_client=fake_redis, clock=clock)


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def token_for(settings):
    def make(user_id: str, role: str = "employee") -> str:
        return create_access_token(user_id, settings, role=role, email=f"{user_id}@example.com")
    return make


@pytest.fixture
def auth(token_for):
    """Authorization headers for a user id"""
    def make(user_id: str, role: str = "employee") -> Dict[str, str]:
        return {"Authorization": f"Bearer {token_for(user_id, role)}"}
    return make
