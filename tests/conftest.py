import os

# Keep SQL echo off and never touch a developer database while testing
os.environ["ENVIRONMENT"] = "test"
os.environ.pop("REDIS_URL", None)

import pytest
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from shortener.crud import SQLAlchemyRecordStore
from shortener.database import Base, get_db
from shortener.main import app
from shortener.services.lifecycle import UrlMappingService


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeCache:
    def __init__(self):
        self.data = {}
        self.ttls = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        self.ttls[key] = ex

    async def delete(self, key):
        self.data.pop(key, None)
        self.ttls.pop(key, None)


@pytest.fixture
def fake_cache() -> FakeCache:
    return FakeCache()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
async def engine(tmp_path):
    # A file, not :memory:, so concurrent sessions get their own connections
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'shortener.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(db) -> SQLAlchemyRecordStore:
    return SQLAlchemyRecordStore(db)


@pytest.fixture
def service(store, clock) -> UrlMappingService:
    return UrlMappingService(store, clock=clock)


@pytest.fixture
async def make_service(session_factory, clock):
    """Services with their own session, for concurrent callers."""
    sessions = []

    def factory(**kwargs) -> UrlMappingService:
        session = session_factory()
        sessions.append(session)
        return UrlMappingService(SQLAlchemyRecordStore(session), clock=clock, **kwargs)

    yield factory
    for session in sessions:
        await session.close()


@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    # Lifespan is not run by ASGITransport: no sweep task, no Redis connection
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with ASGITransport(app=app) as transport:
        async with AsyncClient(transport=transport, base_url="http://test") as c:
            yield c
    app.dependency_overrides.clear()
