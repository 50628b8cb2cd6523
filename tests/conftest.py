import asyncio
import os
from datetime import datetime, timedelta, timezone

# Settings are read at import time; keep the app away from real services.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./attendly_unused.db")
os.environ.setdefault("RUN_MIGRATIONS", "false")
os.environ.setdefault("CACHE_BACKEND", "memory")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from attendly.clock import get_clock  # noqa: E402
from attendly.database import build_engine, build_sessionmaker, get_db  # noqa: E402
from attendly.main import app  # noqa: E402
from attendly.models import Base  # noqa: E402
from attendly.redis_config import MemoryCache, get_redis  # noqa: E402


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current = self.current + timedelta(seconds=seconds)
        return self.current

    def set(self, moment: datetime) -> None:
        self.current = moment


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def cache():
    return MemoryCache()


@pytest.fixture()
def session_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'attendly_test.db'}")

    async def create_tables():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(create_tables())
    yield build_sessionmaker(engine)
    asyncio.run(engine.dispose())


@pytest.fixture()
def api_app(session_factory, cache, clock):
    """The app wired to the test database, cache and clock."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_redis():
        yield cache

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_clock] = lambda: clock

    yield app

    app.dependency_overrides.clear()


@pytest.fixture()
def client(api_app):
    return TestClient(api_app)
