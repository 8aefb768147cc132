# tests/conftest.py
from datetime import datetime, timedelta, timezone

import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from samartha.core.config import Settings
from samartha.deps import build_services, get_services
from samartha.main import app
from samartha.repos.inmemory import InMemoryRepo


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kw) -> None:
        self.now += timedelta(**kw)


@pytest.fixture
def anyio_backend():
    # keep AnyIO on asyncio for the whole test session
    return "asyncio"

@pytest.fixture
def cfg():
    return Settings(_env_file=None, query_timeout_seconds=0.5)

@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc))

@pytest.fixture
def repo():
    r = InMemoryRepo()
    r.build_geo_index()
    return r

@pytest.fixture
def svc(repo, clock, cfg):
    return build_services(repo, cfg=cfg, clock=clock)

@pytest.fixture
async def test_client(svc):
    app.dependency_overrides[get_services] = lambda: svc
    try:
        async with LifespanManager(app):
            transport = ASGITransport(app=app, raise_app_exceptions=True)
            async with AsyncClient(transport=transport, base_url="http://test") as ac:
                yield ac
    finally:
        app.dependency_overrides.clear()
