#!/usr/bin/env python3
"""
Pytest configuration and shared fixtures.
Every test gets its own SQLite database file so concurrent sessions use
separate connections, the way they would against a real server.
"""

import os
import time
from datetime import timedelta
from decimal import Decimal

# Settings are read at import time; point them at a throwaway database first
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("API_KEY", "")

import httpx
import pytest
import pytest_asyncio

from slotbook.core.calendar import local_today
from slotbook.core.errors import error_aggregator
from slotbook.core.metrics import booking_metrics
from slotbook.crud.provider import create_provider
from slotbook.db.base import init_db
from slotbook.db.session import build_engine, build_sessionmaker, get_session
from slotbook.schemas.provider import ProviderCreate


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh file-backed database with all tables."""
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'slotbook.db'}")
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_provider(session_factory):
    """Seed a provider; defaults to Mon-Fri 09:00-17:00, hourly slots, $100/h."""

    async def _make(**overrides):
        data = {
            "name": "Dr. Jane Doe",
            "service_type": "physiotherapy",
            "hourly_rate": Decimal("100.00"),
            "currency": "USD",
            "available_days": [1, 2, 3, 4, 5],
            "shift_start": "09:00",
            "shift_end": "17:00",
            "slot_minutes": 60,
        }
        data.update(overrides)
        async with session_factory() as session:
            return await create_provider(session, ProviderCreate(**data))

    return _make


@pytest_asyncio.fixture
async def provider(make_provider):
    return await make_provider()


@pytest.fixture
def tomorrow():
    """Provider-local tomorrow, for tests that go through the real clock."""
    return local_today() + timedelta(days=1)


@pytest_asyncio.fixture
async def client(session_factory):
    """HTTP client bound to the app, with sessions from the per-test database."""
    from slotbook.main import app

    async def _get_test_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _get_test_session
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_metrics():
    """Process-wide counters start at zero for every test"""
    booking_metrics.reset_metrics()
    error_aggregator.reset()
    yield


@pytest.fixture(autouse=True)
def monitor_test_performance(request):
    """Monitor test performance and warn about slow tests"""
    start_time = time.time()
    yield
    duration = time.time() - start_time

    node = request.node
    if node.get_closest_marker("smoke") and duration > 1.0:
        print(f"Smoke test {node.name} took {duration:.2f}s (should be < 1s)")
    elif not node.get_closest_marker("slow") and duration > 10.0:
        print(f"Test {node.name} took {duration:.2f}s (consider marking as @pytest.mark.slow)")


def pytest_collection_modifyitems(config, items):
    """Sort tests by execution speed (smoke first, slow last)"""
    def test_priority(item):
        if item.get_closest_marker("smoke"):
            return 0
        elif item.get_closest_marker("unit"):
            return 1
        elif item.get_closest_marker("integration"):
            return 2
        elif item.get_closest_marker("slow"):
            return 3
        else:
            return 1

    items[:] = sorted(items, key=test_priority)
