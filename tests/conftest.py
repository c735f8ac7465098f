"""Shared test fixtures."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from nopass.config.settings import Settings
from nopass.service import create_nopass
from nopass.storage.database import init_db
from nopass.utils.clock import ManualClock


@pytest.fixture()
async def async_engine():
    """In-memory SQLite engine with the nopass tables created."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock(start=1_700_000_000)


@pytest.fixture()
def settings() -> Settings:
    return Settings(use_database=False)


@pytest.fixture(params=["memory", "database"])
async def nopass(request: pytest.FixtureRequest, settings: Settings, clock: ManualClock):
    """Nopass with a manual clock, once per storage backend."""
    if request.param == "memory":
        yield create_nopass(settings=settings, clock=clock)
        return

    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    await init_db(engine)
    yield create_nopass(settings=settings, engine=engine, clock=clock)
    await engine.dispose()
