"""Shared fixtures: a fresh database per test.

Uses TEST_DATABASE_URL when set (e.g. a throwaway Postgres database),
otherwise a temporary SQLite file. The schema is rebuilt from the models.
"""
import os
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from db import connection
from db.models import Base
from services.events import bus


@pytest_asyncio.fixture
async def database(tmp_path):
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'crm.db'}"
    engine = connection.configure(url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await bus.drain(timeout=5)
    await connection.dispose_engine()


class FixedClock:
    """Settable clock for EligibilityEngine."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FixedClock(datetime.now(timezone.utc) + timedelta(minutes=1))
