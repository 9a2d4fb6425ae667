from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy import text

from satlog.core.integration_db_safety import assert_safe_integration_db
from satlog.db.models import UserData  # noqa: F401
from satlog.db.models.base import Base
from satlog.db.session import engine


@pytest_asyncio.fixture(autouse=True)
async def clean_user_data():
    # Fresh connections per test; asyncpg connections do not survive event-loop changes.
    await engine.dispose()

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:  # pragma: no cover - environment-dependent
        pytest.skip(f"Postgres is required for integration tests: {exc}")

    assert_safe_integration_db(str(engine.url))

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.execute(text("TRUNCATE TABLE user_data"))

    yield

    await engine.dispose()
