from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from fleetledger.core.config import get_settings
from fleetledger.domain.models import Base


async def _prepare_schema(database_url: str) -> None:
    # Use a throwaway engine so no pooled connection outlives this event loop.
    engine = create_async_engine(database_url, poolclass=NullPool)
    try:
        async with engine.begin() as connection:
            await connection.execute(text("SELECT 1"))
            await connection.run_sync(Base.metadata.create_all)
    finally:
        await engine.dispose()


@pytest.fixture(scope="session", autouse=True)
def database_schema() -> None:
    try:
        asyncio.run(_prepare_schema(get_settings().database_url))
    except (OSError, SQLAlchemyError) as exc:
        pytest.skip(f"Postgres unavailable for integration tests: {exc}")
