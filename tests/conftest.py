"""
Shared fixtures for the Exchanger tests.

Every test runs against its own SQLite database file created in the
pytest temporary directory, so tests never observe each other's rows.
Service tests use the ``db`` session fixture directly; API tests drive
the FastAPI app through an in-process ``httpx`` client.
"""
from __future__ import annotations

from typing import AsyncIterator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from exchanger.api.main import create_app
from exchanger.core.config import get_settings
from exchanger.core.db import get_db_session, init_db_schema, reset_engine
from exchanger.core.models import Listing
from exchanger.core.schemas import ListingCreate
from exchanger.core.services import auth as auth_service
from exchanger.core.services import listings as listings_service

OWNER = 1
PROPOSER = 2
OTHER = 3


@pytest.fixture()
async def database(tmp_path, monkeypatch: pytest.MonkeyPatch) -> AsyncIterator[None]:
    """Point DATABASE_URL at a fresh SQLite file and create the schema."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'exchanger.db'}")
    monkeypatch.setenv("EXCHANGER_ENV", "test")
    # Recreate settings and engine caches so the new env takes effect
    get_settings.cache_clear()
    await reset_engine()
    await init_db_schema()
    yield
    await reset_engine()
    get_settings.cache_clear()


@pytest.fixture()
async def db(database: None) -> AsyncIterator[AsyncSession]:
    """A session with the three test users already present."""
    async with get_db_session() as session:
        for user_id, name in ((OWNER, "owner"), (PROPOSER, "proposer"), (OTHER, "other")):
            await auth_service.ensure_user(session, user_id, name=name)
        yield session


@pytest.fixture()
async def app(database: None) -> FastAPI:
    """Create the FastAPI app for testing."""
    return create_app()


@pytest.fixture()
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http


async def make_listing(db: AsyncSession, owner_id: int, **fields) -> Listing:
    """Create a listing with sensible defaults for the fields not given."""
    payload = {
        "title": fields.pop("title", "Road bike"),
        "description": fields.pop("description", "Steel frame, 56cm"),
        "category": fields.pop("category", "sports"),
        **fields,
    }
    return await listings_service.create_listing(db, owner_id, ListingCreate(**payload))


def headers(user_id: int) -> dict:
    return {"X-User-Id": str(user_id)}
