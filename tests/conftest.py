"""Pytest configuration: a throwaway SQLite store and an API client bound to it."""

import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from schoolnews.config import Config
from schoolnews.database import Database
from schoolnews.services.sql_store import SqlContentStore


@pytest_asyncio.fixture
async def store(tmp_path):
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await database.init()
    store = SqlContentStore(database)
    await store.init_defaults()
    yield store
    await store.close()


@pytest_asyncio.fixture
async def client(store):
    """API client with the store injected, so no lifespan is needed."""
    from schoolnews.main import create_app

    app = create_app(Config(), store=store)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def admin_token(client):
    # The first account registered becomes the administrator
    response = await client.post(
        "/api/auth/register",
        json={"email": "admin@stjosefschool.com", "password": "secret123", "name": "Admin"},
    )
    return response.json()["access_token"]


@pytest_asyncio.fixture
async def user_token(client, admin_token):
    response = await client.post(
        "/api/auth/register",
        json={"email": "student@example.com", "password": "secret123", "name": "Student"},
    )
    return response.json()["access_token"]
