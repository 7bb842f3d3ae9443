"""MongoDB/Beanie fixtures for testing."""

import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from beanie import init_beanie
from mongomock_motor import AsyncMongoMockClient
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from app.schemas import BEANIE_DOCUMENT_MODELS


@pytest.fixture(scope="session")
def mongo_url() -> str | None:
    """
    Get MongoDB URL for testing.

    MONGO_URL_VOD_PRIMARY points the suite at a real server (test container).
    When unset, tests run against an in-memory mongomock-motor client.
    """
    return os.environ.get("MONGO_URL_VOD_PRIMARY") or None


@pytest.fixture(scope="session")
def test_db_name() -> str:
    """Get test database name."""
    return "beanie_test_db"


@pytest_asyncio.fixture(scope="function")
async def mongo_client(mongo_url: str | None) -> AsyncGenerator[AsyncIOMotorClient]:
    """Create MongoDB client for testing (function-scoped to avoid event loop issues)."""
    if mongo_url:
        client: AsyncIOMotorClient = AsyncIOMotorClient(mongo_url, tz_aware=True)
        yield client
        client.close()
        return

    yield AsyncMongoMockClient(tz_aware=True)  # type: ignore[misc]


@pytest_asyncio.fixture(scope="function")
async def beanie_db(
    mongo_client: AsyncIOMotorClient,
    test_db_name: str,
) -> AsyncGenerator[AsyncIOMotorDatabase]:
    """
    Initialize Beanie with the test database.

    Each test function gets a fresh Beanie init. Use clear_collections to clean
    data between tests on a real server.
    """
    db = mongo_client[test_db_name]

    await init_beanie(
        database=db,  # type: ignore[arg-type]
        document_models=BEANIE_DOCUMENT_MODELS,
    )

    yield db


@pytest_asyncio.fixture(autouse=False)
async def clear_collections(beanie_db: AsyncIOMotorDatabase) -> None:
    """
    Clear all collections before each test.

    Usage:
        @pytest.mark.usefixtures("clear_collections")
        async def test_something(beanie_db):
            ...
    """
    for model in BEANIE_DOCUMENT_MODELS:
        await model.delete_all()
