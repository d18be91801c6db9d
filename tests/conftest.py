"""Pytest configuration and fixtures."""

import pytest_asyncio
from tortoise import Tortoise

from tokenshare.core.models import User, UserRole


@pytest_asyncio.fixture(scope="function")
async def db_session():
    """
    Provides a clean in-memory SQLite database for each test function.
    """
    await Tortoise.init(
        db_url="sqlite://:memory:",
        modules={"models": ["tokenshare.core.models"]},
    )
    await Tortoise.generate_schemas()

    yield

    await Tortoise.close_connections()


@pytest_asyncio.fixture
async def admin(db_session) -> User:
    return await User.create(name="Admin", role=UserRole.ADMIN)


@pytest_asyncio.fixture
async def alice(db_session) -> User:
    return await User.create(name="Alice")


@pytest_asyncio.fixture
async def bob(db_session) -> User:
    return await User.create(name="Bob")
