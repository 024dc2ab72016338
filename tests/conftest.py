"""Shared fixtures: a throwaway SQLite database per test."""

import pytest

from kitebot.db import close_db_connection, connect_to_db


@pytest.fixture
async def db(tmp_path):
    factory = await connect_to_db(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    yield factory
    await close_db_connection()
