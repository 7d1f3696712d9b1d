#!/usr/bin/env python3
"""Test script for the SQLite reading store and its persistence configuration."""

import sqlite3
from datetime import UTC, datetime, timedelta

import pytest

from asklunar.history.repositories.sql_repo import AsyncSqlRepo


def persistence(**overrides):
    config = {
        "enabled": True,
        "retention_policy": "unlimited",
        "max_readings": 100,
        "retention_days": 30,
        "clear_on_startup": False,
    }
    config.update(overrides)
    return config


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "readings.db")


async def save(repo, card_name, minutes_ago=0, interpretation="A reading"):
    return await repo.create_reading(
        timestamp=datetime.now(UTC) - timedelta(minutes=minutes_ago),
        card_name=card_name,
        card_image=f"{card_name}.png",
        interpretation=interpretation,
    )


class TestCrud:
    """Create, fetch, get and delete."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, db_path):
        async with AsyncSqlRepo(db_path, persistence()) as repo:
            record = await save(repo, "The Fool", interpretation="New beginnings")

            loaded = await repo.get_reading(record.id)
            assert loaded == record
            assert loaded.timestamp.tzinfo is not None

    @pytest.mark.asyncio
    async def test_fetch_newest_first(self, db_path):
        async with AsyncSqlRepo(db_path, persistence()) as repo:
            await save(repo, "The Magician", minutes_ago=10)
            await save(repo, "The Fool", minutes_ago=20)
            await save(repo, "The Lovers", minutes_ago=0)

            names = [r.card_name for r in await repo.fetch_readings()]
            assert names == ["The Lovers", "The Magician", "The Fool"]

            [latest] = await repo.fetch_readings(limit=1)
            assert latest.card_name == "The Lovers"

    @pytest.mark.asyncio
    async def test_delete(self, db_path):
        async with AsyncSqlRepo(db_path, persistence()) as repo:
            record = await save(repo, "Death")

            assert await repo.delete_reading(record.id) is True
            assert await repo.delete_reading(record.id) is False
            assert await repo.get_reading(record.id) is None

    @pytest.mark.asyncio
    async def test_get_missing(self, db_path):
        async with AsyncSqlRepo(db_path, persistence()) as repo:
            assert await repo.get_reading("no-such-id") is None

    @pytest.mark.asyncio
    async def test_readings_survive_reopen(self, db_path):
        async with AsyncSqlRepo(db_path, persistence()) as repo:
            record = await save(repo, "The Star")

        async with AsyncSqlRepo(db_path, persistence()) as repo:
            assert (await repo.get_reading(record.id)).card_name == "The Star"


class TestPersistenceConfig:
    """enabled, clear_on_startup and retention policies."""

    @pytest.mark.asyncio
    async def test_persistence_disabled(self, db_path):
        async with AsyncSqlRepo(db_path, persistence(enabled=False)) as repo:
            record = await save(repo, "The Moon")

            assert record.card_name == "The Moon"
            assert await repo.fetch_readings() == []

    @pytest.mark.asyncio
    async def test_clear_on_startup(self, db_path):
        async with AsyncSqlRepo(db_path, persistence()) as repo:
            await save(repo, "The Sun")

        async with AsyncSqlRepo(db_path, persistence(clear_on_startup=True)) as repo:
            assert await repo.fetch_readings() == []

    @pytest.mark.asyncio
    async def test_count_limit_applied_on_startup(self, db_path):
        async with AsyncSqlRepo(db_path, persistence()) as repo:
            for i in range(5):
                await save(repo, f"Card {i}", minutes_ago=i)

        config = persistence(retention_policy="count_limit", max_readings=2)
        async with AsyncSqlRepo(db_path, config) as repo:
            names = [r.card_name for r in await repo.fetch_readings()]
            assert names == ["Card 0", "Card 1"]

    @pytest.mark.asyncio
    async def test_time_based_retention(self, db_path):
        async with AsyncSqlRepo(db_path, persistence()) as repo:
            await save(repo, "Old", minutes_ago=60 * 24 * 10)
            await save(repo, "Recent")

        config = persistence(retention_policy="time_based", retention_days=1)
        async with AsyncSqlRepo(db_path, config) as repo:
            names = [r.card_name for r in await repo.fetch_readings()]
            assert names == ["Recent"]

    @pytest.mark.asyncio
    async def test_schema(self, db_path):
        async with AsyncSqlRepo(db_path, persistence()) as repo:
            await save(repo, "The Tower")

        with sqlite3.connect(db_path) as conn:
            columns = [row[1] for row in conn.execute("PRAGMA table_info(readings)")]
        assert columns == ["id", "timestamp", "card_name", "card_image", "interpretation"]
