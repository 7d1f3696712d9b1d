# asklunar/history/repositories/sql_repo.py
from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import Any

import aiosqlite

from asklunar.history.models import ReadingRecord
from asklunar.history.repositories.base import ReadingRepository

logger = logging.getLogger(__name__)

VALID_RETENTION_POLICIES = ("unlimited", "count_limit", "time_based")


class AsyncSqlRepo(ReadingRepository):
    """
    SQLite implementation of ReadingRepository with configurable retention.
    """

    def __init__(
        self,
        db_path: str = "readings.db",
        persistence_config: dict[str, Any] | None = None
    ):
        self.db_path = db_path
        self._init_lock = asyncio.Lock()
        self._initialized = False
        self._connection_lock = asyncio.Lock()  # Serialize database access
        self._connection: aiosqlite.Connection | None = None

        self.persistence_config = persistence_config or {
            "enabled": True,
            "retention_policy": "unlimited",
            "max_readings": 100,
            "retention_days": 30,
            "clear_on_startup": False
        }

    async def _initialize(self) -> None:
        """
        Lazily create the table and index on first use.
        """
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return

            self._connection = await aiosqlite.connect(self.db_path)
            await self._connection.execute("PRAGMA journal_mode=WAL")
            await self._connection.execute("PRAGMA busy_timeout=30000")

            await self._connection.execute("""
                CREATE TABLE IF NOT EXISTS readings (
                    id TEXT PRIMARY KEY,
                    timestamp TEXT NOT NULL,
                    card_name TEXT NOT NULL,
                    card_image TEXT,
                    interpretation TEXT NOT NULL
                )
            """)
            await self._connection.execute("""
                CREATE INDEX IF NOT EXISTS idx_readings_timestamp
                ON readings(timestamp)
            """)
            await self._connection.commit()

            await self._handle_persistence_on_startup()
            self._initialized = True

    async def close(self) -> None:
        """
        Close the persistent database connection.
        """
        if self._connection:
            await self._connection.close()
            self._connection = None
            self._initialized = False

    async def __aenter__(self) -> AsyncSqlRepo:
        await self._initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _handle_persistence_on_startup(self) -> None:
        """Clear or prune stored readings according to configuration."""
        if self.persistence_config.get("clear_on_startup", False):
            logger.info("clear_on_startup=True, clearing all stored readings")
            await self.clear_all_readings()
        elif self.persistence_config.get("enabled", True):
            await self._apply_retention_policy()

    async def clear_all_readings(self) -> None:
        """Remove every stored reading."""
        if not self._connection:
            raise RuntimeError("Database connection not available")

        async with self._connection_lock:
            await self._connection.execute("DELETE FROM readings")
            await self._connection.commit()
            logger.info("Cleared all stored readings")

    async def _apply_retention_policy(self) -> None:
        policy = self.persistence_config.get("retention_policy", "unlimited")
        if policy == "unlimited":
            return

        if not self._connection:
            raise RuntimeError("Database connection not available")

        async with self._connection_lock:
            if policy == "count_limit":
                await self._connection.execute("""
                    DELETE FROM readings WHERE id NOT IN (
                        SELECT id FROM readings
                        ORDER BY timestamp DESC
                        LIMIT ?
                    )
                """, (self.persistence_config["max_readings"],))
            elif policy == "time_based":
                cutoff = datetime.now(UTC) - timedelta(
                    days=self.persistence_config["retention_days"]
                )
                await self._connection.execute(
                    "DELETE FROM readings WHERE timestamp < ?",
                    (cutoff.isoformat(),),
                )
            await self._connection.commit()

    async def create_reading(
        self,
        timestamp: datetime,
        card_name: str,
        card_image: str,
        interpretation: str,
    ) -> ReadingRecord:
        await self._initialize()

        record = ReadingRecord(
            timestamp=timestamp,
            card_name=card_name,
            card_image=card_image,
            interpretation=interpretation,
        )

        # If persistence is disabled, hand back the record without storing it
        if not self.persistence_config.get("enabled", True):
            return record

        if not self._connection:
            raise RuntimeError("Database connection not available")

        async with self._connection_lock:
            await self._connection.execute("""
                INSERT INTO readings (
                    id, timestamp, card_name, card_image, interpretation
                ) VALUES (?, ?, ?, ?, ?)
            """, (
                record.id,
                record.timestamp.isoformat(),
                record.card_name,
                record.card_image,
                record.interpretation,
            ))
            await self._connection.commit()

        logger.info(f"Saved reading {record.id[:8]}... for {card_name}")
        return record

    async def fetch_readings(self, limit: int | None = None) -> list[ReadingRecord]:
        await self._initialize()

        if not self._connection:
            raise RuntimeError("Database connection not available")

        query = """
            SELECT id, timestamp, card_name, card_image, interpretation
            FROM readings
            ORDER BY timestamp DESC
        """
        params: tuple[Any, ...] = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)

        async with self._connection_lock:
            cursor = await self._connection.execute(query, params)
            rows = await cursor.fetchall()
            await cursor.close()

        return [self._row_to_record(row) for row in rows]

    async def get_reading(self, reading_id: str) -> ReadingRecord | None:
        await self._initialize()

        if not self._connection:
            raise RuntimeError("Database connection not available")

        async with self._connection_lock:
            cursor = await self._connection.execute("""
                SELECT id, timestamp, card_name, card_image, interpretation
                FROM readings WHERE id = ?
            """, (reading_id,))
            row = await cursor.fetchone()
            await cursor.close()

        return self._row_to_record(row) if row else None

    async def delete_reading(self, reading_id: str) -> bool:
        await self._initialize()

        if not self._connection:
            raise RuntimeError("Database connection not available")

        async with self._connection_lock:
            cursor = await self._connection.execute(
                "DELETE FROM readings WHERE id = ?", (reading_id,)
            )
            deleted = cursor.rowcount > 0
            await cursor.close()
            await self._connection.commit()

        return deleted

    @staticmethod
    def _row_to_record(row: Any) -> ReadingRecord:
        return ReadingRecord(
            id=row[0],
            timestamp=datetime.fromisoformat(row[1]),
            card_name=row[2],
            card_image=row[3] or "",
            interpretation=row[4],
        )
