# asklunar/history/repositories/base.py
from __future__ import annotations

from datetime import datetime
from typing import Protocol

from asklunar.history.models import ReadingRecord


class ReadingRepository(Protocol):
    """
    Interface for storing finished readings.
    """

    async def create_reading(
        self,
        timestamp: datetime,
        card_name: str,
        card_image: str,
        interpretation: str,
    ) -> ReadingRecord:
        """
        Store a new reading and return the stored record.
        """
        ...

    async def fetch_readings(self, limit: int | None = None) -> list[ReadingRecord]:
        """
        Return stored readings, newest first.
        """
        ...

    async def get_reading(self, reading_id: str) -> ReadingRecord | None:
        """
        Retrieve a single reading by its ID.
        """
        ...

    async def delete_reading(self, reading_id: str) -> bool:
        """
        Delete a reading. Returns True if a record was removed.
        """
        ...
