# asklunar/history/models.py
from __future__ import annotations

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, Field


class ReadingRecord(BaseModel):
    """
    A finished reading kept on the device.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    card_name: str
    card_image: str = ""
    interpretation: str
