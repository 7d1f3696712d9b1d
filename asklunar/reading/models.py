"""
Core reading dataclasses.

This module provides the request-side models for a streaming reading:
- Card and spread selection
- JSON request body construction
- Reading lifecycle states
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class Orientation(Enum):
    """Card orientation in a spread."""
    UPRIGHT = "upright"
    REVERSED = "reversed"


class ReadingState(Enum):
    """Lifecycle of one reading session."""
    IDLE = "idle"
    STREAMING = "streaming"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ReadingParameters:
    """Subject of a reading request: card identity, orientation and spread."""
    card_name: str
    card_id: int = 1
    orientation: Orientation = Orientation.UPRIGHT
    spread_id: str = "spread_01"

    # Fields the server expects but the client does not vary
    card_cname: str | None = None
    card_type: str = "major"
    position: int = 1
    position_name: str = "Current Situation"

    # Local display identity, stored with saved readings but never sent
    card_image: str = ""

    def to_payload(self) -> dict[str, Any]:
        """Build the JSON request body."""
        card = {
            "card_id": self.card_id,
            "card_name": self.card_name,
            "card_cname": self.card_cname or self.card_name,
            "card_type": self.card_type,
            "orientation": self.orientation.value,
        }
        return {
            "cards": [
                {
                    "card": card,
                    "position": self.position,
                    "position_name": self.position_name,
                }
            ],
            "spread_id": self.spread_id,
        }

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> ReadingParameters:
        """Create parameters from the ``reading`` config section."""
        return cls(
            card_name=config["card_name"],
            card_id=config["card_id"],
            orientation=Orientation(config["orientation"]),
            spread_id=config["spread_id"],
            card_cname=config.get("card_cname"),
            card_image=config.get("card_image", ""),
        )
