"""askLunar streaming reading client."""

from __future__ import annotations

from .reading import ReadingParameters, ReadingService

__all__ = ["ReadingParameters", "ReadingService"]
