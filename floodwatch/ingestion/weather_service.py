"""
weather_service.py — Weather snapshot providers.

The engine consumes a ``WeatherSnapshot`` that the surrounding layer has
already resolved. This module holds the reference providers the HTTP layer
uses to produce one.

Error Handling Strategy
========================
A missing weather reading must never suppress an alert. False negatives
(silence during a flood) are worse than false positives, so every failure
of the wrapped provider degrades to a *conservative* snapshot:

    is_raining   = True     (rain bonus still applies)
    rainfall_mm  = 10.0     (moderate: blocks vote-driven downgrades,
                             since monitoring needs < 5 mm and resolve < 2 mm)
    temperature  = 27.0
    humidity     = 80.0
    is_fallback  = True

Vendor adapters (Open-Meteo etc.) are out of scope; they only need to
implement ``get_current(location)`` and may raise on failure.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from datetime import datetime, timezone
from typing import Optional

from floodwatch.alerts.collaborators import WeatherProvider
from floodwatch.alerts.models import WeatherSnapshot
from floodwatch.spatial.geo_math import Coordinates

logger = logging.getLogger(__name__)

FALLBACK_RAINFALL_MM = 10.0
FALLBACK_TEMPERATURE_C = 27.0
FALLBACK_HUMIDITY_PCT = 80.0


def fallback_weather(reason: str = "") -> WeatherSnapshot:
    """Conservative snapshot used whenever real weather is unavailable."""
    description = "Weather data unavailable - using estimate"
    if reason:
        description = f"{description} ({reason})"
    return WeatherSnapshot(
        is_raining=True,
        rainfall_mm=FALLBACK_RAINFALL_MM,
        temperature=FALLBACK_TEMPERATURE_C,
        humidity=FALLBACK_HUMIDITY_PCT,
        last_updated=datetime.now(timezone.utc),
        description=description,
        is_fallback=True,
    )


class StaticWeatherProvider:
    """
    Holds a manually set snapshot (demo mode, tests, operator override).

    ``update`` merges partial changes and stamps ``last_updated``.
    """

    def __init__(self, snapshot: Optional[WeatherSnapshot] = None) -> None:
        self._snapshot = snapshot or WeatherSnapshot(
            is_raining=True,
            rainfall_mm=12.5,
            temperature=28.0,
            humidity=85.0,
            description="Light to moderate rain",
        )
        self._lock = threading.Lock()

    def get_current(self, location: Coordinates) -> WeatherSnapshot:
        with self._lock:
            return self._snapshot

    def update(self, **changes) -> WeatherSnapshot:
        changes.setdefault("last_updated", datetime.now(timezone.utc))
        with self._lock:
            self._snapshot = dataclasses.replace(self._snapshot, **changes)
            snapshot = self._snapshot
        logger.info(
            "Weather updated: raining=%s rainfall=%.1fmm",
            snapshot.is_raining, snapshot.rainfall_mm,
        )
        return snapshot


class FallbackWeatherProvider:
    """Wrap a provider; any failure yields ``fallback_weather``."""

    def __init__(self, primary: WeatherProvider) -> None:
        self.primary = primary

    def get_current(self, location: Coordinates) -> WeatherSnapshot:
        try:
            return self.primary.get_current(location)
        except Exception as exc:
            logger.warning(
                "Weather provider unavailable (%s); using conservative fallback",
                exc,
            )
            return fallback_weather(type(exc).__name__)
