"""
collaborators.py — Contracts for the systems around the decision engine.

The engine never performs network I/O. Everything it needs from the outside
world is either passed in as an already-resolved value (weather snapshot,
sensor list, verified reports) or issued as a fire-and-forget side effect
after a state transition (notifier broadcast).

    Collaborator      Contract                                   Failure policy
    ──────────────    ─────────────────────────────────────────  ─────────────────────────────
    WeatherProvider   get_current(location) → WeatherSnapshot    conservative fallback (rain)
    PhotoVerifier     verify(image) → PhotoVerdict               report stays unverified
    SensorOracle      sensors() → List[SensorNode]               empty list
    Geocoder          reverse_geocode(coords) → str              nearest known area / "Near X"
    Notifier          broadcast(alert, audience) → Broadcast...  logged, never retried
    RoutePlanner      route(origin, dest, avoid_polygons)        n/a (independent of alerts)
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

from floodwatch.alerts.models import Alert, Report, SensorNode, WeatherSnapshot
from floodwatch.core.config import settings
from floodwatch.spatial.geo_math import Coordinates


@dataclass(frozen=True)
class PhotoVerdict:
    """Result of a flood-photo verification."""
    is_flood: bool
    confidence: float

    def __post_init__(self) -> None:
        if not (0.0 <= self.confidence <= 1.0):
            raise ValueError(f"confidence must be in [0, 1], got {self.confidence}")


@dataclass
class BroadcastResult:
    """Outcome of a notifier broadcast."""
    sent_count: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {"sent_count": self.sent_count, "errors": list(self.errors)}


class WeatherProvider(Protocol):
    def get_current(self, location: Coordinates) -> WeatherSnapshot: ...


class PhotoVerifier(Protocol):
    def verify(self, image: bytes) -> PhotoVerdict: ...


class SensorOracle(Protocol):
    def sensors(self) -> List[SensorNode]: ...


class Geocoder(Protocol):
    def reverse_geocode(self, location: Coordinates) -> str: ...


class Notifier(Protocol):
    def broadcast(
        self, alert: Alert, audience: str, message: Optional[str] = None,
    ) -> BroadcastResult: ...


class RoutePlanner(Protocol):
    def route(
        self,
        origin: Coordinates,
        destination: Coordinates,
        avoid_polygons: Sequence[List[Coordinates]],
    ) -> List[Coordinates]: ...


def apply_photo_verdict(
    report: Report,
    verdict: PhotoVerdict,
    *,
    threshold: float = settings.PHOTO_FLOOD_THRESHOLD,
) -> Report:
    """
    Return a copy of ``report`` carrying the verifier's verdict.

    A photo counts as verified only when the verifier says it shows a flood
    with at least ``threshold`` confidence.
    """
    return dataclasses.replace(
        report,
        photo_verified=verdict.is_flood and verdict.confidence >= threshold,
        photo_confidence=verdict.confidence,
    )
