"""
geocoding.py — Reference reverse geocoder over known city areas.

The area name is the alert de-duplication key, so resolution must never
fail. ``KnownAreaGeocoder`` is fully deterministic: it picks the nearest
named area and, when that area is further than the configured threshold
(2 km by default), answers ``"Near <area>"`` instead.

``FallbackGeocoder`` wraps any external geocoder (e.g. an OSM/Nominatim
adapter living outside this package) and degrades to the known-area
lookup when the wrapped service raises or returns an empty name.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

from floodwatch.alerts.collaborators import Geocoder
from floodwatch.core.config import settings
from floodwatch.spatial.geo_math import Coordinates, haversine_distance

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Known areas (Guwahati)
# ═══════════════════════════════════════════════════════════════════════════

GUWAHATI_AREAS: Dict[str, Coordinates] = {
    "GS Road": Coordinates(26.1445, 91.7362),
    "Zoo Road": Coordinates(26.1638, 91.7674),
    "Panbazar": Coordinates(26.1856, 91.7451),
    "Fancy Bazar": Coordinates(26.1872, 91.7384),
    "Paltan Bazar": Coordinates(26.1803, 91.7538),
    "Chandmari": Coordinates(26.1648, 91.7741),
    "Beltola": Coordinates(26.1298, 91.7869),
    "Basistha": Coordinates(26.1208, 91.8024),
    "Dispur": Coordinates(26.1402, 91.7880),
    "Guwahati Railway Station": Coordinates(26.1791, 91.7552),
    "Khanapara": Coordinates(26.1323, 91.8198),
    "Maligaon": Coordinates(26.1556, 91.6906),
    "Bharalumukh": Coordinates(26.1723, 91.7329),
    "Uzanbazar": Coordinates(26.1902, 91.7467),
    "Lachit Nagar": Coordinates(26.1585, 91.7552),
}

GUWAHATI_CENTER = Coordinates(26.1445, 91.7362)

# Dense commercial areas get a larger notification audience estimate
CENTRAL_AREAS = ("Fancy Bazar", "Panbazar", "Paltan Bazar", "GS Road")
CENTRAL_AUDIENCE = 65
OUTER_AUDIENCE = 30

UNKNOWN_AREA = "Unknown Area"


def nearest_area(
    location: Coordinates,
    areas: Dict[str, Coordinates],
) -> Tuple[str, float]:
    """Return ``(name, distance_m)`` of the nearest known area."""
    best_name = UNKNOWN_AREA
    best_dist = float("inf")
    for name, center in areas.items():
        dist = haversine_distance(location, center)
        if dist < best_dist:
            best_name, best_dist = name, dist
    return best_name, best_dist


class KnownAreaGeocoder:
    """Deterministic nearest-named-area geocoder."""

    def __init__(
        self,
        areas: Optional[Dict[str, Coordinates]] = None,
        *,
        near_threshold_m: Optional[float] = None,
    ) -> None:
        self.areas = dict(areas if areas is not None else GUWAHATI_AREAS)
        self.near_threshold_m = (
            near_threshold_m
            if near_threshold_m is not None
            else settings.NEAR_AREA_THRESHOLD_METERS
        )

    def reverse_geocode(self, location: Coordinates) -> str:
        name, dist = nearest_area(location, self.areas)
        if name == UNKNOWN_AREA:
            return name
        if dist > self.near_threshold_m:
            return f"Near {name}"
        return name

    def estimate_audience(self, location: Coordinates) -> int:
        """Deterministic estimate of users reached by an alert here."""
        name, _ = nearest_area(location, self.areas)
        return CENTRAL_AUDIENCE if name in CENTRAL_AREAS else OUTER_AUDIENCE


class FallbackGeocoder:
    """Wrap an external geocoder; degrade to a deterministic one on failure."""

    def __init__(
        self,
        primary: Geocoder,
        fallback: Optional[KnownAreaGeocoder] = None,
    ) -> None:
        self.primary = primary
        self.fallback = fallback or KnownAreaGeocoder()

    def reverse_geocode(self, location: Coordinates) -> str:
        try:
            name = self.primary.reverse_geocode(location)
        except Exception as exc:
            logger.warning(
                "Geocoder unavailable (%s); using known-area fallback for %.5f,%.5f",
                exc, location.lat, location.lng,
            )
            return self.fallback.reverse_geocode(location)

        if not name or not name.strip():
            logger.warning("Geocoder returned empty area name; using fallback")
            return self.fallback.reverse_geocode(location)
        return name.strip()

    def estimate_audience(self, location: Coordinates) -> int:
        return self.fallback.estimate_audience(location)
