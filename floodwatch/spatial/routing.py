"""
routing.py — Flood-zone avoidance helpers for route planners.

Routing itself is delegated to a ``RoutePlanner`` collaborator. The only
link to the alert engine is read-only: active alerts become circular
avoidance zones, approximated as polygons.

Detour strategy (when a planner cannot take polygons natively):
    For each zone the path crosses, add a via point 1.5 × radius from the
    zone centre, perpendicular (+90°) to the origin→destination bearing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence

from floodwatch.alerts.collaborators import RoutePlanner
from floodwatch.alerts.models import Alert
from floodwatch.spatial.geo_math import (
    Coordinates,
    bearing,
    circle_polygon,
    haversine_distance,
    offset_point,
)

logger = logging.getLogger(__name__)

DETOUR_RADIUS_FACTOR = 1.5


@dataclass(frozen=True)
class FloodZone:
    center: Coordinates
    radius_m: float
    area_name: str = ""


def zones_from_alerts(alerts: Sequence[Alert]) -> List[FloodZone]:
    return [
        FloodZone(a.location, a.radius, a.area_name)
        for a in alerts
        if a.is_active
    ]


def build_avoid_polygons(
    alerts: Sequence[Alert], segments: int = 16,
) -> List[List[Coordinates]]:
    """Circle-approximated polygons for every active alert."""
    return [
        circle_polygon(zone.center, zone.radius_m, segments)
        for zone in zones_from_alerts(alerts)
    ]


def path_crosses_zone(path: Sequence[Coordinates], zone: FloodZone) -> bool:
    return any(haversine_distance(p, zone.center) < zone.radius_m for p in path)


def detour_via_points(
    origin: Coordinates,
    destination: Coordinates,
    zones: Sequence[FloodZone],
) -> List[Coordinates]:
    heading = bearing(origin, destination)
    return [
        offset_point(zone.center, zone.radius_m * DETOUR_RADIUS_FACTOR, heading + 90.0)
        for zone in zones
    ]


def plan_safe_route(
    planner: RoutePlanner,
    origin: Coordinates,
    destination: Coordinates,
    alerts: Sequence[Alert],
) -> List[Coordinates]:
    """Ask the planner for a path around every active flood zone."""
    polygons = build_avoid_polygons(alerts)
    path = planner.route(origin, destination, polygons)

    crossed = [z for z in zones_from_alerts(alerts) if path_crosses_zone(path, z)]
    if crossed:
        logger.warning(
            "Planned route still crosses %d flood zone(s): %s",
            len(crossed), ", ".join(z.area_name for z in crossed),
        )
    return path
