"""
confidence.py — Transparent additive confidence scoring for a report cluster.

The score is a plain point total, not a probability. Every point can be
traced back to the rule that awarded it, and the explanation string is
rebuilt from the breakdown alone, so a decision can always be audited.

═══════════════════════════════════════════════════════════════════════════
POINT MODEL (defaults)
═══════════════════════════════════════════════════════════════════════════

    Signal                                           Points    Scope
    ───────────────────────────────────────────────  ──────    ───────────
    Each report (text base weight)                   +1        per report
    Report carries a photo                           +1        per report
    That photo verified as flooding                  +1        per report
    Any report submitted in the last 10 minutes      +1        once
    Weather says it is raining                       +1        once
    Cluster holds ≥ 2 reports (corroboration)        +2        once
    A CRITICAL sensor within ±0.005° of centroid     +3        once

Worked example — three flood reports, two with verified photos, raining,
all older than ten minutes, no sensors:

    text 3 + photos 2 + verified 2 + rain 1 + corroboration 2 = 10
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from floodwatch.alerts.models import (
    ConfidenceBreakdown,
    Report,
    SensorNode,
    SensorStatus,
    WeatherSnapshot,
)
from floodwatch.core.config import settings
from floodwatch.spatial.geo_math import Coordinates, centroid

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Weights
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ScoringWeights:
    """Policy constants of the point model."""
    text_report: int = 1
    photo_attached: int = 1
    photo_verified: int = 1
    recent_report: int = 1
    rainfall: int = 1
    multiple_reports: int = 2
    sensor_confirmed: int = 3
    multiple_reports_min: int = 2
    recency_window: timedelta = timedelta(minutes=settings.RECENCY_WINDOW_MINUTES)
    sensor_proximity_deg: float = settings.SENSOR_PROXIMITY_DEGREES


DEFAULT_WEIGHTS = ScoringWeights()


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════

def find_confirming_sensor(
    center: Coordinates,
    sensors: Sequence[SensorNode],
    proximity_deg: float,
) -> Optional[SensorNode]:
    """First CRITICAL sensor inside the ±proximity bounding box of ``center``."""
    for sensor in sensors:
        if sensor.status is not SensorStatus.CRITICAL:
            continue
        if (abs(sensor.location.lat - center.lat) < proximity_deg
                and abs(sensor.location.lng - center.lng) < proximity_deg):
            return sensor
    return None


def build_explanation(breakdown: ConfidenceBreakdown) -> str:
    """Human-readable summary of which bonuses fired, in a fixed order."""
    parts: List[str] = [f"{breakdown.report_count} report(s)"]
    if breakdown.sensor_bonus > 0:
        parts.append(f"Confirmed by IoT sensor ({breakdown.confirming_sensor})")
    if breakdown.photos_attached > 0:
        parts.append(f"{breakdown.photos_attached} photo(s)")
    if breakdown.photos_verified > 0:
        parts.append("AI verified")
    if breakdown.rainfall_bonus > 0:
        parts.append("Rainfall active")
    return " • ".join(parts)


# ═══════════════════════════════════════════════════════════════════════════
# Scoring
# ═══════════════════════════════════════════════════════════════════════════

def score(
    reports: Sequence[Report],
    weather: WeatherSnapshot,
    sensors: Sequence[SensorNode] = (),
    *,
    now: datetime,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> ConfidenceBreakdown:
    """
    Score a cluster of reports.

    Parameters
    ----------
    reports : sequence of Report
        One cluster.
    weather : WeatherSnapshot
        Current ambient weather.
    sensors : sequence of SensorNode
        Live sensor list (read-only).
    now : datetime
        Evaluation time, for the recency bonus.
    weights : ScoringWeights
        Point values.

    Returns
    -------
    ConfidenceBreakdown
    """
    text_reports = 0
    photos_attached = 0
    photos_verified = 0
    recency_bonus = 0

    recent_after = now - weights.recency_window

    for report in reports:
        text_reports += weights.text_report

        if report.has_photo:
            photos_attached += weights.photo_attached
            if report.photo_verified:
                photos_verified += weights.photo_verified

        # once per cluster: the first qualifying report triggers it
        if not recency_bonus and report.timestamp > recent_after:
            recency_bonus = weights.recent_report

    sensor_bonus = 0
    confirming_name: Optional[str] = None
    if reports and sensors:
        center = centroid(r.location for r in reports)
        sensor = find_confirming_sensor(center, sensors, weights.sensor_proximity_deg)
        if sensor is not None:
            sensor_bonus = weights.sensor_confirmed
            confirming_name = sensor.area_name

    rainfall_bonus = weights.rainfall if weather.is_raining else 0

    multiple_reports_bonus = (
        weights.multiple_reports
        if len(reports) >= weights.multiple_reports_min
        else 0
    )

    total = (
        text_reports + photos_attached + photos_verified + recency_bonus
        + rainfall_bonus + multiple_reports_bonus + sensor_bonus
    )

    breakdown = ConfidenceBreakdown(
        total=total,
        report_count=len(reports),
        text_reports=text_reports,
        photos_attached=photos_attached,
        photos_verified=photos_verified,
        recency_bonus=recency_bonus,
        rainfall_bonus=rainfall_bonus,
        multiple_reports_bonus=multiple_reports_bonus,
        sensor_bonus=sensor_bonus,
        confirming_sensor=confirming_name,
    )
    explanation = build_explanation(breakdown)

    logger.debug("Cluster of %d scored %d: %s", len(reports), total, explanation)

    return dataclasses.replace(breakdown, explanation=explanation)
