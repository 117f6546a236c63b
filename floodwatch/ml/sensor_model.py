"""
sensor_model.py — Flood-risk prediction from a single sensor reading.

Sets the ``SensorNode.status`` that the confidence scorer consumes. The
model is a fixed, hand-calibrated decision path (a stand-in for a trained
gradient-boosted tree), so its output is deterministic and explainable:

    water level > 50 cm                          → p = 0.80
    water level > 30 cm                          → p = 0.40
        and rainfall > 20 mm/h                   → p += 0.30
    otherwise                                    → p = 0.10

    p is clipped to [0, 0.99]; flooding when p > 0.75.

Status mapping:
    flooding                 → CRITICAL
    p ≥ 0.40                 → WARNING
    otherwise                → NORMAL
    reading with battery 0   → OFFLINE

A flooding reading is also filed as a verified ``flood`` report at the
sensor location by the HTTP layer, followed by a processing pass.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from floodwatch.alerts.models import SensorNode, SensorReading, SensorStatus
from floodwatch.spatial.geo_math import Coordinates

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Model constants
# ---------------------------------------------------------------------------

WATER_LEVEL_CRITICAL_CM = 50.0
WATER_LEVEL_WARNING_CM = 30.0
RAINFALL_HEAVY_MM_HR = 20.0
FLOOD_PROBABILITY_THRESHOLD = 0.75
WARNING_PROBABILITY = 0.40

# Normalisation caps: water level / 80 cm (≤ 1.2), rainfall / 50 mm/h (≤ 1.0)
FEATURE_SCALE = np.array([80.0, 50.0])
FEATURE_CAP = np.array([1.2, 1.0])
# Relative importance of (water level, rainfall) in the intensity index
FEATURE_WEIGHTS = np.array([0.6, 0.3])


@dataclass(frozen=True)
class SensorPrediction:
    """Model output for one reading."""
    flood_probability: float
    is_flooding: bool
    intensity_index: float  # weighted normalised features, 0 – 1.02
    contributing_factors: List[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "flood_probability": round(self.flood_probability, 3),
            "is_flooding": self.is_flooding,
            "intensity_index": round(self.intensity_index, 3),
            "contributing_factors": list(self.contributing_factors),
            "timestamp": self.timestamp.isoformat(),
        }


def _features(reading: SensorReading) -> np.ndarray:
    raw = np.array([reading.water_level_cm, reading.rainfall_mm_per_hour], dtype=float)
    return np.minimum(np.maximum(raw, 0.0) / FEATURE_SCALE, FEATURE_CAP)


def predict_flood_risk(reading: SensorReading) -> SensorPrediction:
    """Run the decision path on one reading."""
    if reading.water_level_cm > WATER_LEVEL_CRITICAL_CM:
        probability = 0.8
    elif reading.water_level_cm > WATER_LEVEL_WARNING_CM:
        probability = 0.4
        if reading.rainfall_mm_per_hour > RAINFALL_HEAVY_MM_HR:
            probability += 0.3
    else:
        probability = 0.1

    probability = float(np.clip(probability, 0.0, 0.99))
    intensity = float(np.dot(FEATURE_WEIGHTS, _features(reading)))

    factors: List[str] = []
    if reading.water_level_cm > WATER_LEVEL_WARNING_CM:
        factors.append(f"High water level ({reading.water_level_cm:.0f}cm)")
    if reading.rainfall_mm_per_hour > 15:
        factors.append(f"Intense rainfall ({reading.rainfall_mm_per_hour:.0f}mm/hr)")

    return SensorPrediction(
        flood_probability=probability,
        is_flooding=probability > FLOOD_PROBABILITY_THRESHOLD,
        intensity_index=intensity,
        contributing_factors=factors,
        timestamp=reading.timestamp,
    )


def auto_report_description(reading: SensorReading, prediction: SensorPrediction) -> str:
    return (
        f"[IoT AUTO-REPORT] Critical water level {reading.water_level_cm:.1f}cm "
        f"detected. ML Confidence: {prediction.flood_probability * 100:.0f}%"
    )


def status_for(reading: SensorReading, prediction: SensorPrediction) -> SensorStatus:
    if reading.battery_level <= 0:
        return SensorStatus.OFFLINE
    if prediction.is_flooding:
        return SensorStatus.CRITICAL
    if prediction.flood_probability >= WARNING_PROBABILITY:
        return SensorStatus.WARNING
    return SensorStatus.NORMAL


# ---------------------------------------------------------------------------
# In-memory sensor oracle
# ---------------------------------------------------------------------------

class InMemorySensorOracle:
    """Live sensor list; readings are pushed in and re-classified."""

    def __init__(self, nodes: Iterable[SensorNode] = ()) -> None:
        self._nodes: Dict[str, SensorNode] = {n.id: n for n in nodes}
        self._lock = threading.Lock()

    def sensors(self) -> List[SensorNode]:
        with self._lock:
            return list(self._nodes.values())

    def get(self, sensor_id: str) -> Optional[SensorNode]:
        with self._lock:
            return self._nodes.get(sensor_id)

    def apply_reading(
        self, sensor_id: str, reading: SensorReading,
    ) -> Optional[SensorPrediction]:
        """Store a reading and update the node's status; None if unknown."""
        prediction = predict_flood_risk(reading)
        with self._lock:
            node = self._nodes.get(sensor_id)
            if node is None:
                return None
            status = status_for(reading, prediction)
            self._nodes[sensor_id] = dataclasses.replace(
                node, status=status, last_reading=reading,
            )

        level = logging.WARNING if status is SensorStatus.CRITICAL else logging.INFO
        logger.log(
            level,
            "Sensor %s (%s) → %s, p=%.2f",
            sensor_id, node.area_name, status.value, prediction.flood_probability,
            extra={"area_name": node.area_name},
        )
        return prediction


def default_sensor_nodes() -> List[SensorNode]:
    """Demo deployment: simulated gauges at three flood-prone drains."""
    return [
        SensorNode(
            id="sensor-1",
            location=Coordinates(26.1638, 91.7674),
            area_name="Zoo Road (Drain 4)",
            is_simulated=True,
        ),
        SensorNode(
            id="sensor-2",
            location=Coordinates(26.1445, 91.7362),
            area_name="GS Road (Bhangagarh)",
            is_simulated=True,
        ),
        SensorNode(
            id="sensor-3",
            location=Coordinates(26.1872, 91.7384),
            area_name="Fancy Bazar Pump House",
            is_simulated=True,
        ),
    ]
