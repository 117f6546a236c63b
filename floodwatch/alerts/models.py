"""
models.py — Shared data structures for the flood alert decision engine.

Defines:
    • FloodType, Severity, RoadState, SensorStatus, VoteKind — closed enums
    • Report          — a citizen / sensor observation
    • SensorReading, SensorNode — read-only instrumentation input
    • WeatherSnapshot — read-only ambient input
    • Alert           — the central mutable entity (owned by AlertLifecycle)
    • CommunityAction — a suggested action shown with an alert
    • ConfidenceBreakdown — auditable output of the confidence scorer

═══════════════════════════════════════════════════════════════════════════
SEVERITY LADDER
═══════════════════════════════════════════════════════════════════════════

    Severity    Rule (first match wins)                 Initial road state
    ────────    ─────────────────────────────────────   ──────────────────
    critical    confidence ≥ 6  OR  reports ≥ 4         flooded
    high        confidence ≥ 4  OR  reports ≥ 3         flooded
    medium      otherwise                               monitoring

═══════════════════════════════════════════════════════════════════════════
ROAD-STATE MACHINE
═══════════════════════════════════════════════════════════════════════════

               resolved ≥ 1, no confirm in 15 min, rain < 5 mm
    flooded  ───────────────────────────────────────────────▶  monitoring
       ▲                                                            │
       └──────────────────── fresh confirm vote ◀──────────────────┘

    flooded / monitoring ──(resolved ≥ 2, rain < 2 mm)──▶ normal (inactive)
    any ──(manual resolution / follow-up "NO")──▶ inactive
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from floodwatch.spatial.geo_math import Coordinates


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class FloodType(str, Enum):
    """Kind of water hazard a report describes."""
    FLOOD          = "flood"
    WATERLOGGING   = "waterlogging"
    DRAIN_OVERFLOW = "drain_overflow"


class Severity(str, Enum):
    """Alert severity tiers. ``rank`` gives a total order."""
    MEDIUM   = "medium"
    HIGH     = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class RoadState(str, Enum):
    """Community-consensus hazard state of the road around an alert."""
    FLOODED    = "flooded"
    MONITORING = "monitoring"
    NORMAL     = "normal"


class SensorStatus(str, Enum):
    """Status assigned to a sensor node by the prediction model."""
    NORMAL   = "normal"
    WARNING  = "warning"
    CRITICAL = "critical"
    OFFLINE  = "offline"


class VoteKind(str, Enum):
    """Community vote on an alert."""
    CONFIRM  = "confirm"   # still flooded
    RESOLVED = "resolved"  # cleared


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ═══════════════════════════════════════════════════════════════════════════
# Inputs
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class Report:
    """
    A citizen- or sensor-submitted flood observation.

    Reports are immutable once created except for ``is_active``, which is
    cleared when the alert they fed is resolved.

    Attributes
    ----------
    id : str
        Unique identifier.
    type : FloodType
        Hazard kind.
    location : Coordinates
        Where the observation was made.
    area_name : str
        Human-readable area (geocoded at submission when not supplied).
    timestamp : datetime
        Submission time (aware UTC).
    submitter_id : str
        Reporting user or sensor id.
    photo_url : str | None
        Attached photo, if any.
    photo_verified : bool
        True once an external verifier judged the photo to show flooding.
    photo_confidence : float | None
        Verifier confidence in [0, 1].
    """
    id: str
    type: FloodType
    location: Coordinates
    area_name: str
    timestamp: datetime
    submitter_id: str
    description: Optional[str] = None
    photo_url: Optional[str] = None
    photo_verified: bool = False
    photo_confidence: Optional[float] = None
    is_active: bool = True

    def __post_init__(self) -> None:
        if self.photo_confidence is not None and not (0.0 <= self.photo_confidence <= 1.0):
            raise ValueError(
                f"photo_confidence must be in [0, 1], got {self.photo_confidence}"
            )

    @property
    def has_photo(self) -> bool:
        return bool(self.photo_url)

    def is_fresh(self, now: datetime, window: timedelta) -> bool:
        """Active and submitted strictly within ``window`` before ``now``."""
        return self.is_active and self.timestamp > now - window

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "location": self.location.to_dict(),
            "area_name": self.area_name,
            "description": self.description,
            "photo_url": self.photo_url,
            "photo_verified": self.photo_verified,
            "photo_confidence": self.photo_confidence,
            "timestamp": self.timestamp.isoformat(),
            "submitter_id": self.submitter_id,
            "is_active": self.is_active,
        }


@dataclass(frozen=True)
class SensorReading:
    """One reading from a water-level / rain gauge node."""
    water_level_cm: float
    rainfall_mm_per_hour: float
    battery_level: float
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "water_level_cm": self.water_level_cm,
            "rainfall_mm_per_hour": self.rainfall_mm_per_hour,
            "battery_level": self.battery_level,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class SensorNode:
    """A physical sensor; status is set by the prediction collaborator."""
    id: str
    location: Coordinates
    area_name: str
    status: SensorStatus = SensorStatus.NORMAL
    last_reading: Optional[SensorReading] = None
    is_simulated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "location": self.location.to_dict(),
            "area_name": self.area_name,
            "status": self.status.value,
            "last_reading": self.last_reading.to_dict() if self.last_reading else None,
            "is_simulated": self.is_simulated,
        }


@dataclass(frozen=True)
class WeatherSnapshot:
    """Ambient weather at processing time."""
    is_raining: bool
    rainfall_mm: float
    temperature: float
    humidity: float
    last_updated: datetime = field(default_factory=_now)
    description: str = ""
    is_fallback: bool = False  # True when produced by a degraded provider

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_raining": self.is_raining,
            "rainfall_mm": self.rainfall_mm,
            "temperature": self.temperature,
            "humidity": self.humidity,
            "last_updated": self.last_updated.isoformat(),
            "description": self.description,
            "is_fallback": self.is_fallback,
        }


# ═══════════════════════════════════════════════════════════════════════════
# Scoring output
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ConfidenceBreakdown:
    """Additive confidence total and the bonus that produced each point."""
    total: int
    report_count: int
    text_reports: int
    photos_attached: int
    photos_verified: int
    recency_bonus: int
    rainfall_bonus: int
    multiple_reports_bonus: int
    sensor_bonus: int
    confirming_sensor: Optional[str] = None  # area name of the critical sensor
    explanation: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "report_count": self.report_count,
            "text_reports": self.text_reports,
            "photos_attached": self.photos_attached,
            "photos_verified": self.photos_verified,
            "recency_bonus": self.recency_bonus,
            "rainfall_bonus": self.rainfall_bonus,
            "multiple_reports_bonus": self.multiple_reports_bonus,
            "sensor_bonus": self.sensor_bonus,
            "confirming_sensor": self.confirming_sensor,
            "explanation": self.explanation,
        }


# ═══════════════════════════════════════════════════════════════════════════
# Alert
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CommunityAction:
    """A suggested action attached to an alert, lower priority first."""
    type: str  # avoid | alternate | caution | tip
    message: str
    icon: str
    priority: int
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "message": self.message,
            "icon": self.icon,
            "priority": self.priority,
        }


@dataclass
class Alert:
    """
    An area-wide flood alert.

    Mutated only by ``AlertLifecycle``. ``resolved_count`` and
    ``confirmed_count`` tally the current vote of each user in ``votes``.
    """
    type: FloodType
    severity: Severity
    location: Coordinates
    area_name: str
    confidence_score: int
    report_count: int
    triggered_at: datetime
    expires_at: datetime
    road_state: RoadState
    radius: float = 800.0
    notified_users: int = 0
    is_active: bool = True
    suggested_actions: List[str] = field(default_factory=list)
    resolved_count: int = 0
    confirmed_count: int = 0
    monitoring_since: Optional[datetime] = None
    last_confirmed_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    photo_url: Optional[str] = None
    explanation: str = ""
    votes: Dict[str, VoteKind] = field(default_factory=dict)
    id: str = field(default_factory=_new_id)

    def age_seconds(self, now: datetime) -> float:
        return (now - self.triggered_at).total_seconds()

    def is_expired(self, now: datetime) -> bool:
        """Advisory only: whether ``expires_at`` has elapsed."""
        return now >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "severity": self.severity.value,
            "location": self.location.to_dict(),
            "area_name": self.area_name,
            "radius": self.radius,
            "confidence_score": self.confidence_score,
            "report_count": self.report_count,
            "triggered_at": self.triggered_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "notified_users": self.notified_users,
            "is_active": self.is_active,
            "road_state": self.road_state.value,
            "resolved_count": self.resolved_count,
            "confirmed_count": self.confirmed_count,
            "monitoring_since": _iso(self.monitoring_since),
            "last_confirmed_at": _iso(self.last_confirmed_at),
            "resolved_at": _iso(self.resolved_at),
            "suggested_actions": list(self.suggested_actions),
            "photo_url": self.photo_url,
            "explanation": self.explanation,
        }
