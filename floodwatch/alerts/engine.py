"""
engine.py — Processing-pass orchestration for the flood alert system.

This is the single entry point the surrounding layer calls whenever new
reports or fresh weather arrive:

    engine.process_reports(weather=..., sensors=...)

═══════════════════════════════════════════════════════════════════════════
PROCESSING PASS (admission gate)
═══════════════════════════════════════════════════════════════════════════

    ┌─────────────────────┐
    │ 1. Freshness filter │  is_active and timestamp > now − 2 h
    └─────────┬───────────┘
              ▼
    ┌─────────────────────┐
    │ 2. Cluster          │  greedy seed-based, 500 m
    └─────────┬───────────┘
              ▼
    ┌─────────────────────┐
    │ 3. Size gate        │  ≥ 2 reports, else decision trace + skip
    └─────────┬───────────┘
              ▼
    ┌─────────────────────┐
    │ 4. Score + gate     │  confidence ≥ 3, else decision trace + skip
    └─────────┬───────────┘
              ▼
    ┌─────────────────────┐
    │ 5. Centroid → area  │  geocoder (never fails)
    └─────────┬───────────┘
              ▼
    ┌─────────────────────┐
    │ 6/7. Upsert alert   │  update in place or create + schedule follow-up
    └─────────┬───────────┘
              ▼
    ┌─────────────────────┐
    │ Notify (after lock) │  created or changed only, failures logged
    └─────────────────────┘

═══════════════════════════════════════════════════════════════════════════
CONCURRENCY
═══════════════════════════════════════════════════════════════════════════

Every mutating entry point (processing pass, votes, follow-up answers,
manual resolution, timer callbacks) runs under one re-entrant lock; at most
one alert per area is active at any time.
Expected load is tens of reports per minute. Notifier calls are made after
the lock is released.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from floodwatch.alerts.channels.log_notifier import (
    AUDIENCE_FOLLOW_UP,
    AUDIENCE_NEARBY,
    LogNotifier,
    broadcast_safely,
)
from floodwatch.alerts.clustering import cluster
from floodwatch.alerts.collaborators import Geocoder, Notifier
from floodwatch.alerts.confidence import DEFAULT_WEIGHTS, ScoringWeights, score
from floodwatch.alerts.lifecycle import (
    AlertLifecycle,
    ExpiryPolicy,
    LifecyclePolicy,
    UpsertOutcome,
    alert_message,
    build_expiry_policy,
    follow_up_prompt,
)
from floodwatch.alerts.models import (
    Alert,
    FloodType,
    Report,
    SensorNode,
    VoteKind,
    WeatherSnapshot,
)
from floodwatch.alerts.store import AlertStore, ReportStore
from floodwatch.core.config import Settings, settings as default_settings
from floodwatch.core.scheduler import Clock, ThreadingTimerService, TimerService, utc_now
from floodwatch.spatial.geo_math import Coordinates, centroid
from floodwatch.spatial.geocoding import KnownAreaGeocoder
from floodwatch.spatial.routing import build_avoid_polygons

logger = logging.getLogger(__name__)

# (alert, audience, message) queued for dispatch once the lock is released
_Outgoing = Tuple[Alert, str, str]


class AlertEngine:
    """
    Ties clustering, scoring and the alert lifecycle together.

    Every collaborator is injected; defaults give a self-contained
    in-memory engine suitable for demos and tests.
    """

    def __init__(
        self,
        *,
        store: Optional[AlertStore] = None,
        reports: Optional[ReportStore] = None,
        geocoder: Optional[Geocoder] = None,
        notifier: Optional[Notifier] = None,
        timer: Optional[TimerService] = None,
        clock: Clock = utc_now,
        config: Settings = default_settings,
        weights: ScoringWeights = DEFAULT_WEIGHTS,
        expiry_policy: Optional[ExpiryPolicy] = None,
    ) -> None:
        self.config = config
        self.store = store if store is not None else AlertStore()
        self.reports = reports if reports is not None else ReportStore()
        self.geocoder = geocoder or KnownAreaGeocoder(
            near_threshold_m=config.NEAR_AREA_THRESHOLD_METERS,
        )
        self.notifier = notifier or LogNotifier()
        self.timer = timer or ThreadingTimerService()
        self.clock = clock
        self.weights = weights
        self.lifecycle = AlertLifecycle(
            self.store,
            reports=self.reports,
            policy=LifecyclePolicy.from_settings(config),
            expiry_policy=expiry_policy or build_expiry_policy(config.EXPIRY_POLICY),
        )
        self._lock = threading.RLock()

    @property
    def staleness_window(self) -> timedelta:
        return timedelta(minutes=self.config.REPORT_STALENESS_MINUTES)

    # ═══════════════════════════════════════════════════════════════════
    # Report intake
    # ═══════════════════════════════════════════════════════════════════

    def submit_report(
        self,
        type: FloodType,
        location: Coordinates,
        *,
        submitter_id: str,
        area_name: Optional[str] = None,
        description: Optional[str] = None,
        photo_url: Optional[str] = None,
        photo_verified: bool = False,
        photo_confidence: Optional[float] = None,
    ) -> Report:
        """Create and store a report; area name is geocoded when omitted."""
        report = Report(
            id=str(uuid.uuid4()),
            type=type,
            location=location,
            area_name=area_name or self.geocoder.reverse_geocode(location),
            timestamp=self.clock(),
            submitter_id=submitter_id,
            description=description,
            photo_url=photo_url,
            photo_verified=photo_verified,
            photo_confidence=photo_confidence,
        )
        with self._lock:
            self.reports.add(report)

        logger.info(
            "Report %s received: %s at %.5f,%.5f",
            report.id, report.type.value, location.lat, location.lng,
            extra={"area_name": report.area_name},
        )
        return report

    def fresh_reports(self) -> List[Report]:
        with self._lock:
            return self.reports.fresh(self.clock(), self.staleness_window)

    # ═══════════════════════════════════════════════════════════════════
    # Processing pass
    # ═══════════════════════════════════════════════════════════════════

    def process_reports(
        self,
        weather: WeatherSnapshot,
        sensors: Sequence[SensorNode] = (),
        reports: Optional[Sequence[Report]] = None,
    ) -> List[Alert]:
        """
        Run one processing pass and return the current active alerts.

        Parameters
        ----------
        weather : WeatherSnapshot
            Already-resolved ambient weather.
        sensors : sequence of SensorNode
            Live sensor list from the oracle.
        reports : sequence of Report, optional
            Reports to consider; defaults to the engine's own report log.
        """
        outgoing: List[_Outgoing] = []

        with self._lock:
            now = self.clock()
            self.lifecycle.sweep_expired(now)

            candidates = self.reports.all() if reports is None else list(reports)
            fresh = [r for r in candidates if r.is_fresh(now, self.staleness_window)]

            if not fresh:
                logger.debug("Processing pass: no fresh reports")
            else:
                groups = cluster(fresh, self.config.CLUSTER_RADIUS_METERS)
                logger.debug(
                    "Processing pass: %d fresh report(s) in %d cluster(s)",
                    len(fresh), len(groups),
                )
                for group in groups:
                    result = self._admit(group, weather, sensors, now)
                    if result is not None:
                        outgoing.append(result)

            active = self.store.active()

        for alert, audience, message in outgoing:
            broadcast_safely(self.notifier, alert, audience, message)

        return active

    def _admit(
        self,
        group: List[Report],
        weather: WeatherSnapshot,
        sensors: Sequence[SensorNode],
        now: datetime,
    ) -> Optional[_Outgoing]:
        """Admission gate for one cluster. Caller holds the lock."""
        seed = group[0]

        if len(group) < self.config.MIN_REPORTS_FOR_ALERT:
            logger.info(
                "Cluster at %s rejected: %d report(s) < minimum %d",
                seed.area_name, len(group), self.config.MIN_REPORTS_FOR_ALERT,
                extra={"area_name": seed.area_name, "report_count": len(group)},
            )
            return None

        breakdown = score(group, weather, sensors, now=now, weights=self.weights)
        if breakdown.total < self.config.CONFIDENCE_THRESHOLD:
            logger.info(
                "Cluster at %s rejected: confidence %d < threshold %d (%s)",
                seed.area_name, breakdown.total, self.config.CONFIDENCE_THRESHOLD,
                breakdown.explanation,
                extra={"area_name": seed.area_name, "confidence": breakdown.total},
            )
            return None

        location = centroid(r.location for r in group)
        area_name = self.geocoder.reverse_geocode(location)

        estimate = getattr(self.geocoder, "estimate_audience", None)
        audience_size = estimate(location) if callable(estimate) else 0

        alert, outcome = self.lifecycle.upsert(
            group, breakdown,
            area_name=area_name,
            location=location,
            now=now,
            notified_users=audience_size,
        )

        if outcome is UpsertOutcome.UNCHANGED:
            return None
        if outcome is UpsertOutcome.CREATED:
            self._schedule_follow_up(alert)

        return alert, AUDIENCE_NEARBY, alert_message(alert)

    # ═══════════════════════════════════════════════════════════════════
    # Follow-up
    # ═══════════════════════════════════════════════════════════════════

    def _schedule_follow_up(self, alert: Alert) -> None:
        # One-shot; a resolved alert turns the callback into a no-op.
        delay = self.lifecycle.policy.follow_up_delay.total_seconds()
        alert_id = alert.id
        self.timer.schedule_once(delay, lambda: self.send_follow_up(alert_id))

    def send_follow_up(self, alert_id: str) -> bool:
        """Timer callback: send the "still ongoing?" prompt if due."""
        with self._lock:
            alert = self.lifecycle.claim_follow_up(alert_id, self.clock())
        if alert is None:
            logger.debug("Follow-up for %s skipped", alert_id)
            return False

        broadcast_safely(
            self.notifier, alert, AUDIENCE_FOLLOW_UP, follow_up_prompt(alert),
        )
        return True

    def respond_to_follow_up(self, alert_id: str, still_ongoing: bool) -> bool:
        with self._lock:
            return self.lifecycle.respond_to_follow_up(
                alert_id, still_ongoing, self.clock(),
            )

    # ═══════════════════════════════════════════════════════════════════
    # Votes / resolution
    # ═══════════════════════════════════════════════════════════════════

    def cast_vote(
        self,
        alert_id: str,
        user_id: str,
        kind: VoteKind,
        weather: WeatherSnapshot,
    ) -> bool:
        with self._lock:
            return self.lifecycle.cast_vote(
                alert_id, user_id, kind, weather, self.clock(),
            )

    def resolve(self, alert_id: str) -> bool:
        with self._lock:
            return self.lifecycle.resolve(alert_id, self.clock())

    # ═══════════════════════════════════════════════════════════════════
    # Queries
    # ═══════════════════════════════════════════════════════════════════

    def get_alert(self, alert_id: str) -> Optional[Alert]:
        with self._lock:
            return self.store.get(alert_id)

    def active_alerts(self) -> List[Alert]:
        with self._lock:
            return self.store.active()

    def alert_history(self) -> List[Alert]:
        with self._lock:
            return self.store.history()

    def avoidance_polygons(self, segments: int = 16) -> List[List[Coordinates]]:
        """Read-only export of active alert zones for route planners."""
        with self._lock:
            return build_avoid_polygons(self.store.active(), segments)
