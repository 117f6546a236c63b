"""
lifecycle.py — Alert creation, severity, road-state machine, follow-ups, expiry.

This module owns every mutation of an ``Alert``. The clusterer and the
confidence scorer only read; the engine only calls in here.

═══════════════════════════════════════════════════════════════════════════
CREATE / UPDATE
═══════════════════════════════════════════════════════════════════════════

    active alert for area?  ── yes ──▶ overwrite confidence, report count,
            │                          severity (triggered_at / road_state kept);
            │                          re-broadcast only if one of them changed
            no
            ▼
    new Alert: severity ladder, radius 800 m, expires now + 60 min,
               road state flooded (high/critical) or monitoring (medium),
               vote tallies zero, suggested actions from severity

═══════════════════════════════════════════════════════════════════════════
COMMUNITY VOTES
═══════════════════════════════════════════════════════════════════════════

Each user holds at most one active vote per alert. Switching moves the
tally (old bucket −1, new bucket +1). After the tally, the road state is
evaluated once, at vote time:

    1. confirm vote while monitoring               → flooded
       (a confirm never clears the alert)
    2. resolved ≥ 2 and rainfall < 2 mm            → normal, alert inactive
    3. flooded, resolved ≥ 1, no confirm in the
       last 15 min, rainfall < 5 mm                → monitoring

Clearing fully needs stronger consensus than downgrading to cautious.

═══════════════════════════════════════════════════════════════════════════
FOLLOW-UP
═══════════════════════════════════════════════════════════════════════════

One prompt per new alert, 60 s after ``triggered_at``. "Still ongoing?"
    NO  → manual resolution (bypasses vote thresholds)
    YES → expires_at = now + 30 min
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from floodwatch.alerts.models import (
    Alert,
    CommunityAction,
    ConfidenceBreakdown,
    FloodType,
    Report,
    RoadState,
    Severity,
    VoteKind,
    WeatherSnapshot,
)
from floodwatch.alerts.store import AlertStore, ReportStore
from floodwatch.core.config import Settings, settings as default_settings
from floodwatch.spatial.geo_math import Coordinates

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Policy
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class LifecyclePolicy:
    """Time windows and thresholds of the alert lifecycle."""
    alert_radius_m: float = 800.0
    alert_duration: timedelta = timedelta(minutes=60)
    follow_up_delay: timedelta = timedelta(seconds=60)
    follow_up_extension: timedelta = timedelta(minutes=30)
    confirm_stale_after: timedelta = timedelta(minutes=15)
    min_resolved_for_monitoring: int = 1
    min_resolved_for_normal: int = 2
    monitoring_max_rainfall_mm: float = 5.0
    resolve_max_rainfall_mm: float = 2.0

    @classmethod
    def from_settings(cls, cfg: Settings) -> "LifecyclePolicy":
        return cls(
            alert_radius_m=cfg.ALERT_RADIUS_METERS,
            alert_duration=timedelta(minutes=cfg.ALERT_DURATION_MINUTES),
            follow_up_delay=timedelta(seconds=cfg.FOLLOW_UP_DELAY_SECONDS),
            follow_up_extension=timedelta(minutes=cfg.FOLLOW_UP_EXTENSION_MINUTES),
            confirm_stale_after=timedelta(minutes=cfg.CONFIRM_STALE_MINUTES),
            min_resolved_for_monitoring=cfg.MIN_RESOLVED_FOR_MONITORING,
            min_resolved_for_normal=cfg.MIN_RESOLVED_FOR_NORMAL,
            monitoring_max_rainfall_mm=cfg.MONITORING_MAX_RAINFALL_MM,
            resolve_max_rainfall_mm=cfg.RESOLVE_MAX_RAINFALL_MM,
        )


# ═══════════════════════════════════════════════════════════════════════════
# Pure classification
# ═══════════════════════════════════════════════════════════════════════════

class UpsertOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


def determine_severity(confidence: int, report_count: int) -> Severity:
    """
    Severity ladder, first match wins.

    Examples
    --------
    >>> determine_severity(2, 4).value
    'critical'
    >>> determine_severity(3, 2).value
    'medium'
    """
    if confidence >= 6 or report_count >= 4:
        return Severity.CRITICAL
    if confidence >= 4 or report_count >= 3:
        return Severity.HIGH
    return Severity.MEDIUM


def initial_road_state(severity: Severity) -> RoadState:
    if severity is Severity.CRITICAL or severity is Severity.HIGH:
        return RoadState.FLOODED
    if severity is Severity.MEDIUM:
        return RoadState.MONITORING
    raise ValueError(f"Unhandled severity: {severity!r}")


def generate_community_actions(
    severity: Severity, area_name: str,
) -> List[CommunityAction]:
    """Suggested actions for an alert, highest priority first."""
    actions: List[CommunityAction] = []

    if severity is Severity.CRITICAL:
        actions.append(CommunityAction(
            type="avoid",
            message=f"⚠️ Avoid {area_name} - severe flooding reported",
            icon="🚫",
            priority=1,
        ))
        actions.append(CommunityAction(
            type="alternate",
            message="Use alternate routes via elevated roads",
            icon="🛣️",
            priority=2,
        ))

    if severity in (Severity.HIGH, Severity.CRITICAL):
        actions.append(CommunityAction(
            type="caution",
            message="Pedestrians: Exercise extreme caution near drains",
            icon="👟",
            priority=3,
        ))

    actions.append(CommunityAction(
        type="tip",
        message="Check water level before crossing low-lying areas",
        icon="💡",
        priority=4,
    ))
    actions.append(CommunityAction(
        type="tip",
        message="Report updates to help your community",
        icon="📱",
        priority=5,
    ))

    return sorted(actions, key=lambda a: a.priority)


def dominant_flood_type(reports: Sequence[Report]) -> FloodType:
    """Most frequent report type; ties go to the type seen first."""
    if not reports:
        return FloodType.FLOOD
    counts = Counter(r.type for r in reports)
    return counts.most_common(1)[0][0]


def ground_photo(reports: Sequence[Report]) -> Optional[str]:
    """First verified photo in the cluster, else the first photo at all."""
    for report in reports:
        if report.has_photo and report.photo_verified:
            return report.photo_url
    for report in reports:
        if report.has_photo:
            return report.photo_url
    return None


def should_send_follow_up(
    alert: Alert,
    last_prompt_time: Optional[datetime],
    now: datetime,
    *,
    delay: timedelta = timedelta(seconds=60),
) -> bool:
    """
    Whether a "still ongoing?" prompt may go out now.

    Never for a resolved alert, never before the alert is ``delay`` old,
    and at most once per ``delay``.
    """
    if not alert.is_active:
        return False
    if now - alert.triggered_at < delay:
        return False
    if last_prompt_time is None:
        return True
    return last_prompt_time < now - delay


def follow_up_prompt(alert: Alert) -> str:
    return (
        f"🔔 Update Request: Is flooding still ongoing near {alert.area_name}? "
        "Your response helps keep the community informed."
    )


def alert_message(alert: Alert) -> str:
    """Formatted broadcast text for a created or updated alert."""
    kind = alert.type.value.replace("_", " ")
    lines = [
        f"🚨 {alert.severity.value.upper()} ALERT: {kind} in {alert.area_name}",
        f"Confidence {alert.confidence_score} from {alert.report_count} report(s)"
        + (f" ({alert.explanation})" if alert.explanation else ""),
    ]
    lines.extend(f"• {action}" for action in alert.suggested_actions)
    return "\n".join(lines)


# ═══════════════════════════════════════════════════════════════════════════
# Expiry policies
# ═══════════════════════════════════════════════════════════════════════════

class ExpiryPolicy(Protocol):
    def expired(self, alerts: Sequence[Alert], now: datetime) -> List[Alert]: ...


class AdvisoryExpiryPolicy:
    """``expires_at`` is display metadata only; nothing is ever expired."""

    def expired(self, alerts: Sequence[Alert], now: datetime) -> List[Alert]:
        return []


class HardExpiryPolicy:
    """Deactivate alerts once ``expires_at`` has elapsed."""

    def expired(self, alerts: Sequence[Alert], now: datetime) -> List[Alert]:
        return [a for a in alerts if a.is_active and a.is_expired(now)]


def build_expiry_policy(name: str) -> ExpiryPolicy:
    policies = {
        "advisory": AdvisoryExpiryPolicy,
        "hard": HardExpiryPolicy,
    }
    try:
        return policies[name.lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown expiry policy {name!r}; expected one of {sorted(policies)}"
        ) from None


# ═══════════════════════════════════════════════════════════════════════════
# State machine
# ═══════════════════════════════════════════════════════════════════════════

class AlertLifecycle:
    """
    Owner of every alert mutation.

    Parameters
    ----------
    store : AlertStore
        Injected alert container.
    reports : ReportStore | None
        When given, reports around a resolved alert are deactivated.
    policy : LifecyclePolicy
        Windows and thresholds.
    expiry_policy : ExpiryPolicy
        Advisory (default) or hard expiry.
    """

    def __init__(
        self,
        store: AlertStore,
        *,
        reports: Optional[ReportStore] = None,
        policy: Optional[LifecyclePolicy] = None,
        expiry_policy: Optional[ExpiryPolicy] = None,
    ) -> None:
        self.store = store
        self.reports = reports
        self.policy = policy or LifecyclePolicy.from_settings(default_settings)
        self.expiry_policy = expiry_policy or build_expiry_policy(
            default_settings.EXPIRY_POLICY
        )
        self._follow_up_prompts: Dict[str, datetime] = {}

    # ── Create / update ──────────────────────────────────────────────────

    def upsert(
        self,
        cluster: Sequence[Report],
        breakdown: ConfidenceBreakdown,
        *,
        area_name: str,
        location: Coordinates,
        now: datetime,
        notified_users: int = 0,
    ) -> Tuple[Alert, UpsertOutcome]:
        """
        Merge an admitted cluster into the active alert for its area, or
        create one. Returns ``(alert, outcome)``; an update that leaves
        confidence, report count and severity as they were is UNCHANGED.
        """
        severity = determine_severity(breakdown.total, len(cluster))

        existing = self.store.active_for_area(area_name)
        if existing is not None:
            if (existing.confidence_score == breakdown.total
                    and existing.report_count == len(cluster)
                    and existing.severity is severity):
                existing.explanation = breakdown.explanation
                return existing, UpsertOutcome.UNCHANGED

            existing.confidence_score = breakdown.total
            existing.report_count = len(cluster)
            existing.severity = severity
            existing.explanation = breakdown.explanation
            logger.info(
                "Updated alert %s: confidence=%d reports=%d severity=%s",
                existing.id, breakdown.total, len(cluster), severity.value,
                extra={"area_name": area_name, "alert_id": existing.id},
            )
            return existing, UpsertOutcome.UPDATED

        actions = generate_community_actions(severity, area_name)
        alert = Alert(
            type=dominant_flood_type(cluster),
            severity=severity,
            location=location,
            area_name=area_name,
            radius=self.policy.alert_radius_m,
            confidence_score=breakdown.total,
            report_count=len(cluster),
            triggered_at=now,
            expires_at=now + self.policy.alert_duration,
            notified_users=notified_users,
            road_state=initial_road_state(severity),
            suggested_actions=[a.message for a in actions],
            photo_url=ground_photo(cluster),
            explanation=breakdown.explanation,
        )
        self.store.add(alert)

        logger.info(
            "Created %s alert %s (%s, confidence=%d, reports=%d, road=%s)",
            severity.value, alert.id, alert.type.value, breakdown.total,
            len(cluster), alert.road_state.value,
            extra={
                "area_name": area_name,
                "alert_id": alert.id,
                "confidence": breakdown.total,
                "severity": severity.value,
            },
        )
        return alert, UpsertOutcome.CREATED

    # ── Votes ────────────────────────────────────────────────────────────

    def cast_vote(
        self,
        alert_id: str,
        user_id: str,
        kind: VoteKind,
        weather: WeatherSnapshot,
        now: datetime,
    ) -> bool:
        """
        Record a community vote and re-evaluate the road state.

        Returns False (no exception) for an unknown or inactive alert.
        """
        alert = self.store.get(alert_id)
        if alert is None or not alert.is_active:
            logger.info("Vote rejected: alert %s unknown or inactive", alert_id)
            return False

        previous = alert.votes.get(user_id)
        if previous is not kind:
            if previous is not None:
                self._adjust_tally(alert, previous, -1)
            self._adjust_tally(alert, kind, +1)
            alert.votes[user_id] = kind

        if kind is VoteKind.CONFIRM:
            alert.last_confirmed_at = now

        self._evaluate_road_state(alert, kind, weather, now)
        return True

    @staticmethod
    def _adjust_tally(alert: Alert, kind: VoteKind, delta: int) -> None:
        if kind is VoteKind.CONFIRM:
            alert.confirmed_count = max(0, alert.confirmed_count + delta)
        elif kind is VoteKind.RESOLVED:
            alert.resolved_count = max(0, alert.resolved_count + delta)
        else:
            raise ValueError(f"Unhandled vote kind: {kind!r}")

    def _confirm_is_stale(self, alert: Alert, now: datetime) -> bool:
        if alert.last_confirmed_at is None:
            return True
        return now - alert.last_confirmed_at >= self.policy.confirm_stale_after

    def _evaluate_road_state(
        self,
        alert: Alert,
        kind: VoteKind,
        weather: WeatherSnapshot,
        now: datetime,
    ) -> None:
        p = self.policy
        rain = weather.rainfall_mm

        # A confirm can only hold or revert a downgrade, never retract.
        if kind is VoteKind.CONFIRM:
            if alert.road_state is RoadState.MONITORING:
                alert.road_state = RoadState.FLOODED
                alert.monitoring_since = None
                logger.info(
                    "Alert %s back to flooded after confirm vote", alert.id,
                    extra={"area_name": alert.area_name, "road_state": "flooded"},
                )
            return

        if (alert.resolved_count >= p.min_resolved_for_normal
                and rain < p.resolve_max_rainfall_mm):
            self._deactivate(alert, now, reason="community consensus")
            return

        if (alert.road_state is RoadState.FLOODED
                and alert.resolved_count >= p.min_resolved_for_monitoring
                and self._confirm_is_stale(alert, now)
                and rain < p.monitoring_max_rainfall_mm):
            alert.road_state = RoadState.MONITORING
            alert.monitoring_since = now
            logger.info(
                "Alert %s downgraded to monitoring (resolved=%d, rain=%.1fmm)",
                alert.id, alert.resolved_count, rain,
                extra={"area_name": alert.area_name, "road_state": "monitoring"},
            )

    # ── Resolution ───────────────────────────────────────────────────────

    def _deactivate(self, alert: Alert, now: datetime, *, reason: str) -> None:
        alert.is_active = False
        alert.road_state = RoadState.NORMAL
        alert.resolved_at = now
        self._follow_up_prompts.pop(alert.id, None)
        logger.info(
            "Alert %s resolved (%s)", alert.id, reason,
            extra={"area_name": alert.area_name, "alert_id": alert.id},
        )
        if self.reports is not None:
            self.reports.deactivate_near(alert.location, alert.radius)

    def resolve(self, alert_id: str, now: datetime) -> bool:
        """Manual resolution; bypasses the vote thresholds."""
        alert = self.store.get(alert_id)
        if alert is None or not alert.is_active:
            return False
        self._deactivate(alert, now, reason="manual")
        return True

    def sweep_expired(self, now: datetime) -> List[Alert]:
        """Apply the configured expiry policy; returns alerts it deactivated."""
        expired = self.expiry_policy.expired(self.store.active(), now)
        for alert in expired:
            self._deactivate(alert, now, reason="expired")
        return expired

    # ── Follow-up ────────────────────────────────────────────────────────

    def last_follow_up(self, alert_id: str) -> Optional[datetime]:
        return self._follow_up_prompts.get(alert_id)

    def claim_follow_up(self, alert_id: str, now: datetime) -> Optional[Alert]:
        """
        Record a follow-up prompt if one is due; returns the alert to prompt
        about, or None when the prompt must not go out.
        """
        alert = self.store.get(alert_id)
        if alert is None:
            return None
        if not should_send_follow_up(
            alert, self.last_follow_up(alert_id), now,
            delay=self.policy.follow_up_delay,
        ):
            return None
        self._follow_up_prompts[alert_id] = now
        return alert

    def respond_to_follow_up(
        self, alert_id: str, still_ongoing: bool, now: datetime,
    ) -> bool:
        alert = self.store.get(alert_id)
        if alert is None or not alert.is_active:
            return False

        if not still_ongoing:
            self._deactivate(alert, now, reason="follow-up answered NO")
            return True

        alert.expires_at = now + self.policy.follow_up_extension
        logger.info(
            "Alert %s extended to %s after follow-up YES",
            alert.id, alert.expires_at.isoformat(),
            extra={"area_name": alert.area_name, "alert_id": alert.id},
        )
        return True
