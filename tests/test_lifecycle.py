"""
test_lifecycle.py — Severity, road-state machine, votes, follow-ups, expiry.

Covers:
    • Severity ladder and initial road state
    • Community actions
    • Create-or-update per area
    • Vote tallies, switching, thresholds and the 15-minute confirm window
    • Follow-up timing and answers
    • Manual resolution, expiry policies

Run with:
    pytest tests/test_lifecycle.py -v
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from floodwatch.alerts.lifecycle import (
    AdvisoryExpiryPolicy,
    AlertLifecycle,
    HardExpiryPolicy,
    LifecyclePolicy,
    UpsertOutcome,
    alert_message,
    build_expiry_policy,
    determine_severity,
    dominant_flood_type,
    follow_up_prompt,
    generate_community_actions,
    ground_photo,
    initial_road_state,
    should_send_follow_up,
)
from floodwatch.alerts.models import (
    Alert,
    ConfidenceBreakdown,
    FloodType,
    Report,
    RoadState,
    Severity,
    VoteKind,
)
from floodwatch.alerts.store import AlertStore, ReportStore
from floodwatch.spatial.geo_math import Coordinates

from conftest import T0, make_weather

ZOO_ROAD = Coordinates(26.1638, 91.7674)


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════

def _make_report(rid: str, type: FloodType = FloodType.FLOOD, photo=None, verified=False) -> Report:
    return Report(
        id=rid,
        type=type,
        location=ZOO_ROAD,
        area_name="Zoo Road",
        timestamp=T0 - timedelta(minutes=20),
        submitter_id=f"user-{rid}",
        photo_url=photo,
        photo_verified=verified,
    )


def _make_breakdown(total: int, report_count: int = 2) -> ConfidenceBreakdown:
    return ConfidenceBreakdown(
        total=total,
        report_count=report_count,
        text_reports=report_count,
        photos_attached=0,
        photos_verified=0,
        recency_bonus=0,
        rainfall_bonus=0,
        multiple_reports_bonus=0,
        sensor_bonus=0,
        explanation=f"{report_count} report(s)",
    )


def _make_lifecycle(**policy) -> AlertLifecycle:
    return AlertLifecycle(
        AlertStore(),
        reports=ReportStore(),
        policy=LifecyclePolicy(**policy),
        expiry_policy=AdvisoryExpiryPolicy(),
    )


def _create(lc: AlertLifecycle, total: int = 5, n: int = 2, area: str = "Zoo Road", now=T0):
    cluster = [_make_report(f"{area}-{i}") for i in range(n)]
    alert, _ = lc.upsert(
        cluster, _make_breakdown(total, n),
        area_name=area, location=ZOO_ROAD, now=now,
    )
    return alert


# ═══════════════════════════════════════════════════════════════════════════
# Pure classification
# ═══════════════════════════════════════════════════════════════════════════

class TestSeverity:

    @pytest.mark.parametrize("confidence,reports,expected", [
        (2, 4, Severity.CRITICAL),
        (6, 1, Severity.CRITICAL),
        (4, 2, Severity.HIGH),
        (2, 3, Severity.HIGH),
        (3, 2, Severity.MEDIUM),
        (5, 2, Severity.HIGH),
        (10, 3, Severity.CRITICAL),
    ])
    def test_ladder(self, confidence, reports, expected):
        assert determine_severity(confidence, reports) is expected

    def test_rank_order(self):
        assert Severity.MEDIUM.rank < Severity.HIGH.rank < Severity.CRITICAL.rank

    def test_initial_road_state(self):
        assert initial_road_state(Severity.CRITICAL) is RoadState.FLOODED
        assert initial_road_state(Severity.HIGH) is RoadState.FLOODED
        assert initial_road_state(Severity.MEDIUM) is RoadState.MONITORING


class TestCommunityActions:

    def test_critical_includes_avoid_with_area(self):
        actions = generate_community_actions(Severity.CRITICAL, "Zoo Road")
        assert actions[0].type == "avoid"
        assert "Zoo Road" in actions[0].message
        assert [a.priority for a in actions] == [1, 2, 3, 4, 5]

    def test_high_has_caution_but_no_avoid(self):
        types = [a.type for a in generate_community_actions(Severity.HIGH, "X")]
        assert "caution" in types
        assert "avoid" not in types

    def test_medium_only_tips(self):
        actions = generate_community_actions(Severity.MEDIUM, "X")
        assert {a.type for a in actions} == {"tip"}
        assert len(actions) == 2


class TestClusterSummaries:

    def test_dominant_type(self):
        reports = [
            _make_report("a", FloodType.WATERLOGGING),
            _make_report("b", FloodType.DRAIN_OVERFLOW),
            _make_report("c", FloodType.DRAIN_OVERFLOW),
        ]
        assert dominant_flood_type(reports) is FloodType.DRAIN_OVERFLOW

    def test_dominant_type_tie_goes_to_first_seen(self):
        reports = [_make_report("a", FloodType.WATERLOGGING), _make_report("b", FloodType.FLOOD)]
        assert dominant_flood_type(reports) is FloodType.WATERLOGGING

    def test_ground_photo_prefers_verified(self):
        reports = [
            _make_report("a", photo="https://img/a.jpg"),
            _make_report("b", photo="https://img/b.jpg", verified=True),
        ]
        assert ground_photo(reports) == "https://img/b.jpg"

    def test_ground_photo_none(self):
        assert ground_photo([_make_report("a")]) is None


# ═══════════════════════════════════════════════════════════════════════════
# Create / update
# ═══════════════════════════════════════════════════════════════════════════

class TestUpsert:

    def test_create_defaults(self):
        lc = _make_lifecycle()
        alert = _create(lc, total=10, n=3)

        assert alert.severity is Severity.CRITICAL
        assert alert.road_state is RoadState.FLOODED
        assert alert.radius == 800.0
        assert alert.expires_at == T0 + timedelta(minutes=60)
        assert alert.resolved_count == 0
        assert alert.confirmed_count == 0
        assert alert.is_active
        assert alert.suggested_actions[0].startswith("⚠️ Avoid Zoo Road")

    def test_medium_starts_monitoring(self):
        alert = _create(_make_lifecycle(), total=3, n=2)
        assert alert.severity is Severity.MEDIUM
        assert alert.road_state is RoadState.MONITORING

    def test_update_in_place(self):
        lc = _make_lifecycle()
        first = _create(lc, total=4, n=2)
        second = _create(lc, total=8, n=3, now=T0 + timedelta(minutes=5))

        assert second is first
        assert len(lc.store) == 1
        assert first.confidence_score == 8
        assert first.report_count == 3
        assert first.severity is Severity.CRITICAL
        assert first.triggered_at == T0
        # road state is never touched by an update
        assert first.road_state is RoadState.FLOODED

    def test_outcome_reports_change(self):
        lc = _make_lifecycle()
        cluster = [_make_report(f"r{i}") for i in range(2)]

        def upsert(total, reports):
            return lc.upsert(
                reports, _make_breakdown(total, len(reports)),
                area_name="Zoo Road", location=ZOO_ROAD, now=T0,
            )[1]

        assert upsert(5, cluster) is UpsertOutcome.CREATED
        assert upsert(5, cluster) is UpsertOutcome.UNCHANGED
        assert upsert(6, cluster) is UpsertOutcome.UPDATED
        assert upsert(6, cluster + [_make_report("r2")]) is UpsertOutcome.UPDATED

    def test_update_does_not_upgrade_monitoring(self):
        lc = _make_lifecycle()
        alert = _create(lc, total=3, n=2)
        _create(lc, total=9, n=4)
        assert alert.severity is Severity.CRITICAL
        assert alert.road_state is RoadState.MONITORING

    def test_different_areas_get_separate_alerts(self):
        lc = _make_lifecycle()
        _create(lc, area="Zoo Road")
        _create(lc, area="Chandmari")
        assert len(lc.store.active()) == 2

    def test_store_rejects_duplicate_active_area(self):
        lc = _make_lifecycle()
        alert = _create(lc)
        clone = Alert(
            type=alert.type, severity=alert.severity, location=alert.location,
            area_name=alert.area_name, confidence_score=1, report_count=1,
            triggered_at=T0, expires_at=T0, road_state=RoadState.FLOODED,
        )
        with pytest.raises(ValueError):
            lc.store.add(clone)


# ═══════════════════════════════════════════════════════════════════════════
# Votes
# ═══════════════════════════════════════════════════════════════════════════

class TestVotes:

    def test_unknown_alert_rejected(self):
        lc = _make_lifecycle()
        assert lc.cast_vote("nope", "u1", VoteKind.CONFIRM, make_weather(0), T0) is False

    def test_inactive_alert_rejected(self):
        lc = _make_lifecycle()
        alert = _create(lc)
        lc.resolve(alert.id, T0)
        assert lc.cast_vote(alert.id, "u1", VoteKind.CONFIRM, make_weather(0), T0) is False

    def test_same_vote_twice_counts_once(self):
        lc = _make_lifecycle()
        alert = _create(lc)
        lc.cast_vote(alert.id, "u1", VoteKind.CONFIRM, make_weather(10), T0)
        lc.cast_vote(alert.id, "u1", VoteKind.CONFIRM, make_weather(10), T0)
        assert alert.confirmed_count == 1

    def test_switching_moves_tally(self):
        lc = _make_lifecycle()
        alert = _create(lc)
        lc.cast_vote(alert.id, "u1", VoteKind.RESOLVED, make_weather(10), T0)
        lc.cast_vote(alert.id, "u1", VoteKind.CONFIRM, make_weather(10), T0)
        assert alert.resolved_count == 0
        assert alert.confirmed_count == 1

    def test_counts_never_negative(self):
        lc = _make_lifecycle()
        alert = _create(lc)
        for kind in (VoteKind.CONFIRM, VoteKind.RESOLVED, VoteKind.CONFIRM):
            lc.cast_vote(alert.id, "u1", kind, make_weather(10), T0)
            assert alert.confirmed_count >= 0
            assert alert.resolved_count >= 0
        assert alert.confirmed_count + alert.resolved_count == 1


class TestRoadStateMachine:

    def test_one_resolved_dry_downgrades_to_monitoring(self):
        lc = _make_lifecycle()
        alert = _create(lc, total=6)
        now = T0 + timedelta(minutes=5)
        lc.cast_vote(alert.id, "u1", VoteKind.RESOLVED, make_weather(0), now)

        assert alert.road_state is RoadState.MONITORING
        assert alert.monitoring_since == now
        assert alert.is_active

    def test_two_resolved_dry_clears(self):
        lc = _make_lifecycle()
        alert = _create(lc, total=6)
        lc.cast_vote(alert.id, "u1", VoteKind.RESOLVED, make_weather(0), T0)
        lc.cast_vote(alert.id, "u2", VoteKind.RESOLVED, make_weather(0), T0)

        assert alert.road_state is RoadState.NORMAL
        assert not alert.is_active
        assert alert.resolved_at == T0

    def test_moderate_rain_stops_at_monitoring(self):
        lc = _make_lifecycle()
        alert = _create(lc, total=6)
        lc.cast_vote(alert.id, "u1", VoteKind.RESOLVED, make_weather(3.0), T0)
        lc.cast_vote(alert.id, "u2", VoteKind.RESOLVED, make_weather(3.0), T0)

        assert alert.road_state is RoadState.MONITORING
        assert alert.is_active

    def test_heavy_rain_blocks_downgrade(self):
        lc = _make_lifecycle()
        alert = _create(lc, total=6)
        lc.cast_vote(alert.id, "u1", VoteKind.RESOLVED, make_weather(6.0), T0)
        assert alert.road_state is RoadState.FLOODED

    def test_recent_confirm_blocks_downgrade(self):
        lc = _make_lifecycle()
        alert = _create(lc, total=6)
        lc.cast_vote(alert.id, "u1", VoteKind.CONFIRM, make_weather(0), T0)
        lc.cast_vote(
            alert.id, "u2", VoteKind.RESOLVED, make_weather(0),
            T0 + timedelta(minutes=5),
        )
        assert alert.road_state is RoadState.FLOODED

    def test_confirm_goes_stale_after_fifteen_minutes(self):
        lc = _make_lifecycle()
        alert = _create(lc, total=6)
        lc.cast_vote(alert.id, "u1", VoteKind.CONFIRM, make_weather(0), T0)
        lc.cast_vote(
            alert.id, "u2", VoteKind.RESOLVED, make_weather(0),
            T0 + timedelta(minutes=15),
        )
        assert alert.road_state is RoadState.MONITORING

    def test_confirm_while_monitoring_returns_to_flooded(self):
        lc = _make_lifecycle()
        alert = _create(lc, total=3)
        assert alert.road_state is RoadState.MONITORING

        lc.cast_vote(alert.id, "u1", VoteKind.CONFIRM, make_weather(0), T0)
        assert alert.road_state is RoadState.FLOODED
        assert alert.monitoring_since is None

    def test_confirm_never_retracts_alert(self):
        lc = _make_lifecycle()
        alert = _create(lc, total=6)
        lc.cast_vote(alert.id, "u1", VoteKind.RESOLVED, make_weather(3.0), T0)
        lc.cast_vote(alert.id, "u2", VoteKind.RESOLVED, make_weather(3.0), T0)
        assert alert.road_state is RoadState.MONITORING
        assert alert.resolved_count == 2

        later = T0 + timedelta(minutes=5)
        assert lc.cast_vote(alert.id, "u3", VoteKind.CONFIRM, make_weather(1.0), later)
        assert alert.is_active
        assert alert.road_state is RoadState.FLOODED
        assert alert.last_confirmed_at == later

    def test_resolution_deactivates_nearby_reports(self):
        lc = _make_lifecycle()
        reports = [_make_report("a"), _make_report("b")]
        for r in reports:
            lc.reports.add(r)
        alert = _create(lc)
        lc.resolve(alert.id, T0)
        assert not any(r.is_active for r in reports)


# ═══════════════════════════════════════════════════════════════════════════
# Follow-up
# ═══════════════════════════════════════════════════════════════════════════

class TestShouldSendFollowUp:

    def _alert(self):
        return _create(_make_lifecycle())

    def test_too_early(self):
        assert not should_send_follow_up(self._alert(), None, T0 + timedelta(seconds=30))

    def test_first_prompt_after_delay(self):
        assert should_send_follow_up(self._alert(), None, T0 + timedelta(seconds=90))

    def test_recently_prompted(self):
        alert = self._alert()
        last = T0 + timedelta(seconds=80)
        assert not should_send_follow_up(alert, last, last + timedelta(seconds=10))

    def test_prompt_again_after_delay(self):
        alert = self._alert()
        last = T0 + timedelta(seconds=90)
        assert should_send_follow_up(alert, last, last + timedelta(seconds=70))

    def test_inactive_never(self):
        alert = self._alert()
        alert.is_active = False
        assert not should_send_follow_up(alert, None, T0 + timedelta(hours=1))


class TestFollowUpFlow:

    def test_claim_records_prompt_once(self):
        lc = _make_lifecycle()
        alert = _create(lc)
        now = T0 + timedelta(seconds=60)
        assert lc.claim_follow_up(alert.id, now) is alert
        assert lc.last_follow_up(alert.id) == now
        assert lc.claim_follow_up(alert.id, now + timedelta(seconds=5)) is None

    def test_answer_yes_extends(self):
        lc = _make_lifecycle()
        alert = _create(lc)
        now = T0 + timedelta(minutes=2)
        assert lc.respond_to_follow_up(alert.id, True, now)
        assert alert.expires_at == now + timedelta(minutes=30)
        assert alert.is_active

    def test_answer_no_resolves(self):
        lc = _make_lifecycle()
        alert = _create(lc)
        assert lc.respond_to_follow_up(alert.id, False, T0)
        assert not alert.is_active
        assert alert.road_state is RoadState.NORMAL

    def test_answer_on_inactive_rejected(self):
        lc = _make_lifecycle()
        alert = _create(lc)
        lc.resolve(alert.id, T0)
        assert lc.respond_to_follow_up(alert.id, True, T0) is False

    def test_prompt_text(self):
        alert = _create(_make_lifecycle())
        assert "Zoo Road" in follow_up_prompt(alert)


# ═══════════════════════════════════════════════════════════════════════════
# Resolution / expiry
# ═══════════════════════════════════════════════════════════════════════════

class TestResolutionAndExpiry:

    def test_manual_resolve_bypasses_thresholds(self):
        lc = _make_lifecycle()
        alert = _create(lc, total=10, n=4)
        assert lc.resolve(alert.id, T0)
        assert not alert.is_active
        assert lc.store.history() == [alert]

    def test_resolve_twice_rejected(self):
        lc = _make_lifecycle()
        alert = _create(lc)
        assert lc.resolve(alert.id, T0)
        assert lc.resolve(alert.id, T0) is False

    def test_new_alert_allowed_after_resolution(self):
        lc = _make_lifecycle()
        first = _create(lc)
        lc.resolve(first.id, T0)
        second = _create(lc)
        assert second is not first
        assert second.is_active

    def test_advisory_expiry_keeps_alert(self):
        lc = _make_lifecycle()
        alert = _create(lc)
        assert lc.sweep_expired(T0 + timedelta(hours=3)) == []
        assert alert.is_active
        assert alert.is_expired(T0 + timedelta(hours=3))

    def test_hard_expiry_deactivates(self):
        lc = AlertLifecycle(AlertStore(), expiry_policy=HardExpiryPolicy())
        alert = _create(lc)
        assert lc.sweep_expired(T0 + timedelta(minutes=59)) == []
        assert lc.sweep_expired(T0 + timedelta(minutes=60)) == [alert]
        assert not alert.is_active

    def test_build_expiry_policy(self):
        assert isinstance(build_expiry_policy("HARD"), HardExpiryPolicy)
        assert isinstance(build_expiry_policy("advisory"), AdvisoryExpiryPolicy)
        with pytest.raises(ValueError):
            build_expiry_policy("sometimes")


def test_alert_message_mentions_severity_and_area():
    alert = _create(_make_lifecycle(), total=10, n=3)
    text = alert_message(alert)
    assert text.startswith("🚨 CRITICAL ALERT: flood in Zoo Road")
    assert "Confidence 10 from 3 report(s)" in text
