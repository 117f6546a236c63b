"""
test_api.py — HTTP surface over the alert engine.

Covers:
    • Report submission triggering a processing pass
    • Alert listing, lookup, 404 handling
    • Votes, follow-up answers, manual resolution (incl. 409 on inactive)
    • Weather override, sensor readings
    • Health probe

Run with:
    pytest tests/test_api.py -v
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from floodwatch.alerts.engine import AlertEngine
from floodwatch.main import create_app

ZOO_ROAD = {"lat": 26.1638, "lng": 91.7674}


@pytest.fixture
def client(clock, timer, notifier):
    engine = AlertEngine(notifier=notifier, timer=timer, clock=clock)
    return TestClient(create_app(engine=engine))


def _report_body(submitter="user-1", dlat=0.0, **extra):
    body = {
        "type": "waterlogging",
        "location": {"lat": ZOO_ROAD["lat"] + dlat, "lng": ZOO_ROAD["lng"]},
        "submitter_id": submitter,
    }
    body.update(extra)
    return body


def _raise_alert(client) -> dict:
    client.post("/api/v1/reports", json=_report_body("a"))
    resp = client.post("/api/v1/reports", json=_report_body("b", 0.0005))
    assert resp.status_code == 201
    return resp.json()["active_alerts"][0]


class TestReports:

    def test_single_report_no_alert(self, client):
        resp = client.post("/api/v1/reports", json=_report_body())
        assert resp.status_code == 201
        body = resp.json()
        assert body["report"]["area_name"] == "Zoo Road"
        assert body["active_alerts"] == []

    def test_second_report_raises_alert(self, client):
        alert = _raise_alert(client)
        assert alert["area_name"] == "Zoo Road"
        assert alert["type"] == "waterlogging"
        assert alert["road_state"] == "flooded"

    def test_processing_can_be_deferred(self, client):
        client.post("/api/v1/reports", json=_report_body("a"))
        resp = client.post("/api/v1/reports", json=_report_body("b", process=False))
        assert resp.json()["active_alerts"] == []

        listed = client.get("/api/v1/reports").json()
        assert listed["count"] == 2

    def test_invalid_type_rejected(self, client):
        resp = client.post("/api/v1/reports", json=_report_body(type="tsunami"))
        assert resp.status_code == 422

    def test_invalid_location_rejected(self, client):
        body = _report_body()
        body["location"]["lat"] = 123.0
        assert client.post("/api/v1/reports", json=body).status_code == 422


class TestAlerts:

    def test_list_and_get(self, client):
        alert = _raise_alert(client)
        listed = client.get("/api/v1/alerts").json()
        assert listed["count"] == 1

        one = client.get(f"/api/v1/alerts/{alert['id']}")
        assert one.status_code == 200
        assert one.json()["id"] == alert["id"]

    def test_unknown_alert_404(self, client):
        resp = client.get("/api/v1/alerts/does-not-exist")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"

    def test_process_with_explicit_weather(self, client):
        client.post("/api/v1/reports", json=_report_body("a", process=False))
        client.post("/api/v1/reports", json=_report_body("b", 0.0005, process=False))

        resp = client.post("/api/v1/alerts/process", json={
            "weather": {"is_raining": False, "rainfall_mm": 0.0},
        })
        assert resp.status_code == 200
        alert = resp.json()["alerts"][0]
        assert "Rainfall active" not in alert["explanation"]

    def test_process_without_body(self, client):
        assert client.post("/api/v1/alerts/process").json()["count"] == 0


class TestLifecycleEndpoints:

    def test_votes_clear_alert(self, client):
        alert = _raise_alert(client)
        client.put("/api/v1/weather", json={"is_raining": False, "rainfall_mm": 0.0})

        r1 = client.post(f"/api/v1/alerts/{alert['id']}/votes", json={"user_id": "u1", "vote": "resolved"})
        assert r1.status_code == 200
        assert r1.json()["alert"]["road_state"] == "monitoring"

        r2 = client.post(f"/api/v1/alerts/{alert['id']}/votes", json={"user_id": "u2", "vote": "resolved"})
        assert r2.json()["alert"]["is_active"] is False

        history = client.get("/api/v1/alerts/history").json()
        assert history["count"] == 1

    def test_vote_on_resolved_alert_conflicts(self, client):
        alert = _raise_alert(client)
        client.post(f"/api/v1/alerts/{alert['id']}/resolve")

        resp = client.post(f"/api/v1/alerts/{alert['id']}/votes", json={"user_id": "u1", "vote": "confirm"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "ALERT_INACTIVE"

    def test_vote_on_unknown_alert_404(self, client):
        resp = client.post("/api/v1/alerts/nope/votes", json={"user_id": "u1", "vote": "confirm"})
        assert resp.status_code == 404

    def test_follow_up_yes_extends(self, client, clock):
        alert = _raise_alert(client)
        clock.advance(minutes=10)
        resp = client.post(f"/api/v1/alerts/{alert['id']}/follow-up", json={"still_ongoing": True})
        assert resp.status_code == 200
        assert resp.json()["alert"]["expires_at"] != alert["expires_at"]

    def test_follow_up_no_resolves(self, client):
        alert = _raise_alert(client)
        resp = client.post(f"/api/v1/alerts/{alert['id']}/follow-up", json={"still_ongoing": False})
        assert resp.json()["alert"]["is_active"] is False
        assert client.get("/api/v1/alerts").json()["count"] == 0


class TestWeatherAndSensors:

    def test_weather_override(self, client):
        resp = client.put("/api/v1/weather", json={"rainfall_mm": 0.0, "is_raining": False})
        assert resp.status_code == 200
        assert client.get("/api/v1/weather").json()["rainfall_mm"] == 0.0

    def test_sensor_reading_goes_critical(self, client):
        resp = client.post("/api/v1/sensors/sensor-1/readings", json={
            "water_level_cm": 65.0, "rainfall_mm_per_hour": 25.0,
        })
        assert resp.status_code == 200
        assert resp.json()["sensor"]["status"] == "critical"
        assert resp.json()["prediction"]["is_flooding"] is True

    def test_flooding_reading_files_auto_report(self, client):
        client.post("/api/v1/reports", json=_report_body("a"))

        resp = client.post("/api/v1/sensors/sensor-1/readings", json={
            "water_level_cm": 65.0, "rainfall_mm_per_hour": 25.0,
        })
        body = resp.json()
        report = body["auto_report"]
        assert report["type"] == "flood"
        assert report["submitter_id"] == "sensor-1"
        assert report["photo_verified"] is True
        assert report["description"].startswith("[IoT AUTO-REPORT] Critical water level 65.0cm")

        assert len(body["active_alerts"]) == 1
        alert = body["active_alerts"][0]
        assert alert["report_count"] == 2
        assert "IoT sensor" in alert["explanation"]

    def test_normal_reading_files_nothing(self, client):
        resp = client.post("/api/v1/sensors/sensor-1/readings", json={"water_level_cm": 10.0})
        assert resp.json()["auto_report"] is None
        assert client.get("/api/v1/reports").json()["count"] == 0

    def test_unknown_sensor_404(self, client):
        resp = client.post("/api/v1/sensors/nope/readings", json={"water_level_cm": 10.0})
        assert resp.status_code == 404

    def test_critical_sensor_feeds_scoring(self, client):
        client.post("/api/v1/sensors/sensor-1/readings", json={"water_level_cm": 65.0})
        alert = _raise_alert(client)
        assert "IoT sensor" in alert["explanation"]


def test_health_live(client):
    resp = client.get("/health/live")
    assert resp.status_code == 200
    assert resp.json() == {"status": "alive"}
    assert "X-Request-ID" in resp.headers


def test_request_id_echoed(client):
    resp = client.get("/api/v1/alerts", headers={"X-Request-ID": "trace-42"})
    assert resp.headers["X-Request-ID"] == "trace-42"
