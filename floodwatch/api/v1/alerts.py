"""
FastAPI routes: community flood reports and alert lifecycle.

Provides endpoints to:
    POST /api/v1/reports                  — submit a report (+ processing pass)
    GET  /api/v1/reports                  — fresh active reports
    POST /api/v1/alerts/process           — run a processing pass
    GET  /api/v1/alerts                   — active alerts
    GET  /api/v1/alerts/history           — resolved alerts
    GET  /api/v1/alerts/{id}              — one alert
    POST /api/v1/alerts/{id}/votes        — community vote
    POST /api/v1/alerts/{id}/follow-up    — "still ongoing?" answer
    POST /api/v1/alerts/{id}/resolve      — manual resolution
    GET  /api/v1/weather                  — current weather snapshot
    PUT  /api/v1/weather                  — manual weather override
    POST /api/v1/sensors/{id}/readings    — push a sensor reading (flooding
                                            readings file an auto-report)
    GET  /api/v1/sensors                  — sensor list with status

The engine, weather provider and sensor oracle live on ``app.state`` and
are wired in ``floodwatch.main``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Request

from floodwatch.alerts.engine import AlertEngine
from floodwatch.alerts.models import Alert, FloodType, SensorReading, WeatherSnapshot
from floodwatch.api.schemas import (
    ActionResponse,
    AlertListResponse,
    FollowUpAnswer,
    ProcessRequest,
    ReportCreate,
    ReportListResponse,
    SensorReadingInput,
    VoteRequest,
    WeatherUpdate,
)
from floodwatch.core.errors import InactiveAlertError, NotFoundError
from floodwatch.ml.sensor_model import auto_report_description
from floodwatch.spatial.geo_math import Coordinates
from floodwatch.spatial.geocoding import GUWAHATI_CENTER

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["flood-alerts"])


# ---------------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------------

def _engine(request: Request) -> AlertEngine:
    return request.app.state.engine


def _current_weather(request: Request) -> WeatherSnapshot:
    return request.app.state.weather.get_current(GUWAHATI_CENTER)


def _require_alert(engine: AlertEngine, alert_id: str) -> Alert:
    alert = engine.get_alert(alert_id)
    if alert is None:
        raise NotFoundError("Alert", alert_id=alert_id)
    return alert


def _action_result(
    engine: AlertEngine, alert_id: str, accepted: bool, action: str,
) -> Dict[str, Any]:
    """Map a lifecycle boolean onto 404 / 409 / success."""
    alert = _require_alert(engine, alert_id)
    if not accepted:
        raise InactiveAlertError(alert_id, action)
    return {"accepted": True, "alert": alert.to_dict()}


def _run_pass(request: Request, weather: WeatherSnapshot) -> List[Alert]:
    sensors = request.app.state.sensors.sensors()
    return _engine(request).process_reports(weather, sensors)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

@router.post("/reports", status_code=201, summary="Submit a flood report")
async def submit_report(body: ReportCreate, request: Request):
    engine = _engine(request)
    report = engine.submit_report(
        body.type,
        Coordinates(body.location.lat, body.location.lng),
        submitter_id=body.submitter_id,
        area_name=body.area_name,
        description=body.description,
        photo_url=body.photo_url,
        photo_verified=body.photo_verified,
        photo_confidence=body.photo_confidence,
    )

    active = _run_pass(request, _current_weather(request)) if body.process else []
    return {
        "report": report.to_dict(),
        "active_alerts": [a.to_dict() for a in active],
    }


@router.get("/reports", response_model=ReportListResponse)
async def list_reports(request: Request):
    reports = _engine(request).fresh_reports()
    return {"count": len(reports), "reports": [r.to_dict() for r in reports]}


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------

@router.post(
    "/alerts/process",
    response_model=AlertListResponse,
    summary="Run one processing pass",
    description=(
        "Clusters fresh reports, scores each cluster and creates or updates "
        "alerts. Uses the configured weather provider unless a snapshot is "
        "supplied in the body."
    ),
)
async def process_alerts(request: Request, body: Optional[ProcessRequest] = None):
    if body is not None and body.weather is not None:
        weather = WeatherSnapshot(
            **body.weather.model_dump(),
            last_updated=datetime.now(timezone.utc),
        )
    else:
        weather = _current_weather(request)

    active = _run_pass(request, weather)
    return {"count": len(active), "alerts": [a.to_dict() for a in active]}


@router.get("/alerts", response_model=AlertListResponse)
async def list_active_alerts(request: Request):
    active = _engine(request).active_alerts()
    return {"count": len(active), "alerts": [a.to_dict() for a in active]}


@router.get("/alerts/history", response_model=AlertListResponse)
async def list_alert_history(request: Request):
    history = _engine(request).alert_history()
    return {"count": len(history), "alerts": [a.to_dict() for a in history]}


@router.get("/alerts/{alert_id}")
async def get_alert(alert_id: str, request: Request):
    return _require_alert(_engine(request), alert_id).to_dict()


@router.post("/alerts/{alert_id}/votes", response_model=ActionResponse)
async def vote_on_alert(alert_id: str, body: VoteRequest, request: Request):
    engine = _engine(request)
    _require_alert(engine, alert_id)
    accepted = engine.cast_vote(
        alert_id, body.user_id, body.vote, _current_weather(request),
    )
    return _action_result(engine, alert_id, accepted, "vote")


@router.post("/alerts/{alert_id}/follow-up", response_model=ActionResponse)
async def answer_follow_up(alert_id: str, body: FollowUpAnswer, request: Request):
    engine = _engine(request)
    _require_alert(engine, alert_id)
    accepted = engine.respond_to_follow_up(alert_id, body.still_ongoing)
    return _action_result(engine, alert_id, accepted, "answer follow-up")


@router.post("/alerts/{alert_id}/resolve", response_model=ActionResponse)
async def resolve_alert(alert_id: str, request: Request):
    engine = _engine(request)
    _require_alert(engine, alert_id)
    accepted = engine.resolve(alert_id)
    return _action_result(engine, alert_id, accepted, "resolve")


# ---------------------------------------------------------------------------
# Weather / sensors
# ---------------------------------------------------------------------------

@router.get("/weather")
async def get_weather(request: Request):
    return _current_weather(request).to_dict()


@router.put("/weather")
async def update_weather(body: WeatherUpdate, request: Request):
    changes = body.model_dump(exclude_none=True)
    return request.app.state.weather_override.update(**changes).to_dict()


@router.get("/sensors")
async def list_sensors(request: Request):
    return {"sensors": [s.to_dict() for s in request.app.state.sensors.sensors()]}


@router.post("/sensors/{sensor_id}/readings")
async def push_sensor_reading(
    sensor_id: str, body: SensorReadingInput, request: Request,
):
    reading = SensorReading(
        water_level_cm=body.water_level_cm,
        rainfall_mm_per_hour=body.rainfall_mm_per_hour,
        battery_level=body.battery_level,
        timestamp=datetime.now(timezone.utc),
    )
    oracle = request.app.state.sensors
    prediction = oracle.apply_reading(sensor_id, reading)
    if prediction is None:
        raise NotFoundError("Sensor", sensor_id=sensor_id)

    node = oracle.get(sensor_id)
    auto_report = None
    active: List[Alert] = []
    if prediction.is_flooding:
        # a flooding reading counts as a verified citizen report
        auto_report = _engine(request).submit_report(
            FloodType.FLOOD,
            node.location,
            submitter_id=sensor_id,
            area_name=node.area_name,
            description=auto_report_description(reading, prediction),
            photo_verified=True,
        )
        logger.info(
            "Sensor %s filed auto-report %s", sensor_id, auto_report.id,
            extra={"area_name": node.area_name},
        )
        active = _run_pass(request, _current_weather(request))

    return {
        "sensor": node.to_dict(),
        "prediction": prediction.to_dict(),
        "auto_report": auto_report.to_dict() if auto_report else None,
        "active_alerts": [a.to_dict() for a in active],
    }
