"""
Pydantic schemas for the flood alert API.

Separated from the route handlers so they are reusable across the
codebase (background workers, tests). Responses are built from the
domain objects' ``to_dict()`` output.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from floodwatch.alerts.models import FloodType, VoteKind


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class LocationInput(BaseModel):
    """A point in decimal degrees."""
    lat: float = Field(..., ge=-90.0, le=90.0, examples=[26.1638])
    lng: float = Field(..., ge=-180.0, le=180.0, examples=[91.7674])


class ReportCreate(BaseModel):
    """Request body for POST /api/v1/reports."""
    type: FloodType = Field(..., examples=["waterlogging"])
    location: LocationInput
    submitter_id: str = Field(..., min_length=1, examples=["user-42"])
    area_name: Optional[str] = Field(
        None, description="Geocoded from the location when omitted",
    )
    description: Optional[str] = Field(None, max_length=500)
    photo_url: Optional[str] = None
    photo_verified: bool = False
    photo_confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    process: bool = Field(
        True, description="Run a processing pass right after storing",
    )


class WeatherInput(BaseModel):
    """Full weather snapshot supplied by the caller."""
    is_raining: bool
    rainfall_mm: float = Field(..., ge=0.0)
    temperature: float = 27.0
    humidity: float = Field(80.0, ge=0.0, le=100.0)
    description: str = ""


class WeatherUpdate(BaseModel):
    """Partial weather override for PUT /api/v1/weather."""
    is_raining: Optional[bool] = None
    rainfall_mm: Optional[float] = Field(None, ge=0.0)
    temperature: Optional[float] = None
    humidity: Optional[float] = Field(None, ge=0.0, le=100.0)
    description: Optional[str] = None


class ProcessRequest(BaseModel):
    """Request body for POST /api/v1/alerts/process."""
    weather: Optional[WeatherInput] = Field(
        None, description="Overrides the configured weather provider",
    )


class VoteRequest(BaseModel):
    user_id: str = Field(..., min_length=1, examples=["user-7"])
    vote: VoteKind = Field(..., examples=["resolved"])


class FollowUpAnswer(BaseModel):
    still_ongoing: bool


class SensorReadingInput(BaseModel):
    water_level_cm: float = Field(..., ge=0.0, examples=[55.0])
    rainfall_mm_per_hour: float = Field(0.0, ge=0.0, examples=[22.0])
    battery_level: float = Field(100.0, ge=0.0, le=100.0)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class AlertListResponse(BaseModel):
    count: int
    alerts: List[dict]


class ReportListResponse(BaseModel):
    count: int
    reports: List[dict]


class ActionResponse(BaseModel):
    """Outcome of a vote, follow-up answer or resolution."""
    accepted: bool
    alert: dict
