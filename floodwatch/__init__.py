"""
floodwatch — community flood alert decision engine.

Packages:
    core       — settings, logging, errors, middleware, clock / timers
    spatial    — geodesic math, known-area geocoding, route avoidance
    alerts     — clustering, confidence scoring, alert lifecycle, engine
    ingestion  — weather snapshot providers
    ml         — sensor flood-risk model
    api        — FastAPI routes and schemas
"""

__version__ = "1.0.0"
