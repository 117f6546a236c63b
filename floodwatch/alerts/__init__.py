"""
alerts — Flood alert decision engine.

Sub-modules:
    models         — enums and data structures shared across the system
    clustering     — greedy seed-based proximity grouping of reports
    confidence     — additive, explainable confidence scoring
    lifecycle      — severity, road-state machine, votes, follow-ups, expiry
    store          — injected in-memory alert / report containers
    engine         — processing-pass orchestration
    collaborators  — contracts for weather, geocoding, photos, sensors, notify
    channels/      — notification backends
"""
