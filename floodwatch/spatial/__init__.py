"""
spatial — Geographic helpers.

Modules:
    geo_math   — haversine, radius checks, centroid, bearing, offsets
    geocoding  — known-area reverse geocoder with deterministic fallback
    routing    — flood-zone avoidance polygons and detours
"""
