"""api — FastAPI surface over the alert engine."""
