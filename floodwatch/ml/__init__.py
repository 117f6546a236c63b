"""ml — sensor flood-risk model feeding SensorNode status."""
