"""ingestion — ambient input providers (weather)."""
