"""HTTP API for the engine."""
