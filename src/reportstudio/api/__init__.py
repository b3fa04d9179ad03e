"""HTTP API over the reporting engine."""
