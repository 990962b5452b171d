"""screening_server — FastAPI request layer over the screening engine."""
