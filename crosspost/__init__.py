"""Multi-platform publishing and inbox orchestration core."""
