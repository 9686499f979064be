"""Job persistence and artifact storage."""
