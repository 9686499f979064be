"""Orchestration engine for AI media generation jobs."""

__version__ = "0.1.0"
