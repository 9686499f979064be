"""Deterministic provider failure classification for runner retry policy."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from media_jobs.orchestrator.models import ErrorClass, JobFailure
from media_jobs.orchestrator.providers.base import ProviderError

_QUOTA_PATTERNS: tuple[str, ...] = (
    "resource_exhausted",
    "quota",
    "exceeded",
)
_TRANSIENT_STATUS_CODES: frozenset[int] = frozenset({500, 502, 503, 504})
_TRANSIENT_PATTERNS: tuple[str, ...] = (
    "overloaded",
    "unavailable",
    "timeout",
    "temporarily",
    "try again",
    "aborted",
)
_NETWORK_PATTERNS: tuple[str, ...] = (
    "fetch failed",
    "econnreset",
    "etimedout",
    "connection reset",
    "timed out",
    "aborterror",
)


@dataclass(slots=True)
class ErrorClassification:
    """Normalized failure classification result."""

    error_class: ErrorClass
    matched_rule: str
    matched_pattern: str | None = None


def classify_provider_error(error: BaseException) -> ErrorClassification:
    """Classify one failed provider attempt into a retry class."""

    if isinstance(error, JobFailure):
        return ErrorClassification(error_class=error.error_class, matched_rule="job_failure")

    if isinstance(error, (TimeoutError, httpx.TimeoutException)):
        return ErrorClassification(error_class=ErrorClass.NETWORK, matched_rule="timeout")
    if isinstance(error, httpx.TransportError):
        return ErrorClassification(error_class=ErrorClass.NETWORK, matched_rule="transport")

    haystack = str(error).lower()
    status_code = error.status_code if isinstance(error, ProviderError) else None

    if status_code == 429:
        pattern = _first_match(haystack, _QUOTA_PATTERNS)
        if pattern is not None:
            return ErrorClassification(
                error_class=ErrorClass.RATE_LIMITED,
                matched_rule="quota_exhausted",
                matched_pattern=pattern,
            )
        return ErrorClassification(
            error_class=ErrorClass.TRANSIENT_SERVER,
            matched_rule="rate_limit_transient",
        )

    if status_code in _TRANSIENT_STATUS_CODES:
        return ErrorClassification(
            error_class=ErrorClass.TRANSIENT_SERVER,
            matched_rule="transient_status",
        )

    pattern = _first_match(haystack, _NETWORK_PATTERNS)
    if pattern is not None:
        return ErrorClassification(
            error_class=ErrorClass.NETWORK,
            matched_rule="network_message",
            matched_pattern=pattern,
        )

    pattern = _first_match(haystack, _TRANSIENT_PATTERNS)
    if pattern is not None:
        return ErrorClassification(
            error_class=ErrorClass.TRANSIENT_SERVER,
            matched_rule="transient_message",
            matched_pattern=pattern,
        )

    return ErrorClassification(error_class=ErrorClass.FATAL, matched_rule="fallback_fatal")


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
