"""Retry policy: exponential backoff, credential rotation and request degradation."""

from __future__ import annotations

from dataclasses import dataclass

from media_jobs.orchestrator.models import ErrorClass

DEFAULT_BASE_DELAY_SECONDS = 2.0
DEFAULT_MAX_RETRIES = 5
DEFAULT_DEGRADE_AFTER_ATTEMPT = 2
DEFAULT_ATTEMPT_TIMEOUT_SECONDS = 120.0

_BACKOFF_CLASSES: frozenset[ErrorClass] = frozenset(
    {ErrorClass.TRANSIENT_SERVER, ErrorClass.NETWORK},
)


@dataclass(slots=True)
class RetryDecision:
    """What the runner should do after a failed attempt."""

    retry: bool
    delay_seconds: float = 0.0
    rotate_credential: bool = False
    degrade: bool = False
    counted: bool = True


@dataclass(slots=True)
class BackoffController:
    """Map failure class + attempt number to a retry decision.

    ``attempt`` is the 1-based number of counted failures so far. Rate-limit
    failures rotate the credential instead and never consume the budget.
    """

    base_delay_seconds: float = DEFAULT_BASE_DELAY_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    degrade_after_attempt: int = DEFAULT_DEGRADE_AFTER_ATTEMPT

    def decide(
        self,
        attempt: int,
        error_class: ErrorClass,
        *,
        highest_tier: bool = False,
    ) -> RetryDecision:
        if error_class == ErrorClass.RATE_LIMITED:
            return RetryDecision(retry=True, rotate_credential=True, counted=False)

        if error_class not in _BACKOFF_CLASSES or attempt > self.max_retries:
            return RetryDecision(retry=False)

        return RetryDecision(
            retry=True,
            delay_seconds=self.delay_for(attempt),
            degrade=highest_tier and attempt >= self.degrade_after_attempt,
        )

    def delay_for(self, attempt: int) -> float:
        return self.base_delay_seconds * (2 ** max(0, attempt - 1))
