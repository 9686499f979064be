from __future__ import annotations

import allure

from media_jobs.orchestrator.backoff import BackoffController
from media_jobs.orchestrator.models import ErrorClass

pytestmark = [
    allure.epic("Job Execution"),
    allure.feature("Retries & Failure Classes"),
]


def test_backoff_doubles_delay_until_budget_is_spent() -> None:
    controller = BackoffController()

    delays = []
    for attempt in range(1, 6):
        decision = controller.decide(attempt, ErrorClass.TRANSIENT_SERVER)
        assert decision.retry is True
        assert decision.counted is True
        delays.append(decision.delay_seconds)

    assert delays == [2.0, 4.0, 8.0, 16.0, 32.0]
    assert controller.decide(6, ErrorClass.NETWORK).retry is False


def test_backoff_rotates_credential_without_consuming_budget_on_rate_limit() -> None:
    decision = BackoffController().decide(99, ErrorClass.RATE_LIMITED)

    assert decision.retry is True
    assert decision.rotate_credential is True
    assert decision.counted is False
    assert decision.delay_seconds == 0.0


def test_backoff_never_retries_fatal_timeout_or_store_failures() -> None:
    controller = BackoffController()
    for error_class in (ErrorClass.FATAL, ErrorClass.TIMEOUT, ErrorClass.STORE_FAILURE):
        assert controller.decide(1, error_class).retry is False


def test_backoff_degrades_highest_tier_from_configured_attempt() -> None:
    controller = BackoffController(degrade_after_attempt=2)

    assert controller.decide(1, ErrorClass.TRANSIENT_SERVER, highest_tier=True).degrade is False
    assert controller.decide(2, ErrorClass.TRANSIENT_SERVER, highest_tier=True).degrade is True
    assert controller.decide(3, ErrorClass.TRANSIENT_SERVER, highest_tier=False).degrade is False


def test_backoff_respects_custom_base_delay() -> None:
    controller = BackoffController(base_delay_seconds=0.5, max_retries=2)

    assert controller.delay_for(1) == 0.5
    assert controller.delay_for(3) == 2.0
    assert controller.decide(3, ErrorClass.NETWORK).retry is False
