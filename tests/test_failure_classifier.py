from __future__ import annotations

import allure
import httpx

from media_jobs.orchestrator.failure_classifier import classify_provider_error
from media_jobs.orchestrator.models import ErrorClass, JobFailure
from media_jobs.orchestrator.providers.base import ProviderError

pytestmark = [
    allure.epic("Job Execution"),
    allure.feature("Retries & Failure Classes"),
]


def test_classifier_detects_quota_exhaustion_as_rate_limited() -> None:
    result = classify_provider_error(
        ProviderError("RESOURCE_EXHAUSTED: Quota exceeded for model", status_code=429),
    )
    assert result.error_class == ErrorClass.RATE_LIMITED
    assert result.matched_rule == "quota_exhausted"
    assert result.matched_pattern == "resource_exhausted"


def test_classifier_treats_plain_429_as_transient() -> None:
    result = classify_provider_error(ProviderError("Slow down", status_code=429))
    assert result.error_class == ErrorClass.TRANSIENT_SERVER
    assert result.matched_rule == "rate_limit_transient"


def test_classifier_maps_5xx_to_transient_server() -> None:
    for status_code in (500, 502, 503, 504):
        result = classify_provider_error(ProviderError("boom", status_code=status_code))
        assert result.error_class == ErrorClass.TRANSIENT_SERVER


def test_classifier_detects_transport_and_timeout_errors_as_network() -> None:
    assert classify_provider_error(httpx.ConnectError("refused")).error_class == ErrorClass.NETWORK
    assert classify_provider_error(httpx.ReadTimeout("slow")).matched_rule == "timeout"
    assert classify_provider_error(TimeoutError()).error_class == ErrorClass.NETWORK


def test_classifier_uses_message_patterns() -> None:
    network = classify_provider_error(RuntimeError("TypeError: fetch failed"))
    assert network.error_class == ErrorClass.NETWORK
    assert network.matched_pattern == "fetch failed"

    transient = classify_provider_error(RuntimeError("The model is overloaded"))
    assert transient.error_class == ErrorClass.TRANSIENT_SERVER
    assert transient.matched_pattern == "overloaded"


def test_classifier_falls_back_to_fatal() -> None:
    result = classify_provider_error(ProviderError("Invalid prompt", status_code=400))
    assert result.error_class == ErrorClass.FATAL
    assert result.matched_rule == "fallback_fatal"


def test_classifier_keeps_class_of_job_failures() -> None:
    result = classify_provider_error(JobFailure(ErrorClass.STORE_FAILURE, "disk full"))
    assert result.error_class == ErrorClass.STORE_FAILURE
    assert result.matched_rule == "job_failure"
