from __future__ import annotations

import allure

from media_jobs.orchestrator.sanitization import sanitize_error

pytestmark = [
    allure.epic("Job Execution"),
    allure.feature("Retries & Failure Classes"),
]


def test_sanitize_error_redacts_credentials() -> None:
    text = (
        "401 Unauthorized: Authorization: Bearer abcdefghijklmnop "
        "sk-proj1234567890 AIzaSyA1234567890abcdefghijkl "
        "https://cdn.test/v.mp4?sig=zzz&token=secret GEMINI_API_KEY=plain"
    )

    sanitized = sanitize_error(text)

    assert "abcdefghijklmnop" not in sanitized
    assert "sk-proj1234567890" not in sanitized
    assert "AIzaSyA1234567890abcdefghijkl" not in sanitized
    assert "token=[redacted]" in sanitized
    assert "plain" not in sanitized
    assert "Authorization: Bearer [redacted]" in sanitized


def test_sanitize_error_collapses_whitespace_and_truncates() -> None:
    assert sanitize_error("  line one\n\n line two  ") == "line one line two"
    assert sanitize_error("   ") == ""

    long_message = sanitize_error("x" * 500, max_chars=50)
    assert len(long_message) == 50
    assert long_message.endswith("...")


def test_sanitize_error_redacts_keyed_urls_and_headers() -> None:
    text = (
        "GET https://generativelanguage.test/v1beta/models/x:generateContent?key=AIzaShort "
        "failed; x-goog-api-key: abcdefgh12345678; "
        "https://bucket.test/a.mp4?X-Amz-Signature=deadbeef&X-Amz-Date=20261016"
    )

    sanitized = sanitize_error(text)

    assert "AIzaShort" not in sanitized
    assert "?key=[redacted]" in sanitized
    assert "x-goog-api-key: [redacted]" in sanitized
    assert "deadbeef" not in sanitized
    assert "X-Amz-Date=20261016" in sanitized


def test_sanitize_error_redacts_known_credentials_of_any_shape() -> None:
    sanitized = sanitize_error(
        "upstream rejected credential custom-key-42",
        known=("custom-key-42",),
    )

    assert sanitized == "upstream rejected credential [redacted]"
