from __future__ import annotations

from pathlib import Path

import allure
import pytest

from media_jobs.config import PROVIDER_NAMES, RunnerSettings, Settings, StorageSettings
from media_jobs.orchestrator.models import JobKind

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Settings"),
]


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for provider in PROVIDER_NAMES:
        stem = f"MEDIA_JOBS_{provider.upper()}_API_KEY"
        monkeypatch.delenv(f"{stem}S", raising=False)
        monkeypatch.delenv(stem, raising=False)
        for index in range(2, 6):
            monkeypatch.delenv(f"{stem}_{index}", raising=False)
    return monkeypatch


def test_from_env_collects_listed_and_numbered_keys(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("MEDIA_JOBS_GEMINI_API_KEYS", "key-a, key-b,")
    clean_env.setenv("MEDIA_JOBS_GEMINI_API_KEY", "key-c")
    clean_env.setenv("MEDIA_JOBS_GEMINI_API_KEY_2", "key-a")
    clean_env.setenv("MEDIA_JOBS_GEMINI_API_KEY_5", "key-d")
    clean_env.setenv("MEDIA_JOBS_SORA_API_KEY", "sora-1")

    settings = Settings.from_env()

    assert settings.providers.credentials_for("gemini") == ("key-a", "key-b", "key-c", "key-d")
    assert settings.providers.credentials_for("sora") == ("sora-1",)
    assert settings.providers.credentials_for("speech") == ()


def test_from_env_reads_runner_and_storage_overrides(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("MEDIA_JOBS_POLL_INTERVAL_SECONDS", "2.5")
    clean_env.setenv("MEDIA_JOBS_LONG_JOB_CONCURRENCY", "4")
    clean_env.setenv("MEDIA_JOBS_BLOB_DIR", "/tmp/media-blobs")
    clean_env.setenv("MEDIA_JOBS_MAX_ARTIFACT_MB", "64")

    settings = Settings.from_env(db_path=Path("custom.db"))

    assert settings.db_path == Path("custom.db")
    assert settings.runner.poll_interval_seconds == 2.5
    assert settings.runner.concurrency_for(JobKind.COMPOSITE) == 4
    assert settings.storage.blob_dir == Path("/tmp/media-blobs")
    assert settings.storage.max_artifact_mb == 64


def test_runner_settings_split_short_and_long_jobs() -> None:
    runner = RunnerSettings()

    assert runner.job_timeout_for(JobKind.IMAGE) == 600.0
    assert runner.job_timeout_for(JobKind.SPEECH) == 600.0
    assert runner.job_timeout_for(JobKind.VIDEO) == 1_800.0
    assert runner.concurrency_for(JobKind.IMAGE) == 8
    assert runner.concurrency_for(JobKind.VIDEO) == 20


def test_validate_accepts_defaults() -> None:
    Settings().validate()


def test_validate_rejects_relative_public_url() -> None:
    settings = Settings(storage=StorageSettings(public_base_url="/media"))

    with pytest.raises(ValueError, match="Invalid MEDIA_JOBS_PUBLIC_BASE_URL"):
        settings.validate()


def test_validate_rejects_non_positive_concurrency() -> None:
    settings = Settings(runner=RunnerSettings(short_job_concurrency=0))

    with pytest.raises(ValueError, match="MEDIA_JOBS_SHORT_JOB_CONCURRENCY"):
        settings.validate()
