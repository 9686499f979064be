"""Runtime configuration for the generation job engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from media_jobs.orchestrator.models import JobKind

ENV_PREFIX = "MEDIA_JOBS_"
PROVIDER_NAMES: tuple[str, ...] = ("gemini", "sora", "chat_video", "speech")
_MAX_NUMBERED_KEYS = 5
_LONG_RUNNING_KINDS: frozenset[JobKind] = frozenset({JobKind.VIDEO, JobKind.COMPOSITE})


@dataclass(slots=True)
class RetrySettings:
    """Per-attempt retry policy settings."""

    base_delay_seconds: float = 2.0
    max_retries: int = 5
    degrade_after_attempt: int = 2
    attempt_timeout_seconds: float = 120.0
    credential_cooldown_hours: float = 24.0


@dataclass(slots=True)
class RunnerSettings:
    """Job-level execution settings."""

    short_job_timeout_seconds: float = 600.0
    long_job_timeout_seconds: float = 1_800.0
    poll_interval_seconds: float = 10.0
    max_poll_attempts: int = 180
    short_job_concurrency: int = 8
    long_job_concurrency: int = 20

    def job_timeout_for(self, kind: JobKind) -> float:
        if kind in _LONG_RUNNING_KINDS:
            return self.long_job_timeout_seconds
        return self.short_job_timeout_seconds

    def concurrency_for(self, kind: JobKind) -> int:
        if kind in _LONG_RUNNING_KINDS:
            return self.long_job_concurrency
        return self.short_job_concurrency


@dataclass(slots=True)
class StorageSettings:
    """Artifact storage settings."""

    blob_dir: Path = Path(".media_jobs_blobs")
    public_base_url: str = "http://localhost:8000/media"
    max_artifact_mb: int = 512


@dataclass(slots=True)
class ProviderSettings:
    """Provider endpoints, models and credentials."""

    gemini_base_url: str = "https://generativelanguage.googleapis.com"
    gemini_model: str = "gemini-3-pro-image-preview"
    sora_base_url: str = "https://api.openai.com"
    sora_model: str = "sora2"
    chat_video_base_url: str = "https://api.openai.com"
    chat_video_model: str = "sora2"
    speech_base_url: str = "https://api.openai.com"
    speech_model: str = "tts-1"
    credentials: dict[str, tuple[str, ...]] = field(default_factory=dict)

    def credentials_for(self, provider: str) -> tuple[str, ...]:
        return self.credentials.get(provider, ())


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".media_jobs.db")
    retry: RetrySettings = field(default_factory=RetrySettings)
    runner: RunnerSettings = field(default_factory=RunnerSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    providers: ProviderSettings = field(default_factory=ProviderSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("MEDIA_JOBS_DB_PATH", ".media_jobs.db")),
            retry=RetrySettings(
                base_delay_seconds=float(os.getenv("MEDIA_JOBS_RETRY_BASE_DELAY_SECONDS", "2.0")),
                max_retries=int(os.getenv("MEDIA_JOBS_RETRY_MAX_RETRIES", "5")),
                degrade_after_attempt=int(
                    os.getenv("MEDIA_JOBS_RETRY_DEGRADE_AFTER_ATTEMPT", "2"),
                ),
                attempt_timeout_seconds=float(
                    os.getenv("MEDIA_JOBS_ATTEMPT_TIMEOUT_SECONDS", "120"),
                ),
                credential_cooldown_hours=float(
                    os.getenv("MEDIA_JOBS_CREDENTIAL_COOLDOWN_HOURS", "24"),
                ),
            ),
            runner=RunnerSettings(
                short_job_timeout_seconds=float(
                    os.getenv("MEDIA_JOBS_SHORT_JOB_TIMEOUT_SECONDS", "600"),
                ),
                long_job_timeout_seconds=float(
                    os.getenv("MEDIA_JOBS_LONG_JOB_TIMEOUT_SECONDS", "1800"),
                ),
                poll_interval_seconds=float(os.getenv("MEDIA_JOBS_POLL_INTERVAL_SECONDS", "10")),
                max_poll_attempts=int(os.getenv("MEDIA_JOBS_MAX_POLL_ATTEMPTS", "180")),
                short_job_concurrency=int(os.getenv("MEDIA_JOBS_SHORT_JOB_CONCURRENCY", "8")),
                long_job_concurrency=int(os.getenv("MEDIA_JOBS_LONG_JOB_CONCURRENCY", "20")),
            ),
            storage=StorageSettings(
                blob_dir=Path(os.getenv("MEDIA_JOBS_BLOB_DIR", ".media_jobs_blobs")),
                public_base_url=os.getenv(
                    "MEDIA_JOBS_PUBLIC_BASE_URL",
                    "http://localhost:8000/media",
                ),
                max_artifact_mb=int(os.getenv("MEDIA_JOBS_MAX_ARTIFACT_MB", "512")),
            ),
            providers=ProviderSettings(
                gemini_base_url=os.getenv(
                    "MEDIA_JOBS_GEMINI_BASE_URL",
                    "https://generativelanguage.googleapis.com",
                ),
                gemini_model=os.getenv("MEDIA_JOBS_GEMINI_MODEL", "gemini-3-pro-image-preview"),
                sora_base_url=os.getenv("MEDIA_JOBS_SORA_BASE_URL", "https://api.openai.com"),
                sora_model=os.getenv("MEDIA_JOBS_SORA_MODEL", "sora2"),
                chat_video_base_url=os.getenv(
                    "MEDIA_JOBS_CHAT_VIDEO_BASE_URL",
                    "https://api.openai.com",
                ),
                chat_video_model=os.getenv("MEDIA_JOBS_CHAT_VIDEO_MODEL", "sora2"),
                speech_base_url=os.getenv("MEDIA_JOBS_SPEECH_BASE_URL", "https://api.openai.com"),
                speech_model=os.getenv("MEDIA_JOBS_SPEECH_MODEL", "tts-1"),
                credentials={name: _collect_api_keys(name) for name in PROVIDER_NAMES},
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for values the engine cannot run with."""

        if self.retry.base_delay_seconds < 0:
            raise ValueError("MEDIA_JOBS_RETRY_BASE_DELAY_SECONDS must be >= 0.")
        if self.retry.max_retries < 0:
            raise ValueError("MEDIA_JOBS_RETRY_MAX_RETRIES must be >= 0.")
        if self.retry.degrade_after_attempt <= 0:
            raise ValueError("MEDIA_JOBS_RETRY_DEGRADE_AFTER_ATTEMPT must be > 0.")
        if self.retry.attempt_timeout_seconds <= 0:
            raise ValueError("MEDIA_JOBS_ATTEMPT_TIMEOUT_SECONDS must be > 0.")
        if self.retry.credential_cooldown_hours <= 0:
            raise ValueError("MEDIA_JOBS_CREDENTIAL_COOLDOWN_HOURS must be > 0.")
        if self.runner.short_job_timeout_seconds <= 0:
            raise ValueError("MEDIA_JOBS_SHORT_JOB_TIMEOUT_SECONDS must be > 0.")
        if self.runner.long_job_timeout_seconds <= 0:
            raise ValueError("MEDIA_JOBS_LONG_JOB_TIMEOUT_SECONDS must be > 0.")
        if self.runner.poll_interval_seconds <= 0:
            raise ValueError("MEDIA_JOBS_POLL_INTERVAL_SECONDS must be > 0.")
        if self.runner.max_poll_attempts <= 0:
            raise ValueError("MEDIA_JOBS_MAX_POLL_ATTEMPTS must be > 0.")
        if self.runner.short_job_concurrency <= 0:
            raise ValueError("MEDIA_JOBS_SHORT_JOB_CONCURRENCY must be > 0.")
        if self.runner.long_job_concurrency <= 0:
            raise ValueError("MEDIA_JOBS_LONG_JOB_CONCURRENCY must be > 0.")
        if self.storage.max_artifact_mb <= 0:
            raise ValueError("MEDIA_JOBS_MAX_ARTIFACT_MB must be > 0.")
        _validate_base_url("MEDIA_JOBS_PUBLIC_BASE_URL", self.storage.public_base_url)
        for name, value in (
            ("MEDIA_JOBS_GEMINI_BASE_URL", self.providers.gemini_base_url),
            ("MEDIA_JOBS_SORA_BASE_URL", self.providers.sora_base_url),
            ("MEDIA_JOBS_CHAT_VIDEO_BASE_URL", self.providers.chat_video_base_url),
            ("MEDIA_JOBS_SPEECH_BASE_URL", self.providers.speech_base_url),
        ):
            _validate_base_url(name, value)


def _collect_api_keys(provider: str) -> tuple[str, ...]:
    """Gather keys from ``<PROVIDER>_API_KEYS`` and numbered ``<PROVIDER>_API_KEY[_N]``."""

    stem = f"{ENV_PREFIX}{provider.upper()}_API_KEY"
    values: list[str] = []
    csv_list = os.getenv(f"{stem}S", "").strip()
    if csv_list:
        values.extend(part.strip() for part in csv_list.split(","))
    values.append(os.getenv(stem, "").strip())
    for index in range(2, _MAX_NUMBERED_KEYS + 1):
        values.append(os.getenv(f"{stem}_{index}", "").strip())

    deduped: list[str] = []
    for value in values:
        if value and value not in deduped:
            deduped.append(value)
    return tuple(deduped)


def _validate_base_url(name: str, value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            f"Invalid {name}: {value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )
