"""Test doubles shared by runner and service tests."""

from __future__ import annotations

import inspect
from typing import Any

from media_jobs.orchestrator.models import JobKind, JobRecord, JobUpdate
from media_jobs.orchestrator.repository import JobRepository
from media_jobs.storage.blob_store import StorageError


class MemoryBlobStore:
    """Blob store double that keeps uploads in memory."""

    def __init__(self, *, fail_upload: bool = False, fail_rehost: bool = False) -> None:
        self.fail_upload = fail_upload
        self.fail_rehost = fail_rehost
        self.uploads: list[tuple[bytes, str]] = []
        self.rehosted: list[str] = []

    async def upload(self, content: bytes, mime_type: str) -> str:
        if self.fail_upload:
            raise StorageError("disk full")
        self.uploads.append((content, mime_type))
        return f"https://blobs.test/{len(self.uploads)}"

    async def upload_from_url(self, url: str) -> str:
        if self.fail_rehost:
            raise StorageError(f"Failed to download artifact from {url}: HTTP 403")
        self.rehosted.append(url)
        return f"https://blobs.test/rehosted/{len(self.rehosted)}"


class RecordingStore:
    """Job store wrapper remembering every accepted update."""

    def __init__(self, inner: JobRepository) -> None:
        self.inner = inner
        self.updates: list[JobUpdate] = []

    def create(self, kind: JobKind, payload: dict[str, Any]) -> JobRecord:
        return self.inner.create(kind, payload)

    def get(self, job_id: str) -> JobRecord | None:
        return self.inner.get(job_id)

    def update(self, job_id: str, change: JobUpdate) -> bool:
        applied = self.inner.update(job_id, change)
        if applied:
            self.updates.append(change)
        return applied

    def progress_updates(self) -> list[int]:
        return [
            change.progress
            for change in self.updates
            if change.status is None and change.progress is not None
        ]


class SleepRecorder:
    """Replacement for ``asyncio.sleep`` that records delays and returns at once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class ScriptedAdapter:
    """Provider adapter driven by scripted steps.

    Each step is a result, an exception, or a ``(payload, credential)`` callable
    returning either (possibly awaitable). The last step repeats once the script
    runs out.
    """

    name = "scripted"
    progress_range = (20, 90)

    def __init__(
        self,
        *,
        submissions: list[Any] | None = None,
        statuses: list[Any] | None = None,
        poll_interval_seconds: float = 0.0,
        max_poll_attempts: int = 10,
    ) -> None:
        self.submissions = list(submissions or [])
        self.statuses = list(statuses or [])
        self.poll_interval_seconds = poll_interval_seconds
        self.max_poll_attempts = max_poll_attempts
        self.submit_calls: list[tuple[dict[str, Any], str]] = []
        self.poll_calls: list[str] = []

    async def submit(self, payload: dict[str, Any], credential: str) -> Any:
        self.submit_calls.append((dict(payload), credential))
        return await _play(self.submissions, payload, credential)

    async def poll_status(self, remote_id: str, credential: str) -> Any:
        self.poll_calls.append(remote_id)
        return await _play(self.statuses, remote_id, credential)

    def degrade(self, payload: dict[str, Any]) -> dict[str, Any] | None:
        return None

    def is_highest_tier(self, payload: dict[str, Any]) -> bool:
        return False


async def _play(steps: list[Any], *args: Any) -> Any:
    step = steps.pop(0) if len(steps) > 1 else steps[0]
    result = step(*args) if callable(step) else step
    if inspect.isawaitable(result):
        result = await result
    if isinstance(result, BaseException):
        raise result
    return result


