from __future__ import annotations

import asyncio

import allure
import httpx
import pytest
from doubles import MemoryBlobStore, RecordingStore, SleepRecorder

from media_jobs.config import Settings
from media_jobs.orchestrator.models import BatchItem, JobKind, JobRecord, JobStatus
from media_jobs.orchestrator.providers.registry import ECHO_PROVIDER, REMOTE_PROVIDER
from media_jobs.orchestrator.runner import NO_CREDENTIALS_MESSAGE
from media_jobs.orchestrator.services import JobService

pytestmark = [
    allure.epic("Job Execution"),
    allure.feature("Job Service"),
]


def _offline_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(404)))


def _service(
    store: RecordingStore,
    blobs: MemoryBlobStore,
    sleeps: SleepRecorder,
    client: httpx.AsyncClient,
    *,
    provider: str = ECHO_PROVIDER,
) -> JobService:
    return JobService(
        store=store,
        blob_store=blobs,
        settings=Settings(),
        client=client,
        provider=provider,
        sleep=sleeps,
    )


def test_echo_image_job_runs_to_completion(
    store: RecordingStore,
    blobs: MemoryBlobStore,
    sleeps: SleepRecorder,
) -> None:
    async def scenario() -> JobRecord | None:
        async with _offline_client() as client:
            service = _service(store, blobs, sleeps, client)
            record = service.create_job(JobKind.IMAGE, {"prompt": "a red fox"})
            assert service.get_job(record.job_id) is not None
            return await service.run_job(record.job_id)

    final = asyncio.run(scenario())

    assert final is not None
    assert final.status == JobStatus.COMPLETED
    assert blobs.uploads == [(b"a red fox", "text/plain")]


def test_start_job_runs_in_background(
    store: RecordingStore,
    blobs: MemoryBlobStore,
    sleeps: SleepRecorder,
) -> None:
    async def scenario() -> tuple[JobRecord, JobRecord | None]:
        async with _offline_client() as client:
            service = _service(store, blobs, sleeps, client)
            record, task = service.start_job(JobKind.VIDEO, {"prompt": "ocean waves"})
            return record, await task

    record, final = asyncio.run(scenario())

    assert record.status == JobStatus.PENDING
    assert final is not None
    assert final.status == JobStatus.COMPLETED
    assert store.progress_updates()[0] == 20


def test_echo_composite_job_rehosts_streamed_link(
    store: RecordingStore,
    blobs: MemoryBlobStore,
    sleeps: SleepRecorder,
) -> None:
    async def scenario() -> JobRecord | None:
        async with _offline_client() as client:
            service = _service(store, blobs, sleeps, client)
            record = service.create_job(JobKind.COMPOSITE, {"prompt": "cat surfing"})
            return await service.run_job(record.job_id)

    final = asyncio.run(scenario())

    assert final is not None
    assert final.status == JobStatus.COMPLETED
    assert final.result_url == "https://blobs.test/rehosted/1"
    assert blobs.rehosted[0].startswith("https://echo.invalid/artifacts/")


def test_batch_reports_each_item_independently(
    store: RecordingStore,
    blobs: MemoryBlobStore,
    sleeps: SleepRecorder,
) -> None:
    items = [
        BatchItem(correlation_id="first", input={"prompt": "one"}),
        BatchItem(correlation_id="empty", input={"prompt": ""}),
        BatchItem(correlation_id="third", input={"prompt": "three"}),
    ]

    async def scenario() -> list:
        async with _offline_client() as client:
            service = _service(store, blobs, sleeps, client)
            return await service.run_batch(JobKind.IMAGE, items, concurrency=2)

    outcomes = asyncio.run(scenario())

    assert [outcome.correlation_id for outcome in outcomes] == ["first", "empty", "third"]
    assert [outcome.success for outcome in outcomes] == [True, False, True]
    assert outcomes[1].error == "Echo prompt is required"
    assert all(str(outcome.result).startswith("https://blobs.test/") for outcome in outcomes[::2])


def test_batch_rejects_explicit_zero_concurrency(
    store: RecordingStore,
    blobs: MemoryBlobStore,
    sleeps: SleepRecorder,
) -> None:
    items = [BatchItem(correlation_id="only", input={"prompt": "one"})]

    async def scenario() -> list:
        async with _offline_client() as client:
            service = _service(store, blobs, sleeps, client)
            return await service.run_batch(JobKind.IMAGE, items, concurrency=0)

    with pytest.raises(ValueError, match="concurrency must be > 0, got 0"):
        asyncio.run(scenario())
    assert store.inner.list_jobs() == []


def test_remote_provider_without_keys_fails_job(
    store: RecordingStore,
    blobs: MemoryBlobStore,
    sleeps: SleepRecorder,
) -> None:
    async def scenario() -> JobRecord | None:
        async with _offline_client() as client:
            service = _service(store, blobs, sleeps, client, provider=REMOTE_PROVIDER)
            record = service.create_job(JobKind.IMAGE, {"prompt": "x"})
            return await service.run_job(record.job_id)

    final = asyncio.run(scenario())

    assert final is not None
    assert final.status == JobStatus.FAILED
    assert final.error == NO_CREDENTIALS_MESSAGE


def test_pool_status_lists_every_provider(
    store: RecordingStore,
    blobs: MemoryBlobStore,
    sleeps: SleepRecorder,
) -> None:
    async def scenario() -> dict:
        async with _offline_client() as client:
            return _service(store, blobs, sleeps, client).pool_status()

    statuses = asyncio.run(scenario())

    assert set(statuses) == {"gemini", "sora", "chat_video", "speech", "echo"}
    assert statuses["echo"].total == 1
