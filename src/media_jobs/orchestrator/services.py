"""Use-case services for generation jobs."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import httpx

from media_jobs.config import Settings
from media_jobs.orchestrator.backoff import BackoffController
from media_jobs.orchestrator.credentials import CredentialPool, CredentialPoolStatus
from media_jobs.orchestrator.models import (
    BatchItem,
    BatchOutcome,
    ErrorClass,
    JobFailure,
    JobKind,
    JobRecord,
    JobStatus,
)
from media_jobs.orchestrator.providers.base import ProviderAdapter
from media_jobs.orchestrator.providers.registry import (
    REMOTE_PROVIDER,
    build_adapter,
    build_credential_pools,
    provider_name_for,
)
from media_jobs.orchestrator.repository import JobStore
from media_jobs.orchestrator.runner import JobRunner
from media_jobs.orchestrator.scheduler import run_batch
from media_jobs.storage.blob_store import BlobStore

logger = logging.getLogger(__name__)


class JobService:
    """Caller-facing facade: create jobs, run them, and run batches."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        store: JobStore,
        blob_store: BlobStore,
        settings: Settings,
        client: httpx.AsyncClient,
        provider: str = REMOTE_PROVIDER,
        credential_pools: dict[str, CredentialPool] | None = None,
        adapters: dict[JobKind, ProviderAdapter] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.blob_store = blob_store
        self.settings = settings
        self.provider = provider
        self.credential_pools = credential_pools or build_credential_pools(settings)
        self._client = client
        self._adapters: dict[JobKind, ProviderAdapter] = dict(adapters or {})
        self._sleep = sleep
        self._background: set[asyncio.Task[JobRecord | None]] = set()

    def create_job(self, kind: JobKind, payload: dict[str, Any]) -> JobRecord:
        record = self.store.create(kind, payload)
        logger.info("Job %s created (%s)", record.job_id, kind.value)
        return record

    def get_job(self, job_id: str) -> JobRecord | None:
        return self.store.get(job_id)

    async def run_job(
        self,
        job_id: str,
        *,
        cancel: asyncio.Event | None = None,
    ) -> JobRecord | None:
        record = self.store.get(job_id)
        if record is None:
            return None
        return await self.runner_for(record.kind).run(job_id, cancel=cancel)

    def start_job(
        self,
        kind: JobKind,
        payload: dict[str, Any],
    ) -> tuple[JobRecord, asyncio.Task[JobRecord | None]]:
        """Create a job and run it as a detached task on the running loop."""

        record = self.create_job(kind, payload)
        task = asyncio.create_task(self.run_job(record.job_id), name=f"job-{record.job_id}")
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return record, task

    async def run_batch(
        self,
        kind: JobKind,
        items: Sequence[BatchItem],
        concurrency: int | None = None,
    ) -> list[BatchOutcome]:
        """Create and run one job per item; outcomes carry result URLs or errors."""

        async def _run_item(item: BatchItem) -> str:
            record = self.create_job(kind, item.input)
            final = await self.run_job(record.job_id)
            if final is None:
                raise JobFailure(ErrorClass.FATAL, f"Job {record.job_id} disappeared")
            if final.status != JobStatus.COMPLETED or final.result_url is None:
                raise JobFailure(
                    final.error_kind or ErrorClass.FATAL,
                    final.error or f"Job {record.job_id} ended as {final.status.value}",
                )
            return final.result_url

        effective = (
            self.settings.runner.concurrency_for(kind) if concurrency is None else concurrency
        )
        return await run_batch(items, effective, _run_item)

    def runner_for(self, kind: JobKind) -> JobRunner:
        retry = self.settings.retry
        return JobRunner(
            store=self.store,
            blob_store=self.blob_store,
            adapter=self.adapter_for(kind),
            credentials=self.credential_pools[provider_name_for(kind, provider=self.provider)],
            backoff=BackoffController(
                base_delay_seconds=retry.base_delay_seconds,
                max_retries=retry.max_retries,
                degrade_after_attempt=retry.degrade_after_attempt,
            ),
            attempt_timeout_seconds=retry.attempt_timeout_seconds,
            job_timeout_seconds=self.settings.runner.job_timeout_for(kind),
            sleep=self._sleep,
        )

    def adapter_for(self, kind: JobKind) -> ProviderAdapter:
        adapter = self._adapters.get(kind)
        if adapter is None:
            adapter = build_adapter(
                kind,
                settings=self.settings,
                client=self._client,
                provider=self.provider,
            )
            self._adapters[kind] = adapter
        return adapter

    def pool_status(self) -> dict[str, CredentialPoolStatus]:
        return {name: pool.status() for name, pool in self.credential_pools.items()}
