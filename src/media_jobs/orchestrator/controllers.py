"""Controllers for generation job CLI commands."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any

from media_jobs.config import Settings
from media_jobs.http.fetcher import HttpFetcher, build_async_client
from media_jobs.orchestrator.models import BatchItem, BatchOutcome, JobKind, JobRecord, JobStatus
from media_jobs.orchestrator.providers.registry import REMOTE_PROVIDER, build_credential_pools
from media_jobs.orchestrator.repository import JobRepository
from media_jobs.orchestrator.services import JobService
from media_jobs.storage.blob_store import LocalBlobStore
from media_jobs.storage.sqlite import utc_now


@dataclass(slots=True)
class JobSubmitCommand:
    """CLI input for creating (and optionally running) one job."""

    db_path: Path | None
    kind: str
    prompt: str
    params: tuple[str, ...] = ()
    wait: bool = False
    provider: str = REMOTE_PROVIDER


@dataclass(slots=True)
class JobRunCommand:
    """CLI input for running an existing pending job."""

    db_path: Path | None
    job_id: str
    provider: str = REMOTE_PROVIDER


@dataclass(slots=True)
class JobStatusCommand:
    db_path: Path | None
    job_id: str


@dataclass(slots=True)
class JobListCommand:
    db_path: Path | None
    status: str | None
    limit: int


@dataclass(slots=True)
class JobBatchCommand:
    """CLI input for a batch of same-kind jobs, one per prompt."""

    db_path: Path | None
    kind: str
    prompts: tuple[str, ...]
    params: tuple[str, ...] = ()
    concurrency: int | None = None
    provider: str = REMOTE_PROVIDER


@dataclass(slots=True)
class JobPruneCommand:
    """CLI input for the retention sweep over terminal jobs."""

    db_path: Path | None
    older_than_days: int
    dry_run: bool = False


@dataclass(slots=True)
class KeysStatusCommand:
    db_path: Path | None


class JobCliController:
    """Coordinates job submission, execution and inspection CLI operations."""

    def submit(self, command: JobSubmitCommand) -> list[str]:
        settings = _settings(command.db_path)
        payload = {"prompt": command.prompt, **parse_params(command.params)}
        kind = parse_kind(command.kind)
        with _repository(settings) as repository:
            if not command.wait:
                record = repository.create(kind, payload)
                return [
                    f"Job created: job_id={record.job_id} kind={record.kind.value} "
                    f"status={record.status.value}",
                ]
            final = asyncio.run(
                _submit_and_wait(
                    repository=repository,
                    settings=settings,
                    provider=command.provider,
                    kind=kind,
                    payload=payload,
                ),
            )
        return render_job_lines(final)

    def run(self, command: JobRunCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            final = asyncio.run(
                _run_existing(
                    repository=repository,
                    settings=settings,
                    provider=command.provider,
                    job_id=command.job_id,
                ),
            )
        if final is None:
            return [f"Job not found: {command.job_id}"]
        return render_job_lines(final)

    def status(self, command: JobStatusCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            record = repository.get(command.job_id)
        if record is None:
            return [f"Job not found: {command.job_id}"]
        return render_job_lines(record)

    def list_jobs(self, command: JobListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        status_filter = _parse_status(command.status)
        with _repository(settings) as repository:
            jobs = repository.list_jobs(status=status_filter, limit=command.limit)

        lines = [f"Jobs: {len(jobs)}"]
        for job in jobs:
            lines.append(
                f"  {job.job_id} kind={job.kind.value} status={job.status.value} "
                f"progress={job.progress} created_at={job.created_at.isoformat()}",
            )
        return lines

    def batch(self, command: JobBatchCommand) -> list[str]:
        settings = _settings(command.db_path)
        kind = parse_kind(command.kind)
        extra = parse_params(command.params)
        items = [
            BatchItem(correlation_id=str(index), input={"prompt": prompt, **extra})
            for index, prompt in enumerate(command.prompts, start=1)
        ]
        with _repository(settings) as repository:
            outcomes = asyncio.run(
                _run_batch(
                    repository=repository,
                    settings=settings,
                    provider=command.provider,
                    kind=kind,
                    items=items,
                    concurrency=command.concurrency,
                ),
            )

        succeeded = sum(1 for outcome in outcomes if outcome.success)
        lines = [f"Batch: total={len(outcomes)} succeeded={succeeded}"]
        for outcome in outcomes:
            lines.append(f"  {json.dumps(outcome.to_dict(), ensure_ascii=False)}")
        return lines

    def prune(self, command: JobPruneCommand) -> list[str]:
        if command.older_than_days < 0:
            raise ValueError("--older-than-days must be >= 0.")
        settings = Settings.from_env(db_path=command.db_path)
        cutoff = utc_now() - timedelta(days=command.older_than_days)
        with _repository(settings) as repository:
            deleted = repository.prune_terminal(older_than=cutoff, dry_run=command.dry_run)
        verb = "Would delete" if command.dry_run else "Deleted"
        return [f"{verb} {deleted} terminal job(s) older than {cutoff.isoformat()}"]

    def keys_status(self, command: KeysStatusCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        lines = ["Credential pools:"]
        for name, pool in build_credential_pools(settings).items():
            status = pool.status()
            lines.append(
                f"  {name}: total={status.total} available={status.available} "
                f"quarantined={status.quarantined}",
            )
        return lines


def parse_kind(value: str) -> JobKind:
    try:
        return JobKind(value.strip().lower())
    except ValueError as error:
        allowed = ", ".join(kind.value for kind in JobKind)
        raise ValueError(f"Unknown job kind {value!r}; expected one of: {allowed}") from error


def parse_params(values: tuple[str, ...]) -> dict[str, Any]:
    """Parse ``key=value`` pairs; values are JSON when they parse as JSON."""

    params: dict[str, Any] = {}
    for raw in values:
        key, separator, value = raw.partition("=")
        key = key.strip()
        if not separator or not key:
            raise ValueError(f"Invalid --param {raw!r}. Expected format 'key=value'.")
        try:
            params[key] = json.loads(value)
        except ValueError:
            params[key] = value
    return params


def render_job_lines(record: JobRecord) -> list[str]:
    completed = record.completed_at.isoformat() if record.completed_at is not None else "-"
    return [
        f"Job: {record.job_id}",
        f"Kind: {record.kind.value}",
        f"Status: {record.status.value}",
        f"Progress: {record.progress}",
        f"Result: {record.result_url or '-'}",
        f"Error: {record.error or '-'}",
        f"Error kind: {record.error_kind.value if record.error_kind else '-'}",
        f"Created: {record.created_at.isoformat()}",
        f"Completed: {completed}",
    ]


async def _submit_and_wait(
    *,
    repository: JobRepository,
    settings: Settings,
    provider: str,
    kind: JobKind,
    payload: dict[str, Any],
) -> JobRecord:
    async with _service(repository=repository, settings=settings, provider=provider) as service:
        record, task = service.start_job(kind, payload)
        final = await task
    return final or record


async def _run_existing(
    *,
    repository: JobRepository,
    settings: Settings,
    provider: str,
    job_id: str,
) -> JobRecord | None:
    async with _service(repository=repository, settings=settings, provider=provider) as service:
        return await service.run_job(job_id)


async def _run_batch(  # noqa: PLR0913
    *,
    repository: JobRepository,
    settings: Settings,
    provider: str,
    kind: JobKind,
    items: list[BatchItem],
    concurrency: int | None,
) -> list[BatchOutcome]:
    async with _service(repository=repository, settings=settings, provider=provider) as service:
        return await service.run_batch(kind, items, concurrency)


@asynccontextmanager
async def _service(
    *,
    repository: JobRepository,
    settings: Settings,
    provider: str,
) -> AsyncIterator[JobService]:
    client = build_async_client(timeout_seconds=settings.retry.attempt_timeout_seconds)
    try:
        blob_store = LocalBlobStore(
            settings.storage.blob_dir,
            public_base_url=settings.storage.public_base_url,
            fetcher=HttpFetcher(
                client=client,
                max_bytes=settings.storage.max_artifact_mb * 1024 * 1024,
            ),
        )
        yield JobService(
            store=repository,
            blob_store=blob_store,
            settings=settings,
            client=client,
            provider=provider,
        )
    finally:
        await client.aclose()


def _settings(db_path: Path | None) -> Settings:
    settings = Settings.from_env(db_path=db_path)
    settings.validate()
    return settings


def _parse_status(value: str | None) -> JobStatus | None:
    if value is None:
        return None
    return JobStatus(value.strip().lower())


@contextmanager
def _repository(settings: Settings) -> Iterator[JobRepository]:
    repository = JobRepository(settings.db_path)
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()
