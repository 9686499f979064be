"""Drive one generation job from pending to a terminal state."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Coroutine
from contextlib import suppress
from dataclasses import dataclass
from typing import Any, TypeVar

from media_jobs.orchestrator.backoff import DEFAULT_ATTEMPT_TIMEOUT_SECONDS, BackoffController
from media_jobs.orchestrator.credentials import CredentialPool
from media_jobs.orchestrator.failure_classifier import classify_provider_error
from media_jobs.orchestrator.models import ErrorClass, JobFailure, JobRecord, JobStatus, JobUpdate
from media_jobs.orchestrator.providers.base import (
    Artifact,
    PollSubmission,
    ProviderAdapter,
    RemoteState,
    StreamSubmission,
    SyncSubmission,
    map_progress,
)
from media_jobs.orchestrator.repository import JobStore
from media_jobs.orchestrator.sanitization import sanitize_error
from media_jobs.orchestrator.stream_decoder import StreamTracker
from media_jobs.storage.blob_store import BlobStore, StorageError

logger = logging.getLogger(__name__)

DEFAULT_JOB_TIMEOUT_SECONDS = 600.0

CREDENTIALS_EXHAUSTED_MESSAGE = "All provider credentials exhausted (quota)"
NO_CREDENTIALS_MESSAGE = "No provider credentials configured"
NO_ARTIFACT_MESSAGE = "no artifact in response"
CANCELED_MESSAGE = "Job canceled before completion"

_T = TypeVar("_T")


@dataclass(slots=True)
class _JobExecution:
    """Mutable per-job state owned by one runner invocation."""

    job_id: str
    payload: dict[str, Any]
    progress: int
    counted_failures: int = 0


class JobRunner:
    """Execute one job at a time against a single provider adapter.

    The runner is the only writer of a record while it runs. Each provider
    call, poll and stream read is bounded by ``attempt_timeout_seconds``;
    the whole job is bounded by ``job_timeout_seconds``.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        store: JobStore,
        blob_store: BlobStore,
        adapter: ProviderAdapter,
        credentials: CredentialPool,
        backoff: BackoffController | None = None,
        attempt_timeout_seconds: float = DEFAULT_ATTEMPT_TIMEOUT_SECONDS,
        job_timeout_seconds: float = DEFAULT_JOB_TIMEOUT_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.blob_store = blob_store
        self.adapter = adapter
        self.credentials = credentials
        self.backoff = backoff or BackoffController()
        self.attempt_timeout_seconds = attempt_timeout_seconds
        self.job_timeout_seconds = job_timeout_seconds
        self._sleep = sleep

    async def run(self, job_id: str, *, cancel: asyncio.Event | None = None) -> JobRecord | None:
        """Run ``job_id`` to a terminal state and return the final record."""

        record = self.store.get(job_id)
        if record is None:
            logger.warning("Job %s not found", job_id)
            return None
        if record.is_terminal:
            logger.info("Job %s already %s", job_id, record.status.value)
            return record

        if not self.store.update(
            job_id,
            JobUpdate(status=JobStatus.PROCESSING, progress=record.progress),
        ):
            logger.warning("Job %s could not be claimed for processing", job_id)
            return self.store.get(job_id)

        execution = _JobExecution(
            job_id=job_id,
            payload=dict(record.input),
            progress=record.progress,
        )
        logger.info("Job %s started (%s via %s)", job_id, record.kind.value, self.adapter.name)
        try:
            async with asyncio.timeout(self.job_timeout_seconds):
                result_url = await _until_canceled(self._produce(execution), cancel)
        except TimeoutError:
            self._fail(
                execution,
                JobFailure(
                    ErrorClass.TIMEOUT,
                    f"Job exceeded time limit of {self.job_timeout_seconds:g}s",
                ),
            )
        except JobFailure as failure:
            self._fail(execution, failure)
        except Exception as error:  # noqa: BLE001
            logger.exception("Job %s crashed", job_id)
            self._fail(
                execution,
                JobFailure(ErrorClass.FATAL, sanitize_error(f"Internal error: {error}")),
            )
        else:
            if self.store.update(
                job_id,
                JobUpdate(status=JobStatus.COMPLETED, result_url=result_url),
            ):
                logger.info("Job %s completed: %s", job_id, result_url)
            else:
                logger.warning("Job %s completion rejected; record already terminal", job_id)
        return self.store.get(job_id)

    async def _produce(self, execution: _JobExecution) -> str:
        artifact = await self._execute(execution)
        return await self._store_artifact(execution, artifact)

    async def _execute(self, execution: _JobExecution) -> Artifact:
        while True:
            credential = self.credentials.acquire()
            if credential is None:
                raise JobFailure(ErrorClass.FATAL, NO_CREDENTIALS_MESSAGE)
            try:
                return await self._attempt(execution, credential)
            except JobFailure:
                raise
            except Exception as error:  # noqa: BLE001
                await self._handle_attempt_error(execution, credential, error)

    async def _handle_attempt_error(
        self,
        execution: _JobExecution,
        credential: str,
        error: Exception,
    ) -> None:
        classification = classify_provider_error(error)
        error_class = classification.error_class
        attempt = execution.counted_failures + 1
        decision = self.backoff.decide(
            attempt,
            error_class,
            highest_tier=self.adapter.is_highest_tier(execution.payload),
        )
        if decision.counted:
            execution.counted_failures = attempt

        if not decision.retry:
            logger.warning(
                "Job %s attempt %d failed (%s/%s), giving up: %s",
                execution.job_id,
                attempt,
                error_class.value,
                classification.matched_rule,
                error,
            )
            message = sanitize_error(str(error), known=(credential,))
            raise JobFailure(error_class, message) from error

        if decision.rotate_credential:
            if not self.credentials.mark_failed(credential):
                logger.error("Job %s: every credential hit its quota", execution.job_id)
                raise JobFailure(ErrorClass.RATE_LIMITED, CREDENTIALS_EXHAUSTED_MESSAGE) from error
            logger.warning("Job %s: credential quota exhausted, rotating", execution.job_id)

        if decision.degrade:
            degraded = self.adapter.degrade(execution.payload)
            if degraded is not None:
                logger.info(
                    "Job %s: degrading request after %d failures",
                    execution.job_id,
                    attempt,
                )
                execution.payload = degraded

        if decision.delay_seconds > 0:
            logger.warning(
                "Job %s attempt %d failed (%s), retrying in %.1fs: %s",
                execution.job_id,
                attempt,
                error_class.value,
                decision.delay_seconds,
                error,
            )
            await self._sleep(decision.delay_seconds)

    async def _attempt(self, execution: _JobExecution, credential: str) -> Artifact:
        submission = await self._bounded(self.adapter.submit(execution.payload, credential))
        if isinstance(submission, SyncSubmission):
            return submission.artifact
        if isinstance(submission, PollSubmission):
            self._report_progress(execution, self.adapter.progress_range[0])
            return await self._poll(execution, submission.remote_id, credential)
        if isinstance(submission, StreamSubmission):
            return await self._consume_stream(execution, submission)
        raise JobFailure(ErrorClass.FATAL, f"Unsupported submission: {type(submission).__name__}")

    async def _poll(self, execution: _JobExecution, remote_id: str, credential: str) -> Artifact:
        consecutive_failures = 0
        for poll_number in range(1, self.adapter.max_poll_attempts + 1):
            await self._sleep(self.adapter.poll_interval_seconds)
            try:
                status = await self._bounded(self.adapter.poll_status(remote_id, credential))
            except Exception as error:  # noqa: BLE001
                consecutive_failures += 1
                error_class = classify_provider_error(error).error_class
                if error_class == ErrorClass.RATE_LIMITED:
                    error_class = ErrorClass.TRANSIENT_SERVER
                decision = self.backoff.decide(consecutive_failures, error_class)
                if not decision.retry:
                    message = sanitize_error(str(error), known=(credential,))
                    raise JobFailure(error_class, message) from error
                logger.warning(
                    "Job %s poll #%d of %s failed (%s): %s",
                    execution.job_id,
                    poll_number,
                    remote_id,
                    error_class.value,
                    error,
                )
                await self._sleep(decision.delay_seconds)
                continue

            consecutive_failures = 0
            logger.debug(
                "Job %s poll #%d: %s %d%%",
                execution.job_id,
                poll_number,
                status.state.value,
                status.progress,
            )
            if status.state == RemoteState.FAILED:
                raise JobFailure(
                    ErrorClass.FATAL,
                    sanitize_error(status.error or "Remote generation failed"),
                )
            if status.state == RemoteState.COMPLETED:
                if status.artifact is None:
                    raise JobFailure(ErrorClass.FATAL, NO_ARTIFACT_MESSAGE)
                self._report_progress(execution, self.adapter.progress_range[1])
                return status.artifact
            self._report_progress(
                execution,
                map_progress(status.progress, self.adapter.progress_range),
            )

        raise JobFailure(
            ErrorClass.TIMEOUT,
            f"Remote job {remote_id} still running after {self.adapter.max_poll_attempts} polls",
        )

    async def _consume_stream(
        self,
        execution: _JobExecution,
        submission: StreamSubmission,
    ) -> Artifact:
        tracker = StreamTracker(artifact_extension=submission.artifact_extension)
        chunks = submission.chunks
        try:
            while True:
                try:
                    chunk = await self._bounded(_next_chunk(chunks))
                except StopAsyncIteration:
                    break
                tracker.feed(chunk)
                if tracker.last_progress is not None:
                    self._report_progress(
                        execution,
                        map_progress(tracker.last_progress, self.adapter.progress_range),
                    )
                if tracker.ready() and tracker.artifact_url is not None:
                    return Artifact(url=tracker.artifact_url)
            tracker.finish()
        finally:
            await _close_chunks(chunks)

        if tracker.ready() and tracker.artifact_url is not None:
            return Artifact(url=tracker.artifact_url)
        raise JobFailure(ErrorClass.FATAL, NO_ARTIFACT_MESSAGE)

    async def _store_artifact(self, execution: _JobExecution, artifact: Artifact) -> str:
        if artifact.content is not None:
            try:
                return await self._bounded(
                    self.blob_store.upload(artifact.content, artifact.mime_type),
                )
            except (StorageError, TimeoutError) as error:
                raise JobFailure(
                    ErrorClass.STORE_FAILURE,
                    sanitize_error(f"Failed to store artifact: {error}"),
                ) from error

        provider_url = artifact.url or ""
        try:
            return await self._bounded(self.blob_store.upload_from_url(provider_url))
        except (StorageError, TimeoutError) as error:
            logger.warning(
                "Job %s: re-hosting %s failed (%s); keeping provider URL",
                execution.job_id,
                provider_url,
                error,
            )
            return provider_url

    def _report_progress(self, execution: _JobExecution, progress: int) -> None:
        if progress <= execution.progress:
            return
        execution.progress = progress
        if not self.store.update(execution.job_id, JobUpdate(progress=progress)):
            logger.debug("Job %s progress %d not persisted", execution.job_id, progress)

    def _fail(self, execution: _JobExecution, failure: JobFailure) -> None:
        if self.store.update(
            execution.job_id,
            JobUpdate(
                status=JobStatus.FAILED,
                error=failure.message,
                error_kind=failure.error_class,
            ),
        ):
            logger.warning(
                "Job %s failed (%s): %s",
                execution.job_id,
                failure.error_class.value,
                failure.message,
            )
        else:
            logger.warning("Job %s failure rejected; record already terminal", execution.job_id)

    async def _bounded(self, awaitable: Awaitable[_T]) -> _T:
        return await asyncio.wait_for(awaitable, timeout=self.attempt_timeout_seconds)


async def _until_canceled(work: Coroutine[Any, Any, _T], cancel: asyncio.Event | None) -> _T:
    if cancel is None:
        return await work
    work_task = asyncio.ensure_future(work)
    cancel_task = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait(
            {work_task, cancel_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
    finally:
        cancel_task.cancel()
        if not work_task.done():
            work_task.cancel()
            with suppress(asyncio.CancelledError):
                await work_task
    if work_task in done:
        return work_task.result()
    raise JobFailure(ErrorClass.CANCELED, CANCELED_MESSAGE)


async def _next_chunk(chunks: AsyncIterator[bytes]) -> bytes:
    return await anext(chunks)


async def _close_chunks(chunks: AsyncIterator[bytes]) -> None:
    aclose = getattr(chunks, "aclose", None)
    if aclose is None:
        return
    with suppress(RuntimeError):
        await aclose()
