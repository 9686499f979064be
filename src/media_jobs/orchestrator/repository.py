"""Persistent job store backed by SQLModel + SQLite."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol
from uuid import uuid4

from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlmodel import Session, col, delete, select

from media_jobs.orchestrator.models import (
    TERMINAL_STATUSES,
    ErrorClass,
    JobKind,
    JobRecord,
    JobStatus,
    JobUpdate,
)
from media_jobs.storage.sqlite import (
    aware_utc,
    build_sqlite_engine,
    current_revision,
    migrate,
    naive_utc,
    utc_now,
)
from media_jobs.storage.sqlmodel_models import GenerationJob

logger = logging.getLogger(__name__)

DEFAULT_BUSY_TIMEOUT_MS = 5_000

_ALLOWED_FROM: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PROCESSING: frozenset({JobStatus.PENDING}),
    JobStatus.COMPLETED: frozenset({JobStatus.PROCESSING}),
    JobStatus.FAILED: frozenset({JobStatus.PENDING, JobStatus.PROCESSING}),
}


class JobStore(Protocol):
    """Persistence contract used by the job runner."""

    def create(self, kind: JobKind, payload: dict[str, Any]) -> JobRecord: ...

    def get(self, job_id: str) -> JobRecord | None: ...

    def update(self, job_id: str, change: JobUpdate) -> bool: ...


class JobRepository:
    """Job persistence facade backed by SQLModel + SQLite.

    Every ``update`` is one conditional ``UPDATE`` statement, so terminal
    records can never be overwritten and concurrent writers race safely.
    """

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        migrate(self.db_path)

    def schema_revision(self) -> str | None:
        return current_revision(self.engine)

    def create(self, kind: JobKind, payload: dict[str, Any]) -> JobRecord:
        """Create a pending job."""

        now = naive_utc(utc_now())
        with Session(self.engine) as session:
            row = GenerationJob(
                job_id=str(uuid4()),
                kind=kind.value,
                status=JobStatus.PENDING.value,
                input_json=json.dumps(payload, ensure_ascii=False, sort_keys=True),
                progress=0,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_job_record(row)

    def get(self, job_id: str) -> JobRecord | None:
        with Session(self.engine) as session:
            row = session.get(GenerationJob, job_id)
            if row is None:
                return None
            return _to_job_record(row)

    def update(self, job_id: str, change: JobUpdate) -> bool:
        """Apply ``change`` atomically; return False when the guard rejected it.

        A rejected update means the record is missing, already terminal, or
        not in a state the requested transition starts from.
        """

        values, allowed_from = _build_update(change)
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(GenerationJob)
                .where(
                    col(GenerationJob.job_id) == job_id,
                    col(GenerationJob.status).in_([status.value for status in allowed_from]),
                )
                .values(**values),
            )
            if result.rowcount != 1:
                session.rollback()
                logger.debug(
                    "Rejected update for job %s: status=%s",
                    job_id,
                    change.status.value if change.status else None,
                )
                return False
            session.commit()
            return True

    def list_jobs(
        self,
        *,
        status: JobStatus | None = None,
        limit: int = 50,
    ) -> list[JobRecord]:
        """List recent jobs, optionally filtered by status."""

        with Session(self.engine) as session:
            statement = select(GenerationJob).order_by(col(GenerationJob.created_at).desc())
            if status is not None:
                statement = statement.where(GenerationJob.status == status.value)
            rows = session.exec(statement.limit(limit)).all()
        return [_to_job_record(row) for row in rows]

    def prune_terminal(self, *, older_than: datetime, dry_run: bool = False) -> int:
        """Delete terminal jobs last updated before ``older_than``."""

        cutoff_db = naive_utc(older_than)
        condition = (
            col(GenerationJob.status).in_([status.value for status in TERMINAL_STATUSES]),
            col(GenerationJob.updated_at) < cutoff_db,
        )
        with Session(self.engine) as session:
            matched = int(
                session.exec(
                    select(func.count()).select_from(GenerationJob).where(*condition),
                ).one(),
            )
            if not dry_run and matched > 0:
                session.exec(delete(GenerationJob).where(*condition))
                session.commit()
        return matched


def _build_update(change: JobUpdate) -> tuple[dict[str, Any], frozenset[JobStatus]]:
    now = naive_utc(utc_now())
    values: dict[str, Any] = {"updated_at": now}

    if change.status is None:
        if change.progress is None:
            raise ValueError("Progress-only update requires progress.")
        if change.result_url is not None or change.error is not None:
            raise ValueError("Progress-only update cannot set result_url or error.")
        values["progress"] = _monotonic_progress(change.progress)
        return values, frozenset({JobStatus.PROCESSING})

    allowed_from = _ALLOWED_FROM.get(change.status)
    if allowed_from is None:
        raise ValueError(f"Unsupported target status: {change.status.value}")

    values["status"] = change.status.value
    if change.status == JobStatus.COMPLETED:
        if not change.result_url or change.error is not None:
            raise ValueError("Completed update requires result_url and no error.")
        values["result_url"] = change.result_url
        values["progress"] = 100
        values["completed_at"] = now
    elif change.status == JobStatus.FAILED:
        if not change.error or change.result_url is not None:
            raise ValueError("Failed update requires error and no result_url.")
        values["error"] = change.error
        values["error_kind"] = (change.error_kind or ErrorClass.FATAL).value
        values["completed_at"] = now
        if change.progress is not None:
            values["progress"] = _monotonic_progress(change.progress)
    else:
        if change.result_url is not None or change.error is not None:
            raise ValueError("Processing update cannot set result_url or error.")
        if change.progress is not None:
            values["progress"] = _monotonic_progress(change.progress)
    return values, allowed_from


def _monotonic_progress(progress: int) -> Any:
    clamped = max(0, min(100, progress))
    return func.max(col(GenerationJob.progress), clamped)


def _to_job_record(row: GenerationJob) -> JobRecord:
    return JobRecord(
        job_id=row.job_id,
        kind=JobKind(row.kind),
        status=JobStatus(row.status),
        input=json.loads(row.input_json),
        progress=row.progress,
        result_url=row.result_url,
        error=row.error,
        error_kind=ErrorClass(row.error_kind) if row.error_kind is not None else None,
        created_at=aware_utc(row.created_at),
        updated_at=aware_utc(row.updated_at),
        completed_at=(
            aware_utc(row.completed_at) if row.completed_at is not None else None
        ),
    )
