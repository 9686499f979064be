"""Domain models for generation jobs and their execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class JobKind(str, Enum):
    """Kinds of media a job can produce."""

    IMAGE = "image"
    VIDEO = "video"
    SPEECH = "speech"
    COMPOSITE = "composite"


class JobStatus(str, Enum):
    """Durable job lifecycle states."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES: frozenset[JobStatus] = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


class ErrorClass(str, Enum):
    """Normalized failure classes used by retry policy."""

    RATE_LIMITED = "rate_limited"
    TRANSIENT_SERVER = "transient_server"
    NETWORK = "network"
    FATAL = "fatal"
    TIMEOUT = "timeout"
    STORE_FAILURE = "store_failure"
    CANCELED = "canceled"


class JobFailure(Exception):
    """Unrecoverable job failure carrying its class and a stable message."""

    def __init__(self, error_class: ErrorClass, message: str) -> None:
        super().__init__(message)
        self.error_class = error_class
        self.message = message


@dataclass(slots=True)
class JobRecord:
    """Readable job view for CLI and runner logic."""

    job_id: str
    kind: JobKind
    status: JobStatus
    input: dict[str, Any]
    progress: int
    result_url: str | None
    error: str | None
    error_kind: ErrorClass | None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(slots=True)
class JobUpdate:
    """Partial update applied atomically to one job record.

    ``status=None`` is a progress-only update of a processing job.
    """

    status: JobStatus | None = None
    progress: int | None = None
    result_url: str | None = None
    error: str | None = None
    error_kind: ErrorClass | None = None


@dataclass(slots=True)
class BatchItem:
    """One request inside a batch, tagged by caller correlation id."""

    correlation_id: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class BatchOutcome:
    """Per-item batch result. Exactly one of ``result``/``error`` is set."""

    correlation_id: str
    success: bool
    result: Any = None
    error: str | None = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"id": self.correlation_id, "success": self.success}
        if self.success:
            payload["result"] = self.result
        else:
            payload["error"] = self.error
        return payload
