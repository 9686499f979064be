"""Provider adapter interface for generation job execution."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

import httpx

DEFAULT_PROGRESS_RANGE: tuple[int, int] = (20, 90)
DEFAULT_POLL_INTERVAL_SECONDS = 10.0
DEFAULT_MAX_POLL_ATTEMPTS = 180


class ProviderError(RuntimeError):
    """Provider call failed with an explicit error response."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"HTTP {self.status_code}: {self.message}"


@dataclass(slots=True)
class Artifact:
    """Generated media, either as raw bytes or as a provider-hosted URL."""

    content: bytes | None = None
    mime_type: str = "application/octet-stream"
    url: str | None = None

    def __post_init__(self) -> None:
        if (self.content is None) == (self.url is None):
            raise ValueError("Artifact requires exactly one of content or url.")


@dataclass(slots=True)
class PollSubmission:
    """Provider accepted the job; completion must be polled by remote id."""

    remote_id: str


@dataclass(slots=True)
class StreamSubmission:
    """Provider answers with an incremental byte stream."""

    chunks: AsyncIterator[bytes]
    artifact_extension: str = ".mp4"


@dataclass(slots=True)
class SyncSubmission:
    """Provider answered with the final artifact directly."""

    artifact: Artifact


Submission = PollSubmission | StreamSubmission | SyncSubmission


class RemoteState(str, Enum):
    """Remote job states reported by polling providers."""

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class RemoteStatus:
    """One poll observation of a remote job."""

    state: RemoteState
    progress: int = 0
    artifact: Artifact | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in {RemoteState.COMPLETED, RemoteState.FAILED}


class ProviderAdapter(Protocol):
    """Protocol implemented by generation providers."""

    name: str
    progress_range: tuple[int, int]
    poll_interval_seconds: float
    max_poll_attempts: int

    async def submit(self, payload: dict[str, Any], credential: str) -> Submission:
        """Start one generation attempt."""

    async def poll_status(self, remote_id: str, credential: str) -> RemoteStatus:
        """Fetch current remote status; completed statuses carry the artifact."""

    def degrade(self, payload: dict[str, Any]) -> dict[str, Any] | None:
        """Return a cheaper variant of the request, or None at the lowest tier."""

    def is_highest_tier(self, payload: dict[str, Any]) -> bool:
        """Whether the request asks for the most expensive quality tier."""


def map_progress(remote_progress: int, progress_range: tuple[int, int]) -> int:
    """Map remote 0..100 progress into the adapter's local sub-range."""

    low, high = progress_range
    clamped = max(0, min(100, remote_progress))
    return low + (high - low) * clamped // 100


def raise_for_provider_status(response: httpx.Response, *, provider: str) -> None:
    """Turn a non-2xx provider response into ``ProviderError`` with its body."""

    if response.is_success:
        return
    raise ProviderError(
        f"{provider} API error: {response.text.strip()[:1_000]}",
        status_code=response.status_code,
    )


def parse_json_body(response: httpx.Response, *, provider: str) -> dict[str, Any]:
    """Decode a JSON object body or raise ``ProviderError`` for malformed responses."""

    try:
        payload = response.json()
    except ValueError as error:
        raise ProviderError(f"Malformed {provider} response: {error}") from error
    if not isinstance(payload, dict):
        raise ProviderError(f"Malformed {provider} response: expected a JSON object")
    return payload


def bearer_headers(credential: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {credential}", "Accept": "application/json"}
