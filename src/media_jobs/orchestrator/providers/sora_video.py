"""Sora2 video adapter: create a remote job, then poll it to completion."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from media_jobs.http.fetcher import DEFAULT_MAX_BYTES
from media_jobs.orchestrator.providers.base import (
    DEFAULT_MAX_POLL_ATTEMPTS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_PROGRESS_RANGE,
    Artifact,
    PollSubmission,
    ProviderError,
    RemoteState,
    RemoteStatus,
    bearer_headers,
    parse_json_body,
    raise_for_provider_status,
)

logger = logging.getLogger(__name__)

ORIENTATIONS: tuple[str, ...] = ("landscape", "portrait")
LONG_DURATION_SECONDS = 15
SHORT_DURATION_SECONDS = 10

_REMOTE_STATES: dict[str, RemoteState] = {
    "queued": RemoteState.QUEUED,
    "pending": RemoteState.QUEUED,
    "in_progress": RemoteState.IN_PROGRESS,
    "processing": RemoteState.IN_PROGRESS,
    "completed": RemoteState.COMPLETED,
    "succeeded": RemoteState.COMPLETED,
    "failed": RemoteState.FAILED,
}


def sora_model_name(prefix: str, payload: dict[str, Any]) -> str:
    """Resolve ``sora2-<orientation>[-15s]`` from payload orientation and duration."""

    if payload.get("model"):
        return str(payload["model"])
    orientation = str(payload.get("orientation") or ORIENTATIONS[0])
    if orientation not in ORIENTATIONS:
        raise ProviderError(f"Unsupported orientation: {orientation!r}")
    suffix = "-15s" if duration_seconds(payload) == LONG_DURATION_SECONDS else ""
    return f"{prefix}-{orientation}{suffix}"


class Sora2VideoAdapter:
    """Image-to-video or text-to-video generation through ``/v1/videos``."""

    name = "sora"
    progress_range = DEFAULT_PROGRESS_RANGE

    def __init__(  # noqa: PLR0913
        self,
        *,
        client: httpx.AsyncClient,
        base_url: str,
        model_prefix: str = "sora2",
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
        max_download_bytes: int = DEFAULT_MAX_BYTES,
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._model_prefix = model_prefix
        self.poll_interval_seconds = poll_interval_seconds
        self.max_poll_attempts = max_poll_attempts
        self.max_download_bytes = max_download_bytes

    async def submit(self, payload: dict[str, Any], credential: str) -> PollSubmission:
        prompt = str(payload.get("prompt") or "").strip()
        if not prompt:
            raise ProviderError("Video prompt is required")
        body: dict[str, Any] = {
            "prompt": prompt,
            "model": sora_model_name(self._model_prefix, payload),
        }
        if payload.get("image_url"):
            body["image_url"] = str(payload["image_url"])

        response = await self._client.post(
            f"{self._base_url}/v1/videos",
            json=body,
            headers=bearer_headers(credential),
        )
        raise_for_provider_status(response, provider=self.name)
        created = parse_json_body(response, provider=self.name)
        remote_id = created.get("id")
        if not isinstance(remote_id, str) or not remote_id:
            raise ProviderError("Malformed sora response: missing job id")
        logger.info("Sora job %s created with model %s", remote_id, body["model"])
        return PollSubmission(remote_id=remote_id)

    async def poll_status(self, remote_id: str, credential: str) -> RemoteStatus:
        response = await self._client.get(
            f"{self._base_url}/v1/videos/{remote_id}",
            headers=bearer_headers(credential),
        )
        raise_for_provider_status(response, provider=self.name)
        data = parse_json_body(response, provider=self.name)

        raw_state = str(data.get("status") or "").lower()
        state = _REMOTE_STATES.get(raw_state)
        if state is None:
            raise ProviderError(f"Malformed sora response: unknown status {raw_state!r}")
        progress = _as_int(data.get("progress"))

        if state == RemoteState.FAILED:
            error = data.get("error")
            message = error.get("message") if isinstance(error, dict) else None
            return RemoteStatus(
                state=state,
                progress=progress,
                error=str(message or "Video generation failed"),
            )
        if state == RemoteState.COMPLETED:
            artifact = await self._download(remote_id, credential)
            return RemoteStatus(state=state, progress=100, artifact=artifact)
        return RemoteStatus(state=state, progress=progress)

    def degrade(self, payload: dict[str, Any]) -> dict[str, Any] | None:
        if duration_seconds(payload) != LONG_DURATION_SECONDS or payload.get("model"):
            return None
        return {**payload, "duration": SHORT_DURATION_SECONDS}

    def is_highest_tier(self, payload: dict[str, Any]) -> bool:
        return duration_seconds(payload) == LONG_DURATION_SECONDS and not payload.get("model")

    async def _download(self, remote_id: str, credential: str) -> Artifact:
        async with self._client.stream(
            "GET",
            f"{self._base_url}/v1/videos/{remote_id}/content",
            headers={"Authorization": f"Bearer {credential}"},
        ) as response:
            content_type = response.headers.get("content-type", "")
            if not response.is_success:
                await response.aread()
                raise ProviderError(
                    f"Failed to download video: {response.text.strip()[:200]}",
                    status_code=response.status_code,
                )
            if "application/json" in content_type:
                await response.aread()
                data = parse_json_body(response, provider=self.name)
                url = data.get("url") or data.get("download_url")
                if not isinstance(url, str) or not url:
                    raise ProviderError("Malformed sora response: content has no url")
                return Artifact(url=url)
            if "video/" in content_type or "application/octet-stream" in content_type:
                return Artifact(content=await self._read_capped(response), mime_type="video/mp4")
            return Artifact(url=str(response.url))

    async def _read_capped(self, response: httpx.Response) -> bytes:
        body = bytearray()
        async for chunk in response.aiter_bytes():
            body.extend(chunk)
            if len(body) > self.max_download_bytes:
                raise ProviderError(
                    f"Video artifact larger than {self.max_download_bytes} bytes",
                )
        return bytes(body)


def duration_seconds(payload: dict[str, Any]) -> int:
    """Requested clip length in seconds (10 unless the payload says otherwise)."""

    return _as_int(payload.get("duration"), default=SHORT_DURATION_SECONDS)


def _as_int(value: object, *, default: int = 0) -> int:
    if value is None:
        return default
    try:
        return int(float(str(value)))
    except ValueError:
        return default
