"""Video generation through an OpenAI-compatible streaming chat endpoint."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from media_jobs.orchestrator.providers.base import (
    DEFAULT_MAX_POLL_ATTEMPTS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_PROGRESS_RANGE,
    ProviderError,
    RemoteStatus,
    StreamSubmission,
    bearer_headers,
)
from media_jobs.orchestrator.providers.sora_video import (
    LONG_DURATION_SECONDS,
    SHORT_DURATION_SECONDS,
    duration_seconds,
    sora_model_name,
)

logger = logging.getLogger(__name__)


class ChatStreamVideoAdapter:
    """Request a video as a streamed chat completion and let the runner decode it.

    The provider reports progress and the final link as free text inside
    ``data:`` events; see ``media_jobs.orchestrator.stream_decoder``.
    """

    name = "chat_video"
    progress_range = DEFAULT_PROGRESS_RANGE
    poll_interval_seconds = DEFAULT_POLL_INTERVAL_SECONDS
    max_poll_attempts = DEFAULT_MAX_POLL_ATTEMPTS

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        base_url: str,
        model_prefix: str = "sora2",
        artifact_extension: str = ".mp4",
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._model_prefix = model_prefix
        self._artifact_extension = artifact_extension

    async def submit(self, payload: dict[str, Any], credential: str) -> StreamSubmission:
        prompt = str(payload.get("prompt") or "").strip()
        if not prompt:
            raise ProviderError("Video prompt is required")

        content: str | list[dict[str, Any]] = prompt
        image_url = payload.get("image_url")
        if image_url:
            content = [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": str(image_url)}},
            ]
        request = self._client.build_request(
            "POST",
            f"{self._base_url}/v1/chat/completions",
            json={
                "model": sora_model_name(self._model_prefix, payload),
                "stream": True,
                "messages": [{"role": "user", "content": content}],
            },
            headers={**bearer_headers(credential), "Accept": "text/event-stream"},
        )
        response = await self._client.send(request, stream=True)
        if not response.is_success:
            body = await response.aread()
            await response.aclose()
            raise ProviderError(
                f"{self.name} API error: {body.decode('utf-8', errors='replace').strip()[:1_000]}",
                status_code=response.status_code,
            )
        return StreamSubmission(
            chunks=_iter_response(response),
            artifact_extension=self._artifact_extension,
        )

    async def poll_status(self, remote_id: str, credential: str) -> RemoteStatus:
        raise ProviderError(f"{self.name} adapter does not support polling ({remote_id})")

    def degrade(self, payload: dict[str, Any]) -> dict[str, Any] | None:
        if payload.get("model") or duration_seconds(payload) != LONG_DURATION_SECONDS:
            return None
        return {**payload, "duration": SHORT_DURATION_SECONDS}

    def is_highest_tier(self, payload: dict[str, Any]) -> bool:
        return self.degrade(payload) is not None


async def _iter_response(response: httpx.Response) -> AsyncIterator[bytes]:
    try:
        async for chunk in response.aiter_bytes():
            yield chunk
    finally:
        await response.aclose()
        logger.debug("Closed stream from %s", response.url)
