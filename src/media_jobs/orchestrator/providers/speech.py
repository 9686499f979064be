"""Text-to-speech adapter for OpenAI-compatible ``/v1/audio/speech`` endpoints."""

from __future__ import annotations

from typing import Any

import httpx

from media_jobs.orchestrator.providers.base import (
    DEFAULT_MAX_POLL_ATTEMPTS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_PROGRESS_RANGE,
    Artifact,
    ProviderError,
    RemoteStatus,
    SyncSubmission,
    raise_for_provider_status,
)

MAX_SPEECH_CHARS = 5_000
DEFAULT_VOICE = "alloy"

_FORMAT_MIME_TYPES: dict[str, str] = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "opus": "audio/opus",
    "aac": "audio/aac",
    "flac": "audio/flac",
}


class SpeechAdapter:
    name = "speech"
    progress_range = DEFAULT_PROGRESS_RANGE
    poll_interval_seconds = DEFAULT_POLL_INTERVAL_SECONDS
    max_poll_attempts = DEFAULT_MAX_POLL_ATTEMPTS

    def __init__(self, *, client: httpx.AsyncClient, base_url: str, model: str) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._model = model

    async def submit(self, payload: dict[str, Any], credential: str) -> SyncSubmission:
        text = str(payload.get("text") or payload.get("prompt") or "").strip()
        if not text:
            raise ProviderError("Speech text is required")
        if len(text) > MAX_SPEECH_CHARS:
            raise ProviderError(f"Speech text too long (max {MAX_SPEECH_CHARS} characters)")

        response_format = str(payload.get("format") or "mp3")
        response = await self._client.post(
            f"{self._base_url}/v1/audio/speech",
            json={
                "model": self._model,
                "input": text,
                "voice": str(payload.get("voice") or DEFAULT_VOICE),
                "speed": float(payload.get("speed") or 1.0),
                "response_format": response_format,
            },
            headers={"Authorization": f"Bearer {credential}"},
        )
        raise_for_provider_status(response, provider=self.name)
        if not response.content:
            raise ProviderError("No audio data found in response")
        mime_type = response.headers.get("content-type") or _FORMAT_MIME_TYPES.get(
            response_format,
            "application/octet-stream",
        )
        return SyncSubmission(artifact=Artifact(content=response.content, mime_type=mime_type))

    async def poll_status(self, remote_id: str, credential: str) -> RemoteStatus:
        raise ProviderError(f"{self.name} adapter does not support polling ({remote_id})")

    def degrade(self, payload: dict[str, Any]) -> dict[str, Any] | None:
        return None

    def is_highest_tier(self, payload: dict[str, Any]) -> bool:
        return False
