"""Gemini image generation adapter (synchronous generateContent call)."""

from __future__ import annotations

import base64
import binascii
import logging
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
    parse_json_body,
    raise_for_provider_status,
)

logger = logging.getLogger(__name__)

IMAGE_SIZE_LADDER: tuple[str, ...] = ("4K", "2K", "1K")
PRO_IMAGE_MODEL_PREFIX = "gemini-3-pro"


class GeminiImageAdapter:
    """Generate one image per request via the Gemini ``generateContent`` API.

    Payload keys: ``prompt`` (required), ``image_size`` (4K/2K/1K),
    ``aspect_ratio`` and ``reference_images`` (list of URLs sent inline).
    """

    name = "gemini"
    progress_range = DEFAULT_PROGRESS_RANGE
    poll_interval_seconds = DEFAULT_POLL_INTERVAL_SECONDS
    max_poll_attempts = DEFAULT_MAX_POLL_ATTEMPTS

    def __init__(self, *, client: httpx.AsyncClient, base_url: str, model: str) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._model = model

    async def submit(self, payload: dict[str, Any], credential: str) -> SyncSubmission:
        body = await self._build_request_body(payload)
        response = await self._client.post(
            f"{self._base_url}/v1beta/models/{self._model}:generateContent",
            json=body,
            headers={"x-goog-api-key": credential},
        )
        raise_for_provider_status(response, provider=self.name)
        data = parse_json_body(response, provider=self.name)
        return SyncSubmission(artifact=_extract_image(data))

    async def poll_status(self, remote_id: str, credential: str) -> RemoteStatus:
        raise ProviderError(f"{self.name} adapter does not support polling ({remote_id})")

    def degrade(self, payload: dict[str, Any]) -> dict[str, Any] | None:
        size = payload.get("image_size")
        if size not in IMAGE_SIZE_LADDER:
            return None
        index = IMAGE_SIZE_LADDER.index(size)
        if index + 1 >= len(IMAGE_SIZE_LADDER):
            return None
        return {**payload, "image_size": IMAGE_SIZE_LADDER[index + 1]}

    def is_highest_tier(self, payload: dict[str, Any]) -> bool:
        return payload.get("image_size") == IMAGE_SIZE_LADDER[0]

    async def _build_request_body(self, payload: dict[str, Any]) -> dict[str, Any]:
        prompt = str(payload.get("prompt") or "").strip()
        if not prompt:
            raise ProviderError("Image prompt is required")

        parts: list[dict[str, Any]] = [{"text": prompt}]
        for url in payload.get("reference_images") or ():
            inline = await self._fetch_inline_image(str(url))
            if inline is not None:
                parts.append(inline)

        generation_config: dict[str, Any] = {"responseModalities": ["IMAGE", "TEXT"]}
        image_config: dict[str, str] = {}
        if payload.get("aspect_ratio"):
            image_config["aspectRatio"] = str(payload["aspect_ratio"])
        if payload.get("image_size"):
            image_config["image_size"] = str(payload["image_size"])
        if image_config:
            generation_config["imageConfig"] = image_config

        body: dict[str, Any] = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": generation_config,
        }
        if self._model.startswith(PRO_IMAGE_MODEL_PREFIX):
            body["tools"] = [{"googleSearch": {}}]
        return body

    async def _fetch_inline_image(self, url: str) -> dict[str, Any] | None:
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as error:
            logger.warning("Skipping reference image %s: %s", url, error)
            return None
        if not response.is_success:
            logger.warning("Skipping reference image %s: HTTP %s", url, response.status_code)
            return None
        return {
            "inline_data": {
                "mime_type": response.headers.get("content-type", "image/jpeg"),
                "data": base64.b64encode(response.content).decode("ascii"),
            },
        }


def _extract_image(data: dict[str, Any]) -> Artifact:
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        raise ProviderError("No candidates returned from Gemini API")
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list) or not parts:
        raise ProviderError("No content parts returned")

    for part in parts:
        inline = part.get("inlineData") if isinstance(part, dict) else None
        if not isinstance(inline, dict) or not inline.get("data"):
            continue
        try:
            image_bytes = base64.b64decode(inline["data"], validate=True)
        except (binascii.Error, ValueError) as error:
            raise ProviderError(f"Malformed image data: {error}") from error
        return Artifact(content=image_bytes, mime_type=inline.get("mimeType") or "image/png")

    raise ProviderError("No image data found in response")
