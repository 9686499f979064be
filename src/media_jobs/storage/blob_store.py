"""Durable artifact storage behind a public URL."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from pathlib import Path
from typing import Protocol
from uuid import uuid4

from media_jobs.http.fetcher import HttpFetcher

logger = logging.getLogger(__name__)

_FALLBACK_EXTENSIONS: dict[str, str] = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
    "video/mp4": ".mp4",
    "audio/mpeg": ".mp3",
    "audio/wav": ".wav",
}


class StorageError(RuntimeError):
    """Artifact could not be stored."""


class BlobStore(Protocol):
    """Artifact storage used to re-host generated media."""

    async def upload(self, content: bytes, mime_type: str) -> str:
        """Store bytes and return their public URL."""

    async def upload_from_url(self, url: str) -> str:
        """Download ``url`` and store it; return the new public URL."""


class LocalBlobStore:
    """Blob store writing into a local directory served under ``public_base_url``."""

    def __init__(
        self,
        directory: Path,
        *,
        public_base_url: str,
        fetcher: HttpFetcher | None = None,
    ) -> None:
        self.directory = directory
        self.public_base_url = public_base_url.rstrip("/")
        self._fetcher = fetcher or HttpFetcher()

    async def upload(self, content: bytes, mime_type: str) -> str:
        if not content:
            raise StorageError("Refusing to store an empty artifact.")
        name = f"{uuid4().hex}{_extension_for(mime_type)}"
        target = self.directory / name
        try:
            await asyncio.to_thread(_write_blob, target, content)
        except OSError as error:
            raise StorageError(f"Failed to write artifact {name}: {error}") from error
        logger.info("Stored artifact %s (%d bytes, %s)", name, len(content), mime_type)
        return f"{self.public_base_url}/{name}"

    async def upload_from_url(self, url: str) -> str:
        result = await self._fetcher.fetch(url)
        if not result.is_success:
            raise StorageError(f"Failed to download artifact from {url}: {result.error}")
        mime_type = result.content_type.split(";", 1)[0].strip() or _guess_mime_type(url)
        return await self.upload(result.content, mime_type)

    async def aclose(self) -> None:
        await self._fetcher.aclose()


def _write_blob(target: Path, content: bytes) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(content)


def _extension_for(mime_type: str) -> str:
    normalized = mime_type.split(";", 1)[0].strip().lower()
    if normalized in _FALLBACK_EXTENSIONS:
        return _FALLBACK_EXTENSIONS[normalized]
    return mimetypes.guess_extension(normalized) or ".bin"


def _guess_mime_type(url: str) -> str:
    guessed, _ = mimetypes.guess_type(url.split("?", 1)[0])
    return guessed or "application/octet-stream"
