"""Local deterministic adapter for demos and integration tests."""

from __future__ import annotations

import hashlib
import json
from collections.abc import AsyncIterator
from typing import Any

from media_jobs.orchestrator.providers.base import (
    Artifact,
    PollSubmission,
    ProviderError,
    RemoteState,
    RemoteStatus,
    StreamSubmission,
    Submission,
    SyncSubmission,
)

ECHO_MODES: tuple[str, ...] = ("sync", "poll", "stream")
ECHO_CREDENTIAL = "echo-local"


class EchoAdapter:
    """Echo the prompt back as the generated artifact without any network I/O.

    ``sync`` returns the prompt bytes, ``poll`` completes after
    ``polls_to_complete`` polls, and ``stream`` emits chat-completion events
    with progress and a markdown link to ``artifact_base_url``.
    """

    name = "echo"
    progress_range = (20, 90)

    def __init__(
        self,
        *,
        mode: str = "sync",
        polls_to_complete: int = 2,
        poll_interval_seconds: float = 0.0,
        max_poll_attempts: int = 10,
        artifact_base_url: str = "https://echo.invalid/artifacts",
    ) -> None:
        if mode not in ECHO_MODES:
            raise ValueError(f"Unsupported echo mode: {mode!r}")
        self.mode = mode
        self.polls_to_complete = max(1, polls_to_complete)
        self.poll_interval_seconds = poll_interval_seconds
        self.max_poll_attempts = max_poll_attempts
        self.artifact_base_url = artifact_base_url.rstrip("/")
        self._polls: dict[str, int] = {}
        self._prompts: dict[str, str] = {}

    async def submit(self, payload: dict[str, Any], credential: str) -> Submission:
        prompt = str(payload.get("prompt") or payload.get("text") or "").strip()
        if not prompt:
            raise ProviderError("Echo prompt is required")
        digest = hashlib.sha256(prompt.encode("utf-8")).hexdigest()[:16]

        if self.mode == "poll":
            remote_id = f"echo-{digest}-{len(self._polls)}"
            self._polls[remote_id] = 0
            self._prompts[remote_id] = prompt
            return PollSubmission(remote_id=remote_id)
        if self.mode == "stream":
            return StreamSubmission(chunks=self._stream(prompt, digest))
        return SyncSubmission(artifact=_echo_artifact(prompt))

    async def poll_status(self, remote_id: str, credential: str) -> RemoteStatus:
        if remote_id not in self._polls:
            raise ProviderError(f"Unknown echo job {remote_id}", status_code=404)
        self._polls[remote_id] += 1
        done = self._polls[remote_id]
        if done >= self.polls_to_complete:
            return RemoteStatus(
                state=RemoteState.COMPLETED,
                progress=100,
                artifact=_echo_artifact(self._prompts[remote_id]),
            )
        return RemoteStatus(
            state=RemoteState.IN_PROGRESS,
            progress=100 * done // self.polls_to_complete,
        )

    def degrade(self, payload: dict[str, Any]) -> dict[str, Any] | None:
        return None

    def is_highest_tier(self, payload: dict[str, Any]) -> bool:
        return False

    async def _stream(self, prompt: str, digest: str) -> AsyncIterator[bytes]:
        fragments = [
            f"Working on: {prompt}\n",
            "progress: 50%\n",
            f"[video]({self.artifact_base_url}/{digest}.mp4)\n",
            "generation complete",
        ]
        for fragment in fragments:
            event = {"choices": [{"delta": {"content": fragment}}]}
            yield f"data: {json.dumps(event, ensure_ascii=False)}\n\n".encode()
        yield b"data: [DONE]\n\n"


def _echo_artifact(prompt: str) -> Artifact:
    return Artifact(content=prompt.encode("utf-8"), mime_type="text/plain")
