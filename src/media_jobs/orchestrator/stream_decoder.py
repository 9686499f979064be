"""Incremental decoder for server-sent chat-completion streams.

Everything here is pure: callers own the state value and feed it back with the
next chunk. Events are produced per complete line, so the same bytes decode to
the same events regardless of how the transport splits them.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field, replace
from functools import lru_cache
from typing import Any

DEFAULT_ARTIFACT_EXTENSION = ".mp4"

_DATA_PREFIX = "data:"
_DONE_MARKER = "[DONE]"

_PROGRESS_PATTERN = re.compile(r"(?i)(?:progress|进度)\s*[:：]?\s*(\d{1,3})\s*%")
_MARKDOWN_LINK_PATTERN = re.compile(r"\[[^\]]*\]\((https?://[^\s)]+)\)")
_SUCCESS_PHRASES: tuple[str, ...] = (
    "generated successfully",
    "generation complete",
    "生成成功",
    "生成完成",
)


@dataclass(slots=True, frozen=True)
class StreamEvent:
    """Signals extracted from one streamed text fragment."""

    text: str
    progress: int | None = None
    artifact_url: str | None = None
    success: bool = False


@dataclass(slots=True, frozen=True)
class DecoderState:
    """Decoder state threaded through successive ``decode_chunk`` calls."""

    carry: bytes = b""
    text: str = ""
    artifact_url: str | None = None
    finished: bool = False
    artifact_extension: str = DEFAULT_ARTIFACT_EXTENSION


def split_lines(chunk: bytes, carry: bytes) -> tuple[list[str], bytes]:
    """Split ``carry + chunk`` into complete lines and the trailing partial line."""

    data = carry + chunk
    parts = data.split(b"\n")
    remainder = parts.pop()
    lines = [part.rstrip(b"\r").decode("utf-8", errors="replace") for part in parts]
    return lines, remainder


def decode_chunk(chunk: bytes, state: DecoderState) -> tuple[list[StreamEvent], DecoderState]:
    """Decode one transport chunk into events and the next state."""

    lines, carry = split_lines(chunk, state.carry)
    events, next_state = _decode_lines(lines, replace(state, carry=carry))
    return events, next_state


def finish_stream(state: DecoderState) -> tuple[list[StreamEvent], DecoderState]:
    """Flush the trailing line and mark the stream finished."""

    lines: list[str] = []
    if state.carry:
        lines.append(state.carry.rstrip(b"\r").decode("utf-8", errors="replace"))
    events, next_state = _decode_lines(lines, replace(state, carry=b""))
    return events, replace(next_state, finished=True)


def scan_text(text: str, *, extension: str = DEFAULT_ARTIFACT_EXTENSION) -> StreamEvent:
    """Extract progress, artifact location and success signal from one fragment."""

    progress: int | None = None
    progress_matches = _PROGRESS_PATTERN.findall(text)
    if progress_matches:
        progress = min(100, int(progress_matches[-1]))

    lowered = text.lower()
    success = any(phrase in lowered for phrase in _SUCCESS_PHRASES)
    return StreamEvent(
        text=text,
        progress=progress,
        artifact_url=find_artifact_url(text, extension=extension),
        success=success,
    )


def find_artifact_url(text: str, *, extension: str = DEFAULT_ARTIFACT_EXTENSION) -> str | None:
    """Return the last artifact reference in ``text``: markdown link first, then bare URL."""

    links = _MARKDOWN_LINK_PATTERN.findall(text)
    if links:
        return links[-1]
    bare = _bare_url_pattern(extension).findall(text)
    if bare:
        return bare[-1]
    return None


def has_open_link(text: str) -> bool:
    """True while the text ends inside a markdown link target that has not closed yet."""

    start = text.rfind("](")
    return start != -1 and ")" not in text[start + 2 :]


def extract_delta_text(payload: Any) -> str:
    """Pull the text fragment out of an OpenAI-style chat-completion chunk."""

    if not isinstance(payload, dict):
        return ""
    choices = payload.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        first = choices[0]
        for key in ("delta", "message"):
            part = first.get(key)
            if isinstance(part, dict) and isinstance(part.get("content"), str):
                return part["content"]
    content = payload.get("content")
    if isinstance(content, str):
        return content
    return ""


def _decode_lines(
    lines: list[str],
    state: DecoderState,
) -> tuple[list[StreamEvent], DecoderState]:
    events: list[StreamEvent] = []
    for raw_line in lines:
        line = raw_line.strip()
        if not line.startswith(_DATA_PREFIX):
            continue
        body = line[len(_DATA_PREFIX) :].strip()
        if body == _DONE_MARKER:
            state = replace(state, finished=True)
            continue
        try:
            payload = json.loads(body)
        except ValueError:
            continue
        text = extract_delta_text(payload)
        if not text:
            continue
        event = scan_text(text, extension=state.artifact_extension)
        accumulated = state.text + text
        # A link may be split across events; only the joined text gives the whole URL.
        found = find_artifact_url(accumulated, extension=state.artifact_extension)
        state = replace(state, text=accumulated, artifact_url=found or state.artifact_url)
        events.append(event)
    return events, state


@lru_cache(maxsize=16)
def _bare_url_pattern(extension: str) -> re.Pattern[str]:
    return re.compile(
        r"https?://[^\s<>\"'()\[\]]+?"
        + re.escape(extension)
        + r"(?:\?[^\s<>\"'()\[\]]*)?(?![A-Za-z0-9])",
        re.IGNORECASE,
    )


@dataclass(slots=True)
class StreamTracker:
    """Stateful wrapper used by the runner while consuming one stream."""

    artifact_extension: str = DEFAULT_ARTIFACT_EXTENSION
    state: DecoderState = field(init=False)
    success_seen: bool = False
    last_progress: int | None = None

    def __post_init__(self) -> None:
        self.state = DecoderState(artifact_extension=self.artifact_extension)

    def feed(self, chunk: bytes) -> list[StreamEvent]:
        events, self.state = decode_chunk(chunk, self.state)
        self._observe(events)
        return events

    def finish(self) -> list[StreamEvent]:
        events, self.state = finish_stream(self.state)
        self._observe(events)
        return events

    @property
    def artifact_url(self) -> str | None:
        return self.state.artifact_url

    @property
    def finished(self) -> bool:
        return self.state.finished

    def ready(self) -> bool:
        """Artifact known and either success was announced or the stream is over.

        Before the stream ends, a link still being streamed is not ready yet.
        """

        if self.state.artifact_url is None:
            return False
        if self.state.finished:
            return True
        return self.success_seen and not has_open_link(self.state.text)

    def _observe(self, events: list[StreamEvent]) -> None:
        for event in events:
            if event.success:
                self.success_seen = True
            if event.progress is not None:
                self.last_progress = event.progress
