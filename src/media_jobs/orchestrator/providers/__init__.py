"""Provider adapter implementations."""

from media_jobs.orchestrator.providers.base import (
    Artifact,
    PollSubmission,
    ProviderAdapter,
    ProviderError,
    RemoteState,
    RemoteStatus,
    StreamSubmission,
    Submission,
    SyncSubmission,
)
from media_jobs.orchestrator.providers.chat_stream_video import ChatStreamVideoAdapter
from media_jobs.orchestrator.providers.echo import EchoAdapter
from media_jobs.orchestrator.providers.gemini_image import GeminiImageAdapter
from media_jobs.orchestrator.providers.sora_video import Sora2VideoAdapter
from media_jobs.orchestrator.providers.speech import SpeechAdapter

__all__ = [
    "Artifact",
    "ChatStreamVideoAdapter",
    "EchoAdapter",
    "GeminiImageAdapter",
    "PollSubmission",
    "ProviderAdapter",
    "ProviderError",
    "RemoteState",
    "RemoteStatus",
    "Sora2VideoAdapter",
    "SpeechAdapter",
    "StreamSubmission",
    "Submission",
    "SyncSubmission",
]
