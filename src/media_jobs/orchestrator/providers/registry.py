"""Resolve adapters and credential pools for job kinds."""

from __future__ import annotations

from datetime import timedelta

import httpx

from media_jobs.config import PROVIDER_NAMES, Settings
from media_jobs.orchestrator.credentials import CredentialPool
from media_jobs.orchestrator.models import JobKind
from media_jobs.orchestrator.providers.base import ProviderAdapter
from media_jobs.orchestrator.providers.chat_stream_video import ChatStreamVideoAdapter
from media_jobs.orchestrator.providers.echo import ECHO_CREDENTIAL, EchoAdapter
from media_jobs.orchestrator.providers.gemini_image import GeminiImageAdapter
from media_jobs.orchestrator.providers.sora_video import Sora2VideoAdapter
from media_jobs.orchestrator.providers.speech import SpeechAdapter

ECHO_PROVIDER = "echo"
REMOTE_PROVIDER = "remote"

KIND_PROVIDERS: dict[JobKind, str] = {
    JobKind.IMAGE: "gemini",
    JobKind.VIDEO: "sora",
    JobKind.COMPOSITE: "chat_video",
    JobKind.SPEECH: "speech",
}

_ECHO_MODES: dict[JobKind, str] = {
    JobKind.IMAGE: "sync",
    JobKind.SPEECH: "sync",
    JobKind.VIDEO: "poll",
    JobKind.COMPOSITE: "stream",
}


def provider_name_for(kind: JobKind, *, provider: str = REMOTE_PROVIDER) -> str:
    if provider == ECHO_PROVIDER:
        return ECHO_PROVIDER
    return KIND_PROVIDERS[kind]


def build_adapter(
    kind: JobKind,
    *,
    settings: Settings,
    client: httpx.AsyncClient,
    provider: str = REMOTE_PROVIDER,
) -> ProviderAdapter:
    """Instantiate the adapter that serves ``kind`` for the selected provider family."""

    if provider == ECHO_PROVIDER:
        return EchoAdapter(mode=_ECHO_MODES[kind])
    if provider != REMOTE_PROVIDER:
        raise ValueError(f"Unknown provider: {provider!r}")

    providers = settings.providers
    if kind == JobKind.IMAGE:
        return GeminiImageAdapter(
            client=client,
            base_url=providers.gemini_base_url,
            model=providers.gemini_model,
        )
    if kind == JobKind.VIDEO:
        return Sora2VideoAdapter(
            client=client,
            base_url=providers.sora_base_url,
            model_prefix=providers.sora_model,
            poll_interval_seconds=settings.runner.poll_interval_seconds,
            max_poll_attempts=settings.runner.max_poll_attempts,
            max_download_bytes=settings.storage.max_artifact_mb * 1024 * 1024,
        )
    if kind == JobKind.COMPOSITE:
        return ChatStreamVideoAdapter(
            client=client,
            base_url=providers.chat_video_base_url,
            model_prefix=providers.chat_video_model,
        )
    return SpeechAdapter(
        client=client,
        base_url=providers.speech_base_url,
        model=providers.speech_model,
    )


def build_credential_pools(settings: Settings) -> dict[str, CredentialPool]:
    """One shared pool per provider; the echo provider gets a fixed local credential."""

    cooldown = timedelta(hours=settings.retry.credential_cooldown_hours)
    pools = {
        name: CredentialPool(settings.providers.credentials_for(name), cooldown=cooldown)
        for name in PROVIDER_NAMES
    }
    pools[ECHO_PROVIDER] = CredentialPool((ECHO_CREDENTIAL,), cooldown=cooldown)
    return pools
