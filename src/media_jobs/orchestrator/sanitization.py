"""Scrub provider credentials out of error text before it reaches a job record."""

from __future__ import annotations

import re
from collections.abc import Iterable

MAX_ERROR_CHARS = 300
REDACTED = "[redacted]"

# Header-style secrets: keep the header name, drop the value.
_HEADER_SECRET = re.compile(
    r"(?i)\b(authorization:\s*bearer|bearer|x-goog-api-key:|api-key:)\s*[A-Za-z0-9._\-]{8,}",
)
# Raw key shapes issued by the providers we call.
_RAW_KEYS = (
    re.compile(r"\bsk-[A-Za-z0-9_\-]{8,}"),
    re.compile(r"\bAIza[0-9A-Za-z_\-]{20,}"),
)
# MEDIA_JOBS_GEMINI_API_KEY=..., SORA_API_KEY: "..."
_ENV_ASSIGNMENT = re.compile(
    r"(?i)\b[A-Z0-9_]*API_KEYS?(?:_\d+)?\s*[:=]\s*['\"]?[^'\"\s]+['\"]?",
)
# Signed or keyed URLs: ?key=, &sig=, X-Amz-Signature=, ...
_QUERY_SECRET = re.compile(
    r"(?i)([?&](?:key|token|sig|signature|x-amz-signature|x-goog-signature|auth)=)[^&\s#]+",
)


def redact_credentials(text: str, *, known: Iterable[str] = ()) -> str:
    """Replace anything that looks like a provider credential with ``[redacted]``.

    ``known`` lets callers pass the literal keys in play so odd key formats
    are still caught.
    """

    redacted = text
    for secret in known:
        if secret:
            redacted = redacted.replace(secret, REDACTED)
    redacted = _HEADER_SECRET.sub(lambda match: f"{match.group(1)} {REDACTED}", redacted)
    for pattern in _RAW_KEYS:
        redacted = pattern.sub(REDACTED, redacted)
    redacted = _ENV_ASSIGNMENT.sub(REDACTED, redacted)
    return _QUERY_SECRET.sub(lambda match: match.group(1) + REDACTED, redacted)


def sanitize_error(
    text: str,
    *,
    max_chars: int = MAX_ERROR_CHARS,
    known: Iterable[str] = (),
) -> str:
    """One-line, credential-free summary suitable for ``JobRecord.error``."""

    compact = " ".join(text.split())
    if not compact:
        return ""
    redacted = redact_credentials(compact, known=known)
    if len(redacted) <= max_chars:
        return redacted
    return redacted[: max_chars - 3] + "..."
