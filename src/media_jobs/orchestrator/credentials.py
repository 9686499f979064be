"""Round-robin provider credential pool with quota quarantine."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

from media_jobs.storage.sqlite import utc_now

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN = timedelta(hours=24)


@dataclass(slots=True)
class CredentialEntry:
    """One provider secret and its quarantine timestamp."""

    secret: str
    quarantined_at: datetime | None = None

    def is_eligible(self, *, now: datetime, cooldown: timedelta) -> bool:
        return self.quarantined_at is None or now - self.quarantined_at >= cooldown


@dataclass(slots=True)
class CredentialPoolStatus:
    """Pool counters for operators."""

    total: int
    available: int
    quarantined: int


class CredentialPool:
    """Hand out credentials round robin, skipping ones that hit their quota.

    Quarantined credentials become eligible again after ``cooldown``. When
    every credential is quarantined, ``acquire`` still returns the first one
    so callers get an attempt instead of a hard stop.
    """

    def __init__(
        self,
        secrets: Iterable[str],
        *,
        cooldown: timedelta = DEFAULT_COOLDOWN,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        unique: list[str] = []
        for secret in secrets:
            normalized = secret.strip()
            if normalized and normalized not in unique:
                unique.append(normalized)
        self._entries = [CredentialEntry(secret=secret) for secret in unique]
        self._cooldown = cooldown
        self._clock = clock
        self._cursor = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def acquire(self) -> str | None:
        with self._lock:
            if not self._entries:
                return None
            self._release_expired()
            entry = self._next_eligible()
            if entry is None:
                return self._entries[0].secret
            return entry.secret

    def mark_failed(self, secret: str) -> bool:
        """Quarantine ``secret``; return whether another usable credential remains."""

        with self._lock:
            now = self._clock()
            for entry in self._entries:
                if entry.secret == secret:
                    entry.quarantined_at = now
                    logger.warning(
                        "Credential %s quarantined for %s",
                        _mask(secret),
                        self._cooldown,
                    )
                    break
            self._release_expired()
            for offset in range(len(self._entries)):
                index = (self._cursor + offset) % len(self._entries)
                if self._entries[index].quarantined_at is None:
                    self._cursor = index
                    return True
            return False

    def is_quarantined(self, secret: str) -> bool:
        with self._lock:
            self._release_expired()
            return any(
                entry.secret == secret and entry.quarantined_at is not None
                for entry in self._entries
            )

    def status(self) -> CredentialPoolStatus:
        with self._lock:
            self._release_expired()
            quarantined = sum(1 for entry in self._entries if entry.quarantined_at is not None)
            return CredentialPoolStatus(
                total=len(self._entries),
                available=len(self._entries) - quarantined,
                quarantined=quarantined,
            )

    def _release_expired(self) -> None:
        now = self._clock()
        for entry in self._entries:
            if entry.quarantined_at is not None and entry.is_eligible(
                now=now,
                cooldown=self._cooldown,
            ):
                logger.info("Credential %s released from quarantine", _mask(entry.secret))
                entry.quarantined_at = None

    def _next_eligible(self) -> CredentialEntry | None:
        total = len(self._entries)
        for offset in range(total):
            index = (self._cursor + offset) % total
            entry = self._entries[index]
            if entry.quarantined_at is None:
                self._cursor = (index + 1) % total
                return entry
        return None


def _mask(secret: str) -> str:
    if len(secret) <= 8:
        return "***"
    return f"{secret[:4]}...{secret[-4:]}"
