"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from doubles import MemoryBlobStore, RecordingStore, SleepRecorder

from media_jobs.orchestrator.repository import JobRepository


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[JobRepository]:
    repo = JobRepository(tmp_path / "jobs.db")
    repo.init_schema()
    yield repo
    repo.close()


@pytest.fixture()
def store(repository: JobRepository) -> RecordingStore:
    return RecordingStore(repository)


@pytest.fixture()
def blobs() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture()
def sleeps() -> SleepRecorder:
    return SleepRecorder()
