"""Bounded-concurrency batch execution with per-item isolation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from media_jobs.orchestrator.models import BatchItem, BatchOutcome, JobKind

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY: dict[JobKind, int] = {
    JobKind.IMAGE: 8,
    JobKind.SPEECH: 8,
    JobKind.VIDEO: 20,
    JobKind.COMPOSITE: 20,
}


def default_concurrency(kind: JobKind) -> int:
    return DEFAULT_CONCURRENCY[kind]


async def run_batch(
    items: Sequence[BatchItem],
    concurrency: int,
    fn: Callable[[BatchItem], Awaitable[Any]],
) -> list[BatchOutcome]:
    """Run ``fn`` over ``items`` in chunks of ``concurrency``.

    Outcomes keep input order. An exception from one item becomes that
    item's failure outcome and never aborts the rest of the batch.
    """

    if concurrency <= 0:
        raise ValueError(f"Batch concurrency must be > 0, got {concurrency}")

    outcomes: list[BatchOutcome] = []
    for start in range(0, len(items), concurrency):
        chunk = items[start : start + concurrency]
        results = await asyncio.gather(*(fn(item) for item in chunk), return_exceptions=True)
        for item, result in zip(chunk, results, strict=True):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning("Batch item %s failed: %s", item.correlation_id, result)
                outcomes.append(
                    BatchOutcome(
                        correlation_id=item.correlation_id,
                        success=False,
                        error=str(result) or type(result).__name__,
                    ),
                )
            else:
                outcomes.append(
                    BatchOutcome(correlation_id=item.correlation_id, success=True, result=result),
                )
        logger.info(
            "Batch chunk %d-%d done (%d items total)",
            start + 1,
            start + len(chunk),
            len(items),
        )
    return outcomes
