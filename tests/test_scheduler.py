from __future__ import annotations

import asyncio

import allure
import pytest

from media_jobs.orchestrator.models import BatchItem, JobKind
from media_jobs.orchestrator.scheduler import default_concurrency, run_batch

pytestmark = [
    allure.epic("Job Execution"),
    allure.feature("Batch Scheduling"),
]


def _items(count: int) -> list[BatchItem]:
    return [BatchItem(correlation_id=f"item-{index}", input={"n": index}) for index in range(count)]


@pytest.mark.parametrize("concurrency", [1, 2, 5, 10])
def test_batch_preserves_order_and_isolates_failures(concurrency: int) -> None:
    in_flight = 0
    peak = 0

    async def work(item: BatchItem) -> int:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        # Later items finish first inside a chunk.
        await asyncio.sleep(0.001 * (10 - item.input["n"] % 10))
        in_flight -= 1
        if item.input["n"] % 3 == 0:
            raise RuntimeError(f"boom {item.input['n']}")
        return item.input["n"] * 10

    outcomes = asyncio.run(run_batch(_items(7), concurrency, work))

    assert [outcome.correlation_id for outcome in outcomes] == [f"item-{n}" for n in range(7)]
    assert [outcome.success for outcome in outcomes] == [n % 3 != 0 for n in range(7)]
    assert outcomes[1].result == 10
    assert outcomes[3].error == "boom 3"
    assert peak <= concurrency


def test_batch_outcome_serializes_result_or_error() -> None:
    async def work(item: BatchItem) -> str:
        if item.correlation_id == "bad":
            raise ValueError("nope")
        return "https://blobs.test/1"

    items = [BatchItem(correlation_id="ok"), BatchItem(correlation_id="bad")]
    outcomes = asyncio.run(run_batch(items, 2, work))

    assert [outcome.to_dict() for outcome in outcomes] == [
        {"id": "ok", "success": True, "result": "https://blobs.test/1"},
        {"id": "bad", "success": False, "error": "nope"},
    ]


def test_batch_rejects_non_positive_concurrency() -> None:
    async def work(item: BatchItem) -> None:
        return None

    with pytest.raises(ValueError, match="concurrency must be > 0"):
        asyncio.run(run_batch(_items(1), 0, work))


def test_empty_batch_returns_no_outcomes() -> None:
    async def work(item: BatchItem) -> None:
        return None

    assert asyncio.run(run_batch([], 3, work)) == []


def test_default_concurrency_by_kind() -> None:
    assert default_concurrency(JobKind.IMAGE) == 8
    assert default_concurrency(JobKind.VIDEO) == 20
