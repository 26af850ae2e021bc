# =============================================================================
# Fan-Out Orchestrator — Wait-All Concurrent Jobs with Failure Isolation
# =============================================================================
#
# Runs N independent jobs concurrently and returns one tagged result per
# job, in input order:
#
#   fan_out([FanOutJob("openai/gpt-4o", run), ...]) -> [JobResult, ...]
#
# SEMANTICS:
#   - Every job starts immediately; the call returns once every job has
#     settled (succeeded or failed). Wait-all, never fail-fast.
#   - A job's exception is caught at its own boundary and becomes
#     JobResult(ok=False, error=...). It never cancels, delays or corrupts
#     a sibling job.
#   - Result order matches input order regardless of completion order.
#   - No retries. Callers wanting retries wrap a single job's `run`.
#
# Batch latency ≈ max(job latencies), bounded by each job's own timeout.
# Cancellation of the caller (CancelledError) still propagates.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class FanOutJob(Generic[T]):
    """One unit of work: a label for logs and a coroutine factory."""

    label: str
    run: Callable[[], Awaitable[T]]


@dataclass
class JobResult(Generic[T]):
    """Settled outcome of a FanOutJob. Exactly one of value/error is set."""

    label: str
    ok: bool
    latency_ms: int
    value: T | None = None
    error: Exception | None = None


async def _settle(job: FanOutJob[T]) -> JobResult[T]:
    start = time.monotonic()
    try:
        value = await job.run()
    except Exception as exc:
        elapsed = int((time.monotonic() - start) * 1000)
        logger.warning("Job %s failed after %dms: %s", job.label, elapsed, exc)
        return JobResult(label=job.label, ok=False, latency_ms=elapsed, error=exc)

    elapsed = int((time.monotonic() - start) * 1000)
    return JobResult(label=job.label, ok=True, latency_ms=elapsed, value=value)


async def fan_out(jobs: Sequence[FanOutJob[Any]]) -> list[JobResult[Any]]:
    """
    Run every job concurrently and wait for all of them to settle.

    Returns:
        One JobResult per job, in the same order as `jobs`.
    """
    if not jobs:
        return []

    results = await asyncio.gather(*(_settle(job) for job in jobs))

    succeeded = sum(1 for r in results if r.ok)
    logger.info("Fan-out settled: %d/%d jobs succeeded", succeeded, len(results))
    return list(results)


def successes(results: Sequence[JobResult[T]]) -> list[JobResult[T]]:
    """Filter settled results down to the successful ones, order preserved."""
    return [r for r in results if r.ok]
