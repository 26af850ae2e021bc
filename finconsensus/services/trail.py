# =============================================================================
# Audit Trail — Persistence & Retrieval of the Decision Trail
# =============================================================================
#
# WRITE PATH
#   record_inquiry()            — fatal on failure (no inquiry id, no pipeline)
#   record_provider_answer()    ┐
#   record_consolidated_answer()├ each in its own session/transaction;
#   record_rating()             ┘ a failure is logged and returns None
#
# Writes are append-only with generated UUID keys, so concurrent writers
# never contend on a row (no read-modify-write anywhere). Writes are NOT
# one atomic transaction: a partial trail is expected under partial
# backend or database failure.
#
# READ PATH
#   load_thread(thread_id) — every inquiry of the thread, oldest first, each
#   with its consolidated answer (or None), provider answers, and ratings
#   ordered by descending score (see relationship order_by in db/models.py).
#
#   provider_stats(since)  — per (provider, model) answer counts, latency
#   and average rating, for the metrics endpoint.
# =============================================================================

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from finconsensus.db.models import (
    ConsolidatedAnswer,
    Inquiry,
    ProviderAnswer,
    ProviderRating,
)

logger = logging.getLogger(__name__)


@dataclass
class ProviderStats:
    """Aggregated performance for one (provider, model) pair."""

    provider: str
    model: str
    answer_count: int
    avg_latency_ms: float | None
    rating_count: int
    avg_score: float | None


class AuditTrail:
    """Repository for the inquiry audit trail."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # -------------------------------------------------------------------------
    # Write path
    # -------------------------------------------------------------------------

    async def record_inquiry(self, thread_id: str, question: str) -> Inquiry:
        """
        Persist a new inquiry.

        Raises:
            SQLAlchemyError: Propagated; the caller cannot continue without
                an inquiry id.
        """
        async with self._session_factory() as session:
            inquiry = Inquiry(thread_id=thread_id, question=question)
            session.add(inquiry)
            await session.commit()

        logger.info("Recorded inquiry %s (thread=%s)", inquiry.id, thread_id)
        return inquiry

    async def record_provider_answer(
        self,
        inquiry_id: uuid.UUID,
        provider: str,
        model: str,
        answer: str,
        latency_ms: int,
        finish_reason: str | None = None,
        input_tokens: int | None = None,
        output_tokens: int | None = None,
    ) -> ProviderAnswer | None:
        """Persist one successful panel answer. Returns None on failure."""
        row = ProviderAnswer(
            inquiry_id=inquiry_id,
            provider=provider,
            model=model,
            answer=answer,
            latency_ms=latency_ms,
            finish_reason=finish_reason,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
        return await self._write(row, f"provider answer {provider}/{model}")

    async def record_consolidated_answer(
        self,
        inquiry_id: uuid.UUID,
        answer: str,
        sources_used: int,
        judge_provider: str | None = None,
        judge_model: str | None = None,
        processing_time_ms: int | None = None,
        sources: list[str] | None = None,
    ) -> ConsolidatedAnswer | None:
        """Persist the consolidated answer. Returns None on failure."""
        row = ConsolidatedAnswer(
            inquiry_id=inquiry_id,
            answer=answer,
            sources_used=sources_used,
            judge_provider=judge_provider,
            judge_model=judge_model,
            processing_time_ms=processing_time_ms,
            metadata_={"sources": sources or []},
        )
        return await self._write(row, "consolidated answer")

    async def record_rating(
        self,
        inquiry_id: uuid.UUID,
        provider_answer_id: uuid.UUID,
        provider: str,
        model: str,
        score: int,
        justification: str,
        judge_provider: str | None = None,
        judge_model: str | None = None,
    ) -> ProviderRating | None:
        """Persist one rating. Returns None on failure."""
        row = ProviderRating(
            inquiry_id=inquiry_id,
            provider_answer_id=provider_answer_id,
            provider=provider,
            model=model,
            score=score,
            justification=justification,
            judge_provider=judge_provider,
            judge_model=judge_model,
        )
        return await self._write(row, f"rating {provider}/{model}")

    async def _write(self, row, what: str):
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
        except Exception as e:
            logger.warning("Failed to persist %s: %s", what, e)
            return None
        return row

    # -------------------------------------------------------------------------
    # Read path
    # -------------------------------------------------------------------------

    async def load_thread(self, thread_id: str) -> list[Inquiry]:
        """Every inquiry of `thread_id`, oldest first, with its trail loaded."""
        stmt = (
            select(Inquiry)
            .where(Inquiry.thread_id == thread_id)
            .order_by(Inquiry.created_at)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def provider_stats(self, since: datetime | None = None) -> list[ProviderStats]:
        """
        Aggregate answers and ratings per (provider, model).

        Aggregation happens in Python; volume is a handful of rows per
        question.
        """
        answer_stmt = select(ProviderAnswer)
        rating_stmt = select(ProviderRating)
        if since is not None:
            answer_stmt = answer_stmt.where(ProviderAnswer.created_at >= since)
            rating_stmt = rating_stmt.where(ProviderRating.created_at >= since)

        async with self._session_factory() as session:
            answers = (await session.execute(answer_stmt)).scalars().all()
            ratings = (await session.execute(rating_stmt)).scalars().all()

        latencies: dict[tuple[str, str], list[int]] = {}
        for a in answers:
            latencies.setdefault((a.provider, a.model), []).append(a.latency_ms)

        scores: dict[tuple[str, str], list[int]] = {}
        for r in ratings:
            scores.setdefault((r.provider, r.model), []).append(r.score)

        stats = []
        for key in sorted(set(latencies) | set(scores)):
            lat = latencies.get(key, [])
            sc = scores.get(key, [])
            stats.append(ProviderStats(
                provider=key[0],
                model=key[1],
                answer_count=len(lat),
                avg_latency_ms=round(sum(lat) / len(lat), 1) if lat else None,
                rating_count=len(sc),
                avg_score=round(sum(sc) / len(sc), 1) if sc else None,
            ))
        return stats
