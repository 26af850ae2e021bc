# =============================================================================
# Persistence Tests — Audit Trail on a Disposable SQLite Database
# =============================================================================
#
# Each test gets a fresh file database under tmp_path (aiosqlite driver),
# creates the schema, exercises the repository and disposes the engine,
# all inside one event loop.
# =============================================================================

from __future__ import annotations

import asyncio
import uuid
from datetime import UTC, datetime, timedelta

import pytest

from finconsensus.db.engine import build_engine, build_session_factory, init_models
from finconsensus.services.trail import AuditTrail


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'trail.db'}"


def _with_trail(db_url: str, scenario):
    """Run `scenario(trail)` against a fresh schema."""

    async def main():
        engine = build_engine(db_url)
        try:
            await init_models(engine)
            return await scenario(AuditTrail(build_session_factory(engine)))
        finally:
            await engine.dispose()

    return _run(main())


async def _record_full_inquiry(trail: AuditTrail, thread_id: str, question: str):
    inquiry = await trail.record_inquiry(thread_id, question)
    a1 = await trail.record_provider_answer(
        inquiry.id, "openai", "gpt-4o-mini", "Buy index funds.", 120,
    )
    a2 = await trail.record_provider_answer(
        inquiry.id, "anthropic", "claude-sonnet-4-6", "Hold bonds too.", 340,
        finish_reason="end_turn", input_tokens=20, output_tokens=40,
    )
    await trail.record_consolidated_answer(
        inquiry.id, "Mix index funds and bonds.", sources_used=2,
        judge_provider="openai", judge_model="gpt-4o",
        processing_time_ms=800, sources=["openai/gpt-4o-mini", "anthropic/claude-sonnet-4-6"],
    )
    await trail.record_rating(
        inquiry.id, a1.id, "openai", "gpt-4o-mini", 60, "Thin.",
        judge_provider="openai", judge_model="gpt-4o",
    )
    await trail.record_rating(
        inquiry.id, a2.id, "anthropic", "claude-sonnet-4-6", 90, "Thorough.",
        judge_provider="openai", judge_model="gpt-4o",
    )
    return inquiry


class TestWritePath:
    def test_inquiry_gets_id_and_timestamp(self, db_url):
        async def scenario(trail):
            return await trail.record_inquiry("t-1", "What is a stock?")

        inquiry = _with_trail(db_url, scenario)
        assert isinstance(inquiry.id, uuid.UUID)
        assert inquiry.created_at is not None

    def test_out_of_range_score_is_logged_not_raised(self, db_url):
        async def scenario(trail):
            inquiry = await trail.record_inquiry("t-1", "What is a stock?")
            answer = await trail.record_provider_answer(
                inquiry.id, "openai", "gpt-4o", "Equity.", 100,
            )
            bad = await trail.record_rating(
                inquiry.id, answer.id, "openai", "gpt-4o", 150, "x",
            )
            good = await trail.record_rating(
                inquiry.id, answer.id, "openai", "gpt-4o", 80, "ok",
            )
            return bad, good, await trail.load_thread("t-1")

        bad, good, inquiries = _with_trail(db_url, scenario)
        assert bad is None
        assert good is not None
        assert [r.score for r in inquiries[0].provider_ratings] == [80]


class TestLoadThread:
    def test_full_trail_ordering(self, db_url):
        async def scenario(trail):
            await _record_full_inquiry(trail, "t-1", "First stock question")
            await _record_full_inquiry(trail, "t-1", "Second bond question")
            await _record_full_inquiry(trail, "other", "Unrelated thread")
            return await trail.load_thread("t-1")

        inquiries = _with_trail(db_url, scenario)

        assert [i.question for i in inquiries] == [
            "First stock question", "Second bond question",
        ]
        first = inquiries[0]
        assert first.consolidated_answer.answer == "Mix index funds and bonds."
        assert first.consolidated_answer.sources_used == 2
        assert first.consolidated_answer.metadata_["sources"] == [
            "openai/gpt-4o-mini", "anthropic/claude-sonnet-4-6",
        ]
        assert [a.provider for a in first.provider_answers] == ["openai", "anthropic"]
        # Highest score first
        assert [r.score for r in first.provider_ratings] == [90, 60]

    def test_missing_consolidation_is_none(self, db_url):
        async def scenario(trail):
            inquiry = await trail.record_inquiry("t-2", "Is gold an investment?")
            await trail.record_provider_answer(
                inquiry.id, "openai", "gpt-4o", "Sometimes.", 200,
            )
            return await trail.load_thread("t-2")

        inquiries = _with_trail(db_url, scenario)
        assert inquiries[0].consolidated_answer is None
        assert len(inquiries[0].provider_answers) == 1
        assert inquiries[0].provider_ratings == []

    def test_unknown_thread_is_empty(self, db_url):
        async def scenario(trail):
            return await trail.load_thread("nope")

        assert _with_trail(db_url, scenario) == []


class TestProviderStats:
    def test_aggregates_per_provider_model(self, db_url):
        async def scenario(trail):
            await _record_full_inquiry(trail, "t-1", "q1 stock")
            await _record_full_inquiry(trail, "t-1", "q2 stock")
            return await trail.provider_stats()

        stats = _with_trail(db_url, scenario)
        by_key = {(s.provider, s.model): s for s in stats}

        openai = by_key[("openai", "gpt-4o-mini")]
        assert openai.answer_count == 2
        assert openai.avg_latency_ms == 120.0
        assert openai.rating_count == 2
        assert openai.avg_score == 60.0

        anthropic = by_key[("anthropic", "claude-sonnet-4-6")]
        assert anthropic.avg_score == 90.0

    def test_since_filters_old_rows(self, db_url):
        async def scenario(trail):
            await _record_full_inquiry(trail, "t-1", "q stock")
            future = datetime.now(UTC) + timedelta(hours=1)
            return await trail.provider_stats(since=future)

        assert _with_trail(db_url, scenario) == []
