# =============================================================================
# API Tests — FastAPI TestClient
# =============================================================================
#
# The app is exercised without its lifespan (no PostgreSQL). The audit
# trail dependency is overridden with one bound to a disposable SQLite
# database; NullPool keeps aiosqlite connections from outliving the event
# loop that opened them (TestClient runs its own loop).
# =============================================================================

from __future__ import annotations

import asyncio
import uuid
from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from finconsensus.agents.panel import PanelAnswer
from finconsensus.agents.pipeline import (
    AllProvidersFailedError,
    InquiryResult,
    OutOfScopeError,
)
from finconsensus.api.audit import AuditLoggingMiddleware
from finconsensus.api.deps import get_audit_trail
from finconsensus.config import Settings, get_settings, settings
from finconsensus.db.engine import build_session_factory, init_models
from finconsensus.db.models import AuditLog
from finconsensus.main import app
from finconsensus.services.trail import AuditTrail


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


@pytest.fixture
def session_factory(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'api.db'}", poolclass=NullPool,
    )
    _run(init_models(engine))
    yield build_session_factory(engine)
    _run(engine.dispose())


@pytest.fixture
def trail(session_factory) -> AuditTrail:
    return AuditTrail(session_factory)


@pytest.fixture
def client(trail, monkeypatch):
    monkeypatch.setattr(settings, "audit_logging_enabled", False)
    app.dependency_overrides[get_audit_trail] = lambda: trail
    yield TestClient(app)
    app.dependency_overrides.clear()


def _inquiry_result(consolidated: str | None = "Merged answer") -> InquiryResult:
    return InquiryResult(
        inquiry_id=uuid.uuid4(),
        thread_id="thread-1",
        question="How do bonds work?",
        consolidated_answer=consolidated,
        answers=[
            PanelAnswer(
                provider_id="openai/gpt-4o", provider="openai", model="gpt-4o",
                text="Bonds are loans.", latency_ms=210,
            ),
        ],
        timestamp=datetime.now(UTC),
    )


# ---------------------------------------------------------------------------
# Test: Health & Providers
# ---------------------------------------------------------------------------


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestProviders:
    def test_lists_panel_and_judges(self, client):
        app.dependency_overrides[get_settings] = lambda: Settings(
            answer_providers=["openai/gpt-4o", "anthropic/claude-sonnet-4-6"],
            judge_provider="openai/gpt-4o",
            rating_provider=None,
        )
        body = client.get("/providers").json()

        assert body["answer_providers"] == [
            "openai/gpt-4o", "anthropic/claude-sonnet-4-6",
        ]
        assert body["judge_provider"] == "openai/gpt-4o"
        assert body["rating_provider"] == "openai/gpt-4o"

    def test_metrics(self, client, trail):
        async def seed():
            inquiry = await trail.record_inquiry("t-1", "stock question")
            answer = await trail.record_provider_answer(
                inquiry.id, "openai", "gpt-4o", "text", 300,
            )
            await trail.record_rating(
                inquiry.id, answer.id, "openai", "gpt-4o", 75, "ok",
            )

        _run(seed())
        body = client.get("/metrics/providers", params={"hours": 1}).json()

        assert body["period_hours"] == 1
        assert body["providers"] == [{
            "provider": "openai",
            "model": "gpt-4o",
            "answer_count": 1,
            "avg_latency_ms": 300.0,
            "rating_count": 1,
            "avg_score": 75.0,
        }]

    def test_metrics_hours_validated(self, client):
        assert client.get("/metrics/providers", params={"hours": 0}).status_code == 422


# ---------------------------------------------------------------------------
# Test: POST /chat/ask
# ---------------------------------------------------------------------------


class TestAsk:
    def test_success(self, client):
        result = _inquiry_result()
        with patch(
            "finconsensus.api.chat.run_inquiry", AsyncMock(return_value=result),
        ) as mock_run:
            response = client.post(
                "/chat/ask",
                json={"thread_id": "thread-1", "question": "How do bonds work?"},
            )

        assert response.status_code == 200
        body = response.json()
        assert body["inquiry_id"] == str(result.inquiry_id)
        assert body["thread_id"] == "thread-1"
        assert body["consolidated_answer"] == "Merged answer"
        assert body["provider_results"] == [
            {"provider": "openai", "model": "gpt-4o", "latency_ms": 210},
        ]
        assert mock_run.call_args.kwargs["thread_id"] == "thread-1"

    def test_null_consolidation_allowed(self, client):
        with patch(
            "finconsensus.api.chat.run_inquiry",
            AsyncMock(return_value=_inquiry_result(consolidated=None)),
        ):
            response = client.post("/chat/ask", json={"question": "How do bonds work?"})
        assert response.status_code == 200
        assert response.json()["consolidated_answer"] is None

    def test_out_of_scope_is_400(self, client):
        with patch(
            "finconsensus.api.chat.run_inquiry",
            AsyncMock(side_effect=OutOfScopeError("Question must be finance-related.")),
        ):
            response = client.post("/chat/ask", json={"question": "Best pizza in town?"})
        assert response.status_code == 400
        assert "finance-related" in response.json()["detail"]

    def test_all_providers_failed_is_502(self, client):
        error = AllProvidersFailedError(uuid.uuid4(), {"openai/gpt-4o": "down"})
        with patch(
            "finconsensus.api.chat.run_inquiry", AsyncMock(side_effect=error),
        ):
            response = client.post("/chat/ask", json={"question": "Stock tips?"})
        assert response.status_code == 502

    def test_configuration_error_is_503(self, client):
        with patch(
            "finconsensus.api.chat.run_inquiry",
            AsyncMock(side_effect=ValueError("Unknown provider type 'x'")),
        ):
            response = client.post("/chat/ask", json={"question": "Stock tips?"})
        assert response.status_code == 503

    def test_database_failure_is_503(self, client):
        with patch(
            "finconsensus.api.chat.run_inquiry",
            AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("db down"))),
        ):
            response = client.post("/chat/ask", json={"question": "Stock tips?"})
        assert response.status_code == 503
        assert "Database unavailable" in response.json()["detail"]
        assert "LLM" not in response.json()["detail"]

    def test_inquiry_write_failure_is_503(self, client):
        broken = AsyncMock(spec=AuditTrail)
        broken.record_inquiry.side_effect = OperationalError(
            "INSERT", {}, Exception("connection refused"),
        )
        app.dependency_overrides[get_audit_trail] = lambda: broken

        response = client.post(
            "/chat/ask", json={"question": "Is now a good time to buy stocks?"},
        )

        assert response.status_code == 503
        broken.record_inquiry.assert_awaited_once()

    def test_question_too_short_is_422(self, client):
        assert client.post("/chat/ask", json={"question": "hi"}).status_code == 422

    def test_out_of_scope_end_to_end_persists_nothing(self, client, trail):
        response = client.post(
            "/chat/ask",
            json={"thread_id": "t-scope", "question": "What's the capital of France?"},
        )
        assert response.status_code == 400
        assert _run(trail.load_thread("t-scope")) == []


# ---------------------------------------------------------------------------
# Test: GET /chat/inquiries
# ---------------------------------------------------------------------------


class TestInquiries:
    def test_returns_thread_trail(self, client, trail):
        async def seed():
            inquiry = await trail.record_inquiry("t-1", "Should I buy bonds?")
            low = await trail.record_provider_answer(
                inquiry.id, "openai", "gpt-4o-mini", "Maybe.", 100,
            )
            high = await trail.record_provider_answer(
                inquiry.id, "openai", "gpt-4o", "Depends on rates.", 250,
            )
            await trail.record_consolidated_answer(
                inquiry.id, "It depends on interest rates.", sources_used=2,
            )
            await trail.record_rating(inquiry.id, low.id, "openai", "gpt-4o-mini", 40, "Vague.")
            await trail.record_rating(inquiry.id, high.id, "openai", "gpt-4o", 88, "Good.")

        _run(seed())
        response = client.get("/chat/inquiries", params={"thread_id": "t-1"})

        assert response.status_code == 200
        body = response.json()
        assert body["thread_id"] == "t-1"
        assert body["count"] == 1

        inquiry = body["inquiries"][0]
        assert inquiry["question"] == "Should I buy bonds?"
        assert inquiry["consolidated_answer"] == "It depends on interest rates."
        assert inquiry["answer_created_at"] is not None
        assert [a["model"] for a in inquiry["provider_answers"]] == [
            "gpt-4o-mini", "gpt-4o",
        ]
        assert [r["score"] for r in inquiry["provider_ratings"]] == [88, 40]

    def test_empty_thread(self, client):
        body = client.get("/chat/inquiries", params={"thread_id": "none"}).json()
        assert body == {"thread_id": "none", "inquiries": [], "count": 0}

    def test_thread_id_required(self, client):
        assert client.get("/chat/inquiries").status_code == 422


# ---------------------------------------------------------------------------
# Test: Audit Logging Middleware
# ---------------------------------------------------------------------------


class TestAuditMiddleware:
    def _app(self, session_factory) -> FastAPI:
        audited = FastAPI()
        audited.add_middleware(AuditLoggingMiddleware, session_factory=session_factory)

        @audited.get("/chat/echo")
        async def echo(request: Request):
            request.state.audit_thread_id = "t-audit"
            request.state.audit_question = "What about stocks?"
            return {"ok": True}

        @audited.get("/health")
        async def health():
            return {"status": "ok"}

        return audited

    def _logs(self, session_factory):
        async def fetch():
            async with session_factory() as session:
                return (await session.execute(select(AuditLog))).scalars().all()

        return _run(fetch())

    def test_writes_row_with_request_context(self, session_factory, monkeypatch):
        monkeypatch.setattr(settings, "audit_logging_enabled", True)
        TestClient(self._app(session_factory)).get("/chat/echo")

        logs = self._logs(session_factory)
        assert len(logs) == 1
        assert logs[0].endpoint == "chat"
        assert logs[0].path == "/chat/echo"
        assert logs[0].thread_id == "t-audit"
        assert logs[0].question == "What about stocks?"
        assert logs[0].status_code == 200

    def test_skips_health(self, session_factory, monkeypatch):
        monkeypatch.setattr(settings, "audit_logging_enabled", True)
        TestClient(self._app(session_factory)).get("/health")
        assert self._logs(session_factory) == []

    def test_disabled(self, session_factory, monkeypatch):
        monkeypatch.setattr(settings, "audit_logging_enabled", False)
        TestClient(self._app(session_factory)).get("/chat/echo")
        assert self._logs(session_factory) == []
