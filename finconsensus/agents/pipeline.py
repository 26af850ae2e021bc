# =============================================================================
# Consolidation Pipeline — LangGraph Assembly
# =============================================================================
#
# Wires the answer round, consolidation and rating round into a LangGraph
# StateGraph. The topic guard and inquiry creation run before the graph
# (nothing may be persisted for a rejected question).
#
# GRAPH TOPOLOGY:
#
#   START ──▶ answer ──┬──▶ consolidate ──▶ rate ──▶ END
#                      │
#                      └──▶ END   (no successful answers)
#
# STAGE ORDER: the rating round starts only after consolidation has been
# attempted and recorded. Within each round, jobs run concurrently through
# the fan-out orchestrator.
#
# FAILURE POLICY:
#   - Out-of-scope question   → OutOfScopeError, before any persistence
#   - Every provider failed   → AllProvidersFailedError (the only hard error)
#   - Some providers failed   → continue with the successful subset
#   - Consolidation failed    → logged; consolidated answer is None
#   - A rating call failed    → logged; no rating row for that answer
#   - A write failed          → logged; that record is absent
#   - Judge id unparseable    → logged; judge columns left empty
#
# The graph is compiled once at module level. Per-run collaborators (the
# audit trail, optional provider overrides) travel in the state. They are
# not JSON-serialisable, so the graph runs without a checkpointer.
# =============================================================================

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from langgraph.graph import END, START, StateGraph
from typing_extensions import TypedDict

from finconsensus.agents.consolidator import consolidate
from finconsensus.agents.panel import PanelAnswer, ask_panel
from finconsensus.agents.rater import AnswerRating, rate_answers
from finconsensus.config import settings
from finconsensus.services.fanout import successes
from finconsensus.services.llm import LLMProvider, parse_provider_id
from finconsensus.services.topic_guard import is_in_scope, matched_keywords
from finconsensus.services.trail import AuditTrail

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class PipelineError(Exception):
    """Base class for conditions surfaced to the caller."""


class OutOfScopeError(PipelineError):
    """The question failed the topic guard. Nothing was persisted."""


class AllProvidersFailedError(PipelineError):
    """Every provider in the answer round failed."""

    def __init__(self, inquiry_id: uuid.UUID, errors: dict[str, str]) -> None:
        self.inquiry_id = inquiry_id
        self.errors = errors
        super().__init__("All providers failed to generate responses")


# ---------------------------------------------------------------------------
# Pipeline State & Result
# ---------------------------------------------------------------------------


class PipelineState(TypedDict, total=False):
    """State flowing through the graph. Nodes return partial updates."""

    # --- Input ---
    inquiry_id: uuid.UUID
    question: str
    trail: AuditTrail
    provider_ids: list[str] | None
    judge_override: LLMProvider | None

    # --- Answer round ---
    answers: list[PanelAnswer]
    # Persisted row id per position in `answers`
    answer_row_ids: dict[int, uuid.UUID]
    failed_providers: dict[str, str]

    # --- Consolidation ---
    consolidated_answer: str | None

    # --- Rating round ---
    ratings: list[AnswerRating]


@dataclass
class InquiryResult:
    """What the HTTP layer needs to answer POST /chat/ask."""

    inquiry_id: uuid.UUID
    thread_id: str
    question: str
    consolidated_answer: str | None
    answers: list[PanelAnswer]
    ratings: list[AnswerRating] = field(default_factory=list)
    failed_providers: dict[str, str] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


# ---------------------------------------------------------------------------
# Node Functions
# ---------------------------------------------------------------------------


async def answer_node(state: PipelineState) -> dict:
    """Fan the question out to every panel provider and record successes."""
    trail = state["trail"]
    results = await ask_panel(state["question"], state.get("provider_ids"))

    answers = [r.value for r in successes(results)]
    failed = {r.label: str(r.error) for r in results if not r.ok}

    answer_row_ids: dict[int, uuid.UUID] = {}
    for index, answer in enumerate(answers):
        row = await trail.record_provider_answer(
            inquiry_id=state["inquiry_id"],
            provider=answer.provider,
            model=answer.model,
            answer=answer.text,
            latency_ms=answer.latency_ms,
            finish_reason=answer.finish_reason,
            input_tokens=answer.input_tokens,
            output_tokens=answer.output_tokens,
        )
        if row is not None:
            answer_row_ids[index] = row.id

    logger.info(
        "Answer round complete: %d succeeded, %d failed",
        len(answers), len(failed),
    )
    return {
        "answers": answers,
        "answer_row_ids": answer_row_ids,
        "failed_providers": failed,
    }


def _judge_identity(
    judge: LLMProvider | None,
    provider_id: str,
) -> tuple[str | None, str | None]:
    """Provider and model recorded as the judge of a consolidation or rating."""
    if judge is not None:
        return judge.provider_name, judge.model
    try:
        parsed = parse_provider_id(provider_id)
    except ValueError as e:
        logger.warning("Cannot label judge %r: %s", provider_id, e)
        return None, None
    return parsed.label, parsed.model


def route_after_answers(state: PipelineState) -> str:
    """Skip consolidation and rating when nothing succeeded."""
    return "consolidate" if state.get("answers") else END


async def consolidate_node(state: PipelineState) -> dict:
    """Synthesise the panel answers and record the result."""
    answers = state["answers"]
    judge = state.get("judge_override")
    start = time.monotonic()

    try:
        response = await consolidate(state["question"], answers, judge)
    except Exception as e:
        logger.warning("Consolidation failed: %s", e)
        return {"consolidated_answer": None}

    elapsed = int((time.monotonic() - start) * 1000)

    judge_provider, judge_model = _judge_identity(judge, settings.judge_provider)

    await state["trail"].record_consolidated_answer(
        inquiry_id=state["inquiry_id"],
        answer=response.content,
        sources_used=len(answers),
        judge_provider=judge_provider,
        judge_model=response.model or judge_model,
        processing_time_ms=elapsed,
        sources=[a.provider_id for a in answers],
    )
    return {"consolidated_answer": response.content}


async def rate_node(state: PipelineState) -> dict:
    """Score every successful answer and record each rating."""
    judge = state.get("judge_override")
    results = await rate_answers(state["question"], state["answers"], judge)

    judge_provider, judge_model = _judge_identity(
        judge, settings.effective_rating_provider,
    )

    row_ids = state.get("answer_row_ids", {})
    ratings: list[AnswerRating] = []
    # rate_answers keeps input order, so position i rates answers[i]
    for index, result in enumerate(results):
        if not result.ok:
            continue
        rated = result.value
        ratings.append(rated)

        answer_row_id = row_ids.get(index)
        if answer_row_id is None:
            logger.warning(
                "Skipping rating for %s: its answer was not persisted",
                rated.answer.provider_id,
            )
            continue

        await state["trail"].record_rating(
            inquiry_id=state["inquiry_id"],
            provider_answer_id=answer_row_id,
            provider=rated.answer.provider,
            model=rated.answer.model,
            score=rated.rating.score,
            justification=rated.rating.justification,
            judge_provider=judge_provider,
            judge_model=judge_model,
        )

    logger.info("Rating round complete: %d/%d rated", len(ratings), len(results))
    return {"ratings": ratings}


# ---------------------------------------------------------------------------
# Graph Assembly
# ---------------------------------------------------------------------------

_builder = StateGraph(PipelineState)
_builder.add_node("answer", answer_node)
_builder.add_node("consolidate", consolidate_node)
_builder.add_node("rate", rate_node)

_builder.add_edge(START, "answer")
_builder.add_conditional_edges("answer", route_after_answers, ["consolidate", END])
_builder.add_edge("consolidate", "rate")
_builder.add_edge("rate", END)

graph = _builder.compile()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def run_inquiry(
    question: str,
    trail: AuditTrail,
    thread_id: str | None = None,
    provider_ids: list[str] | None = None,
    judge: LLMProvider | None = None,
) -> InquiryResult:
    """
    Entry point: guard, persist the inquiry, run the graph.

    Args:
        question: The user's question.
        trail: Audit trail repository used for every write.
        thread_id: Conversation key; a UUID4 string is generated if absent.
        provider_ids: Answer panel override (defaults to settings).
        judge: Judge provider override for consolidation and rating
            (defaults to settings.judge_provider / rating_provider).

    Raises:
        OutOfScopeError: The question failed the topic guard.
        AllProvidersFailedError: No provider produced an answer.
    """
    if not is_in_scope(question):
        logger.info("Rejected out-of-scope question: '%s'", question[:80])
        raise OutOfScopeError(
            "Question must be finance-related. Please ask about stocks, "
            "markets, investments, or other financial topics."
        )
    logger.debug("Topic guard matched: %s", matched_keywords(question))

    thread_id = thread_id or str(uuid.uuid4())
    inquiry = await trail.record_inquiry(thread_id, question)

    initial_state: PipelineState = {
        "inquiry_id": inquiry.id,
        "question": question,
        "trail": trail,
        "provider_ids": provider_ids,
        "judge_override": judge,
    }

    logger.info("Invoking consolidation graph for inquiry %s", inquiry.id)
    final = await graph.ainvoke(initial_state)

    answers = final.get("answers", [])
    if not answers:
        raise AllProvidersFailedError(inquiry.id, final.get("failed_providers", {}))

    return InquiryResult(
        inquiry_id=inquiry.id,
        thread_id=thread_id,
        question=question,
        consolidated_answer=final.get("consolidated_answer"),
        answers=answers,
        ratings=final.get("ratings", []),
        failed_providers=final.get("failed_providers", {}),
    )
