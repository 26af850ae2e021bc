# =============================================================================
# Rater — LLM-as-Judge Scoring of Panel Answers
# =============================================================================
#
# For every successful panel answer, asks the judge for a 0–100 score and
# a justification in a fixed textual layout:
#
#   SCORE: <integer>
#   JUSTIFICATION: <free text>
#
# The judge's output is unstructured model text, so parsing is a pure
# function with an explicit fallback:
#   - no "SCORE:" integer        → score 50
#   - no "JUSTIFICATION:" text   → "No justification provided"
#   - any parsed score is clamped to [0, 100], never rejected
#
# Rating jobs run through the fan-out orchestrator. A job whose backend
# call fails yields no rating at all. It is logged, not retried.
# =============================================================================

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass

from finconsensus.agents.panel import PanelAnswer
from finconsensus.config import settings
from finconsensus.services.fanout import FanOutJob, JobResult, fan_out
from finconsensus.services.llm import (
    GenerationOptions,
    LLMProvider,
    generate,
    generate_by_id,
)

logger = logging.getLogger(__name__)

RATING_SYSTEM_PROMPT = (
    "You are an expert evaluator of financial advice. Rate answers objectively."
)

DEFAULT_SCORE = 50
DEFAULT_JUSTIFICATION = "No justification provided"
MIN_SCORE = 0
MAX_SCORE = 100

_SCORE_RE = re.compile(r"SCORE:\s*(\d+)")
_JUSTIFICATION_RE = re.compile(r"JUSTIFICATION:\s*(.+)")


@dataclass
class Rating:
    """A parsed judge verdict."""

    score: int
    justification: str


@dataclass
class AnswerRating:
    """A rating tied back to the panel answer it scores."""

    answer: PanelAnswer
    rating: Rating


def build_rating_prompt(question: str, answer: PanelAnswer) -> str:
    """Format the judge prompt for one panel answer."""
    return (
        f'Rate the following answer to the question "{question}" '
        "on a scale of 0-100:\n\n"
        f"Answer: {answer.text}\n\n"
        "Consider accuracy, completeness, clarity, and relevance. Provide "
        "only a number between 0-100 and a brief justification.\n"
        "Format: SCORE: [number]\nJUSTIFICATION: [brief explanation]"
    )


def clamp_score(score: int) -> int:
    return max(MIN_SCORE, min(MAX_SCORE, score))


def parse_rating(text: str) -> Rating:
    """
    Extract score and justification from judge output.

    Never raises: malformed output degrades to the default rating.
    """
    score_match = _SCORE_RE.search(text)
    justification_match = _JUSTIFICATION_RE.search(text)

    score = int(score_match.group(1)) if score_match else DEFAULT_SCORE
    justification = (
        justification_match.group(1).strip() if justification_match else ""
    )

    return Rating(
        score=clamp_score(score),
        justification=justification or DEFAULT_JUSTIFICATION,
    )


def rating_options() -> GenerationOptions:
    return GenerationOptions(
        temperature=settings.rating_temperature,
        max_tokens=settings.rating_max_tokens,
        system_prompt=RATING_SYSTEM_PROMPT,
        timeout_sec=settings.rating_timeout_sec,
    )


async def rate(
    question: str,
    answer: PanelAnswer,
    judge: LLMProvider | None = None,
) -> Rating:
    """
    Score one panel answer.

    Raises:
        LLMError: If the judge call itself fails.
    """
    messages = [{"role": "user", "content": build_rating_prompt(question, answer)}]
    if judge is not None:
        response = await generate(judge, messages, rating_options())
    else:
        response = await generate_by_id(
            settings.effective_rating_provider, messages, rating_options(),
        )
    return parse_rating(response.content)


async def rate_answers(
    question: str,
    answers: Sequence[PanelAnswer],
    judge: LLMProvider | None = None,
) -> list[JobResult[AnswerRating]]:
    """
    Run the rating round: one fan-out job per panel answer.

    Returns:
        One JobResult per answer, in input order.
    """

    def job(answer: PanelAnswer) -> FanOutJob[AnswerRating]:
        async def run() -> AnswerRating:
            rating = await rate(question, answer, judge)
            return AnswerRating(answer=answer, rating=rating)

        return FanOutJob(label=f"rate:{answer.provider_id}", run=run)

    logger.info("Rating round: %d answers", len(answers))
    return await fan_out([job(a) for a in answers])
