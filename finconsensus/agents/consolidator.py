# =============================================================================
# Consolidator — Synthesise One Answer from the Panel
# =============================================================================
#
# Builds a single prompt enumerating every successful panel answer,
# labelled by provider/model, and asks the judge backend for one
# comprehensive answer. Exactly one backend call; never fanned out.
#
# The prompt builder is a pure function with a fixed layout so prompt
# regressions are testable without any network behaviour.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Sequence

from finconsensus.agents.panel import PanelAnswer
from finconsensus.config import settings
from finconsensus.services.llm import (
    GenerationOptions,
    LLMProvider,
    LLMResponse,
    generate,
    generate_by_id,
)

logger = logging.getLogger(__name__)

CONSOLIDATION_SYSTEM_PROMPT = (
    "You are an expert financial analyst. Consolidate the given responses "
    "into a single, accurate, and comprehensive answer."
)


def build_consolidation_prompt(
    question: str,
    answers: Sequence[PanelAnswer],
) -> str:
    """
    Format the synthesis prompt.

    Layout:
        Based on the following responses to the question "<q>", provide a
        consolidated, comprehensive answer:

        Response 1 (provider/model):
        <text>

        Response 2 (provider/model):
        <text>

        Consolidated Answer:
    """
    responses = "\n\n".join(
        f"Response {i} ({a.provider}/{a.model}):\n{a.text}"
        for i, a in enumerate(answers, start=1)
    )
    return (
        f'Based on the following responses to the question "{question}", '
        "provide a consolidated, comprehensive answer:\n\n"
        f"{responses}\n\n"
        "Consolidated Answer:"
    )


def consolidation_options() -> GenerationOptions:
    return GenerationOptions(
        temperature=settings.consolidation_temperature,
        max_tokens=settings.consolidation_max_tokens,
        system_prompt=CONSOLIDATION_SYSTEM_PROMPT,
        timeout_sec=settings.consolidation_timeout_sec,
    )


async def consolidate(
    question: str,
    answers: Sequence[PanelAnswer],
    judge: LLMProvider | None = None,
) -> LLMResponse:
    """
    Ask the judge to synthesise the panel answers into one.

    Args:
        question: The original question.
        answers: Successful panel answers. Must not be empty.
        judge: Provider override; defaults to settings.judge_provider.

    Raises:
        ValueError: If `answers` is empty.
        LLMError: If the judge call fails.
    """
    if not answers:
        raise ValueError("Cannot consolidate zero answers")

    messages = [
        {"role": "user", "content": build_consolidation_prompt(question, answers)},
    ]
    logger.info("Consolidating %d answers", len(answers))

    if judge is not None:
        return await generate(judge, messages, consolidation_options())
    return await generate_by_id(
        settings.judge_provider, messages, consolidation_options(),
    )
