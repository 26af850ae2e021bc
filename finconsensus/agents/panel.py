# =============================================================================
# Answer Panel — The Answer Round
# =============================================================================
#
# Sends the identical question to every configured (provider, model) pair
# through the fan-out orchestrator and returns one settled result per pair.
# Failed pairs come back as failure results; nothing here raises for a
# single backend failure.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass

from finconsensus.config import settings
from finconsensus.services.fanout import FanOutJob, JobResult, fan_out
from finconsensus.services.llm import GenerationOptions, generate_by_id, parse_provider_id

logger = logging.getLogger(__name__)

ANSWER_SYSTEM_PROMPT = (
    "You are a helpful financial advisor. Provide accurate, informative "
    "responses about finance, investing, and markets."
)


@dataclass
class PanelAnswer:
    """A successful answer from one panel member."""

    provider_id: str
    provider: str
    model: str
    text: str
    latency_ms: int
    finish_reason: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None


def answer_options() -> GenerationOptions:
    return GenerationOptions(
        temperature=settings.answer_temperature,
        max_tokens=settings.answer_max_tokens,
        system_prompt=ANSWER_SYSTEM_PROMPT,
        timeout_sec=settings.answer_timeout_sec,
    )


def _answer_job(provider_id: str, question: str) -> FanOutJob[PanelAnswer]:
    async def run() -> PanelAnswer:
        # Parsed inside the job so a malformed id fails only this pair.
        spec = parse_provider_id(provider_id)
        response = await generate_by_id(
            provider_id,
            [{"role": "user", "content": question}],
            answer_options(),
        )
        return PanelAnswer(
            provider_id=provider_id,
            provider=spec.label,
            model=spec.model,
            text=response.content,
            latency_ms=0,
            finish_reason=response.finish_reason,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
        )

    return FanOutJob(label=provider_id, run=run)


async def ask_panel(
    question: str,
    provider_ids: list[str] | None = None,
) -> list[JobResult[PanelAnswer]]:
    """
    Run the answer round.

    Args:
        question: The user's question, sent verbatim to every provider.
        provider_ids: Panel override; defaults to settings.answer_providers.

    Returns:
        One JobResult per provider id, in panel order. Successful results
        carry a PanelAnswer whose latency_ms is the job's measured latency.
    """
    panel = provider_ids if provider_ids is not None else settings.answer_providers
    logger.info("Answer round: %d providers", len(panel))

    results = await fan_out([_answer_job(pid, question) for pid in panel])

    for result in results:
        if result.ok and result.value is not None:
            result.value.latency_ms = result.latency_ms
    return results
