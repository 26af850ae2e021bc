# =============================================================================
# Shared Test Fixtures
# =============================================================================

from __future__ import annotations

import asyncio

import pytest

from finconsensus.agents.panel import PanelAnswer
from finconsensus.services.llm import LLMResponse


class FakeProvider:
    """
    Scripted LLMProvider.

    `reply` is either a string, an exception to raise, or a callable
    taking the prepared messages and returning a string.
    """

    def __init__(self, reply, provider_name="fake", model="fake-model", delay=0.0):
        self.provider_name = provider_name
        self.model = model
        self.reply = reply
        self.delay = delay
        self.calls: list[dict] = []

    async def complete(self, messages, temperature=None, max_tokens=None):
        self.calls.append({
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.reply, Exception):
            raise self.reply
        content = self.reply(messages) if callable(self.reply) else self.reply
        return LLMResponse(
            content=content,
            model=self.model,
            finish_reason="stop",
            input_tokens=10,
            output_tokens=5,
        )


@pytest.fixture
def panel_answers() -> list[PanelAnswer]:
    return [
        PanelAnswer(
            provider_id="openai/gpt-4o-mini", provider="openai",
            model="gpt-4o-mini", text="Diversify across index funds.",
            latency_ms=120,
        ),
        PanelAnswer(
            provider_id="anthropic/claude-sonnet-4-6", provider="anthropic",
            model="claude-sonnet-4-6", text="Low-cost ETFs suit most investors.",
            latency_ms=340,
        ),
    ]
