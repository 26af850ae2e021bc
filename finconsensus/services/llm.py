# =============================================================================
# Multi-Provider LLM Abstraction — Backend Client Layer
# =============================================================================
#
# One contract for every answer-generating backend:
#
#   generate(provider, messages, options) -> LLMResponse
#
# Concrete providers differ only in wire format and authentication:
#   - AnthropicProvider        — Claude via the native Anthropic SDK
#                                (system prompt as a top-level kwarg)
#   - OpenAICompatibleProvider — OpenAI itself, or any OpenAI-compatible
#                                API (DeepSeek, Qwen, a local Ollama server)
#                                (system prompt as a message role)
#
# `generate()` wraps a provider's raw `complete()` with the behaviour every
# caller relies on:
#   1. Prepend the system prompt (if any) as a "system" message
#   2. Truncate the conversation to the context token budget
#   3. Bound the call with asyncio.wait_for(timeout)
#   4. Convert every failure (missing key, network, auth, timeout, empty
#      response) into a single LLMError. Never a partial success.
#
# ARCHITECTURE:
#   LLMProvider (Protocol)
#   ├── AnthropicProvider
#   ├── OpenAICompatibleProvider
#   ├── parse_provider_id()      — "type/model@base_url" → ProviderSpec
#   ├── create_provider_from_id() — fresh instance per provider id
#   ├── get_provider()            — cached instance per provider id
#   └── generate()                — the uniform, bounded call
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from finconsensus.config import settings
from finconsensus.services.context import truncate_context

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class LLMError(Exception):
    """Raised when a backend call fails for any reason."""

    def __init__(self, provider_id: str, message: str) -> None:
        self.provider_id = provider_id
        super().__init__(f"[{provider_id}] {message}")


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class LLMResponse:
    """
    Standardised response from any LLM provider.

    Normalises Anthropic and OpenAI response shapes into one structure.
    Token counts are None when the backend reports no usage.
    """

    content: str
    model: str
    finish_reason: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None


@dataclass
class GenerationOptions:
    """Per-call sampling parameters and time budget."""

    temperature: float | None = None
    max_tokens: int | None = None
    system_prompt: str | None = None
    timeout_sec: float = 30.0


@dataclass(frozen=True)
class ProviderSpec:
    """A parsed provider id."""

    provider_type: str
    model: str
    base_url: str | None = None

    @property
    def provider_id(self) -> str:
        base = f"{self.provider_type}/{self.model}"
        return f"{base}@{self.base_url}" if self.base_url else base

    @property
    def label(self) -> str:
        """Provider name recorded in the audit trail."""
        return self.provider_type


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class LLMProvider(Protocol):
    """
    Structural interface for a backend bound to one model.

    `messages` may contain "system", "user" and "assistant" roles. Each
    implementation maps the system role onto its own wire format.
    """

    provider_name: str
    model: str

    async def complete(
        self,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        ...


# ---------------------------------------------------------------------------
# Implementation 1: Anthropic (Claude)
# ---------------------------------------------------------------------------

_DEFAULT_MAX_TOKENS = 1000
_DEFAULT_TEMPERATURE = 0.7
_DEFAULT_ANTHROPIC_SYSTEM = "You are a helpful AI assistant."


class AnthropicProvider:
    """
    Anthropic Claude provider using the native async SDK.

    KEY API DIFFERENCE: Anthropic takes the system prompt as a top-level
    `system=` kwarg and only accepts "user"/"assistant" message roles.
    """

    provider_name = "anthropic"

    def __init__(self, model: str, api_key: str | None = None) -> None:
        from anthropic import AsyncAnthropic

        resolved_key = api_key or settings.anthropic_api_key
        if not resolved_key:
            raise ValueError(
                "No Anthropic API key configured. Set ANTHROPIC_API_KEY in .env"
            )

        # SDK retries are disabled; retry policy belongs to callers.
        self._client = AsyncAnthropic(api_key=resolved_key, max_retries=0)
        self.model = model

        logger.info("Initialized AnthropicProvider (model=%s)", self.model)

    async def complete(
        self,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion using Claude."""
        system_parts = [m["content"] for m in messages if m["role"] == "system"]
        conversation = [
            {
                "role": "assistant" if m["role"] == "assistant" else "user",
                "content": m["content"],
            }
            for m in messages
            if m["role"] != "system"
        ]

        response = await self._client.messages.create(
            model=self.model,
            messages=conversation,
            system="\n\n".join(system_parts) or _DEFAULT_ANTHROPIC_SYSTEM,
            max_tokens=max_tokens if max_tokens is not None else _DEFAULT_MAX_TOKENS,
            temperature=(
                temperature if temperature is not None else _DEFAULT_TEMPERATURE
            ),
        )

        content = ""
        for block in response.content:
            if block.type == "text":
                content = block.text
                break

        return LLMResponse(
            content=content,
            model=response.model or self.model,
            finish_reason=response.stop_reason,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )


# ---------------------------------------------------------------------------
# Implementation 2: OpenAI-Compatible (OpenAI, DeepSeek, Qwen, Ollama, ...)
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """
    Provider for OpenAI and any API that follows the Chat Completions spec.

    "openai/<model>" ids talk to api.openai.com with OPENAI_API_KEY.
    "openai_compatible/<model>[@base_url]" ids use LLM_API_KEY and either
    the id's base URL or LLM_BASE_URL.
    """

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        base_url: str | None = None,
        provider_name: str = "openai",
    ) -> None:
        from openai import AsyncOpenAI

        if provider_name == "openai":
            resolved_key = api_key or settings.openai_api_key
        else:
            resolved_key = api_key or settings.llm_api_key or settings.openai_api_key
        if not resolved_key:
            raise ValueError(
                f"No API key configured for provider '{provider_name}'. "
                "Set OPENAI_API_KEY or LLM_API_KEY in .env"
            )

        client_kwargs: dict = {"api_key": resolved_key, "max_retries": 0}
        resolved_base_url = base_url
        if resolved_base_url is None and provider_name != "openai":
            resolved_base_url = settings.llm_base_url
        if resolved_base_url:
            client_kwargs["base_url"] = resolved_base_url

        self._client = AsyncOpenAI(**client_kwargs)
        self.model = model
        self.provider_name = provider_name

        logger.info(
            "Initialized OpenAICompatibleProvider (model=%s, base_url=%s)",
            self.model,
            resolved_base_url or "https://api.openai.com/v1",
        )

    async def complete(
        self,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion using a Chat Completions API."""
        response = await self._client.chat.completions.create(
            model=self.model,
            messages=messages,
            max_tokens=max_tokens if max_tokens is not None else _DEFAULT_MAX_TOKENS,
            temperature=(
                temperature if temperature is not None else _DEFAULT_TEMPERATURE
            ),
        )

        if not response.choices:
            return LLMResponse(content="", model=response.model or self.model)

        choice = response.choices[0]
        usage = response.usage
        return LLMResponse(
            content=choice.message.content or "",
            model=response.model or self.model,
            finish_reason=choice.finish_reason,
            input_tokens=usage.prompt_tokens if usage else None,
            output_tokens=usage.completion_tokens if usage else None,
        )


# ---------------------------------------------------------------------------
# Provider ID Parsing & Factories
# ---------------------------------------------------------------------------

KNOWN_PROVIDER_TYPES = {"anthropic", "openai", "openai_compatible"}


def parse_provider_id(provider_id: str) -> ProviderSpec:
    """
    Parse a provider id string into a ProviderSpec.

    Formats supported:
        "anthropic/claude-sonnet-4-6"
        "openai/gpt-4o"
        "openai_compatible/deepseek-chat@https://api.deepseek.com/v1"

    Raises:
        ValueError: If the format is unrecognisable or the type unknown.
    """
    if "/" not in provider_id:
        raise ValueError(
            f"Invalid provider_id '{provider_id}'. "
            "Expected format: 'provider_type/model' or "
            "'provider_type/model@base_url'"
        )

    provider_type, rest = provider_id.split("/", 1)

    base_url: str | None = None
    if "@" in rest:
        model, base_url = rest.split("@", 1)
    else:
        model = rest

    if provider_type not in KNOWN_PROVIDER_TYPES:
        raise ValueError(
            f"Unknown provider type '{provider_type}'. "
            f"Supported types: {sorted(KNOWN_PROVIDER_TYPES)}"
        )
    if not model:
        raise ValueError(f"Invalid provider_id '{provider_id}': empty model")

    return ProviderSpec(provider_type=provider_type, model=model, base_url=base_url)


def create_provider_from_id(
    provider_id: str,
    api_key: str | None = None,
) -> AnthropicProvider | OpenAICompatibleProvider:
    """
    Create a fresh provider instance from a provider id string.

    Raises:
        ValueError: If the id is invalid or its API key is missing.
    """
    spec = parse_provider_id(provider_id)

    if spec.provider_type == "anthropic":
        return AnthropicProvider(model=spec.model, api_key=api_key)

    return OpenAICompatibleProvider(
        model=spec.model,
        api_key=api_key,
        base_url=spec.base_url,
        provider_name=spec.provider_type,
    )


# Cached instances keyed by provider id. SDK clients own connection pools,
# so one client per id is reused across requests.
_providers: dict[str, AnthropicProvider | OpenAICompatibleProvider] = {}


def get_provider(provider_id: str) -> AnthropicProvider | OpenAICompatibleProvider:
    """Return the cached provider for `provider_id`, creating it on first use."""
    provider = _providers.get(provider_id)
    if provider is None:
        provider = create_provider_from_id(provider_id)
        _providers[provider_id] = provider
    return provider


# ---------------------------------------------------------------------------
# The Uniform Call
# ---------------------------------------------------------------------------


def format_messages(
    messages: list[dict[str, str]],
    system_prompt: str | None = None,
) -> list[dict[str, str]]:
    """Prepend the system prompt, if any, as a "system" message."""
    if system_prompt:
        return [{"role": "system", "content": system_prompt}, *messages]
    return list(messages)


async def generate(
    provider: LLMProvider,
    messages: list[dict[str, str]],
    options: GenerationOptions | None = None,
    provider_id: str | None = None,
) -> LLMResponse:
    """
    Send a conversation to one backend and return its single reply.

    Args:
        provider: Any object satisfying LLMProvider.
        messages: Ordered conversation ("system"/"user"/"assistant").
        options: Sampling parameters, system prompt and timeout.
        provider_id: Label used in errors and logs. Defaults to
            "<provider_name>/<model>".

    Returns:
        LLMResponse with non-empty content.

    Raises:
        LLMError: On timeout, transport/auth failure or empty response.
    """
    options = options or GenerationOptions()
    label = provider_id or f"{provider.provider_name}/{provider.model}"

    prepared = truncate_context(
        format_messages(messages, options.system_prompt),
        settings.context_token_budget,
    )

    try:
        response = await asyncio.wait_for(
            provider.complete(
                prepared,
                temperature=options.temperature,
                max_tokens=options.max_tokens,
            ),
            timeout=options.timeout_sec,
        )
    except TimeoutError as exc:
        raise LLMError(
            label, f"Request timed out after {options.timeout_sec}s",
        ) from exc
    except LLMError:
        raise
    except Exception as exc:
        raise LLMError(label, f"API call failed: {exc}") from exc

    if not response.content or not response.content.strip():
        raise LLMError(label, "Empty response content")

    logger.debug(
        "Generated %d chars from %s (finish=%s, in=%s, out=%s)",
        len(response.content),
        label,
        response.finish_reason,
        response.input_tokens,
        response.output_tokens,
    )
    return response


async def generate_by_id(
    provider_id: str,
    messages: list[dict[str, str]],
    options: GenerationOptions | None = None,
) -> LLMResponse:
    """
    Resolve `provider_id` and call `generate()`.

    Configuration problems (bad id, missing key) surface as LLMError so a
    misconfigured provider fails only its own job.
    """
    try:
        provider = get_provider(provider_id)
    except ValueError as exc:
        raise LLMError(provider_id, str(exc)) from exc
    return await generate(provider, messages, options, provider_id=provider_id)
