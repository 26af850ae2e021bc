# =============================================================================
# Context Truncation — Token Budget for Outgoing Conversations
# =============================================================================
#
# Bounds the size of every conversation sent to a backend. Token counts
# are approximated as ceil(len(content) / 4); no tokenizer dependency.
#
# RULES:
#   - All "system" messages are kept in full and placed first.
#   - Remaining messages are walked newest → oldest. The walk stops the
#     first time the next (older) message would exceed the budget.
#   - The result is [system messages] + [contiguous newest suffix], in
#     original relative order.
#   - If the newest message alone exceeds the budget it is still kept,
#     so a conversation never truncates to nothing.
# =============================================================================

from __future__ import annotations

import math
from collections.abc import Sequence

CHARS_PER_TOKEN = 4


def estimate_tokens(content: str) -> int:
    """Approximate token count for a single message body."""
    return math.ceil(len(content) / CHARS_PER_TOKEN)


def conversation_tokens(messages: Sequence[dict[str, str]]) -> int:
    """Approximate token count for a whole conversation."""
    return sum(estimate_tokens(m["content"]) for m in messages)


def truncate_context(
    messages: Sequence[dict[str, str]],
    budget_tokens: int,
) -> list[dict[str, str]]:
    """
    Drop the oldest non-system messages until the conversation fits.

    Pure and deterministic: the input sequence is never mutated.

    Args:
        messages: Ordered conversation, dicts with "role" and "content".
        budget_tokens: Approximate token budget for non-system messages.

    Returns:
        A new list: system messages first, then the newest non-system
        messages that fit the budget (at least one, if any exist).
    """
    system_messages = [m for m in messages if m["role"] == "system"]
    other_messages = [m for m in messages if m["role"] != "system"]

    kept: list[dict[str, str]] = []
    used = 0
    for message in reversed(other_messages):
        cost = estimate_tokens(message["content"])
        if used + cost > budget_tokens:
            if not kept:
                # Oversized newest message: keep it alone.
                kept.append(message)
            break
        kept.append(message)
        used += cost

    kept.reverse()
    return [*system_messages, *kept]
