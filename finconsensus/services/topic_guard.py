# =============================================================================
# Topic Guard — Keyword Pre-Filter for Finance Questions
# =============================================================================
#
# Rejects questions outside the financial domain before any backend is
# called or any inquiry is persisted. Case-insensitive substring matching
# against a fixed vocabulary: no stemming, no NLP, no LLM call.
#
# False positives and negatives are acceptable. The guard exists only to
# avoid spending backend calls on obviously out-of-domain input.
# =============================================================================

from __future__ import annotations

from collections.abc import Iterable

from finconsensus.config import settings


def matched_keywords(
    text: str,
    keywords: Iterable[str] | None = None,
) -> list[str]:
    """Return the vocabulary entries found in `text`, in vocabulary order."""
    vocabulary = settings.topic_keywords if keywords is None else keywords
    text_lower = text.lower()
    return [kw for kw in vocabulary if kw.lower() in text_lower]


def is_in_scope(text: str, keywords: Iterable[str] | None = None) -> bool:
    """True if any topic keyword appears anywhere in `text`."""
    vocabulary = settings.topic_keywords if keywords is None else keywords
    text_lower = text.lower()
    return any(kw.lower() in text_lower for kw in vocabulary)
