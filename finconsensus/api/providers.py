# =============================================================================
# Providers API — Panel Configuration & Performance Dashboard
# =============================================================================
#
# GET /providers          — the configured answer panel and judges
# GET /metrics/providers  — per (provider, model) answer counts, mean
#                           latency and mean rating over a look-back window
# =============================================================================

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, Depends, Query

from finconsensus.api.deps import get_audit_trail
from finconsensus.config import Settings, get_settings
from finconsensus.models.responses import (
    MetricsResponse,
    ProviderMetricSummary,
    ProvidersResponse,
)
from finconsensus.services.trail import AuditTrail

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Providers"])


@router.get(
    "/providers",
    response_model=ProvidersResponse,
    summary="List the configured answer panel and judges",
)
async def list_providers(
    config: Settings = Depends(get_settings),
) -> ProvidersResponse:
    return ProvidersResponse(
        answer_providers=list(config.answer_providers),
        judge_provider=config.judge_provider,
        rating_provider=config.effective_rating_provider,
    )


@router.get(
    "/metrics/providers",
    response_model=MetricsResponse,
    summary="Aggregated answer latency and rating by provider",
    description=(
        "Aggregates the provider_answers and provider_ratings tables, "
        "grouped by provider and model, over the last `hours` hours."
    ),
)
async def provider_metrics(
    hours: int = Query(
        default=24, ge=1, le=720,
        description="Lookback window in hours",
    ),
    trail: AuditTrail = Depends(get_audit_trail),
) -> MetricsResponse:
    cutoff = datetime.now(UTC) - timedelta(hours=hours)
    stats = await trail.provider_stats(since=cutoff)
    logger.debug("Provider metrics: %d groups since %s", len(stats), cutoff)

    return MetricsResponse(
        period_hours=hours,
        providers=[ProviderMetricSummary.model_validate(s) for s in stats],
    )
