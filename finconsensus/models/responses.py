# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# Shapes of data coming OUT of the API. Kept separate from the ORM models
# so the wire format is explicit: trail views are built with
# from_attributes=True straight from the SQLAlchemy rows.
# =============================================================================

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


# ---------------------------------------------------------------------------
# POST /chat/ask
# ---------------------------------------------------------------------------


class ProviderResultSummary(BaseModel):
    """One successful panel member in the answer round."""

    provider: str
    model: str
    latency_ms: int


class AskResponse(BaseModel):
    """Response for POST /chat/ask."""

    inquiry_id: uuid.UUID
    thread_id: str
    question: str
    consolidated_answer: str | None = Field(
        description="Judge's synthesis, or null if consolidation failed",
    )
    provider_results: list[ProviderResultSummary]
    timestamp: datetime


# ---------------------------------------------------------------------------
# GET /chat/inquiries
# ---------------------------------------------------------------------------


class ProviderAnswerView(BaseModel):
    id: uuid.UUID
    provider: str
    model: str
    answer: str
    latency_ms: int
    finish_reason: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProviderRatingView(BaseModel):
    id: uuid.UUID
    provider_answer_id: uuid.UUID
    provider: str
    model: str
    score: int
    justification: str
    judge_provider: str | None = None
    judge_model: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InquiryTrailResponse(BaseModel):
    """One inquiry with its full decision trail."""

    id: uuid.UUID
    question: str
    created_at: datetime
    consolidated_answer: str | None = None
    answer_created_at: datetime | None = None
    provider_answers: list[ProviderAnswerView]
    provider_ratings: list[ProviderRatingView] = Field(
        description="Highest score first",
    )


class InquiriesResponse(BaseModel):
    """Response for GET /chat/inquiries."""

    thread_id: str
    inquiries: list[InquiryTrailResponse]
    count: int


# ---------------------------------------------------------------------------
# GET /providers, GET /metrics/providers
# ---------------------------------------------------------------------------


class ProvidersResponse(BaseModel):
    """The configured answer panel and judges."""

    answer_providers: list[str]
    judge_provider: str
    rating_provider: str


class ProviderMetricSummary(BaseModel):
    provider: str
    model: str
    answer_count: int
    avg_latency_ms: float | None = None
    rating_count: int
    avg_score: float | None = None

    model_config = ConfigDict(from_attributes=True)


class MetricsResponse(BaseModel):
    """Response for GET /metrics/providers."""

    period_hours: int = Field(description="Look-back window in hours")
    providers: list[ProviderMetricSummary]
