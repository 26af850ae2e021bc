# =============================================================================
# Chat API — Ask the Panel & Browse the Decision Trail
# =============================================================================
#
# POST /chat/ask
#   1. Validate the body (AskRequest)
#   2. Run the consolidation pipeline (guard → answer → consolidate → rate)
#   3. Return the consolidated answer plus which providers contributed
#
# GET /chat/inquiries?thread_id=...
#   Every inquiry of a thread, oldest first, with provider answers,
#   consolidated answer and ratings (highest score first).
#
# Handlers stay thin: request validation, error mapping, response mapping.
#
# ERROR MAPPING:
#   OutOfScopeError          → 400
#   AllProvidersFailedError  → 502
#   ValueError (config)      → 503
#   SQLAlchemyError          → 503
#   anything else            → 502
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.exc import SQLAlchemyError

from finconsensus.agents.pipeline import (
    AllProvidersFailedError,
    OutOfScopeError,
    run_inquiry,
)
from finconsensus.api.deps import get_audit_trail
from finconsensus.models.requests import AskRequest
from finconsensus.models.responses import (
    AskResponse,
    InquiriesResponse,
    InquiryTrailResponse,
    ProviderAnswerView,
    ProviderRatingView,
    ProviderResultSummary,
)
from finconsensus.services.trail import AuditTrail

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["Chat"])


# ---------------------------------------------------------------------------
# POST /chat/ask — Ask every provider, consolidate, rate
# ---------------------------------------------------------------------------


@router.post(
    "/ask",
    response_model=AskResponse,
    summary="Ask a finance question to the provider panel",
    description=(
        "Sends the question to every configured provider concurrently, "
        "consolidates the successful answers into one, and rates each "
        "answer. The whole decision trail is persisted."
    ),
)
async def ask_endpoint(
    http_request: Request,
    request: AskRequest,
    trail: AuditTrail = Depends(get_audit_trail),
) -> AskResponse:
    """
    Error handling:
    - Question not finance-related → 400 Bad Request
    - Every provider failed → 502 Bad Gateway
    - Configuration error (bad provider id, missing key) → 503
    - Database failure while recording the inquiry → 503
    """
    http_request.state.audit_thread_id = request.thread_id
    http_request.state.audit_question = request.question

    logger.info(
        "Ask request: question='%s', thread_id=%s",
        request.question[:80],
        request.thread_id,
    )

    try:
        result = await run_inquiry(
            question=request.question,
            trail=trail,
            thread_id=request.thread_id,
        )
    except OutOfScopeError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except AllProvidersFailedError as e:
        logger.error("All providers failed for inquiry %s: %s", e.inquiry_id, e.errors)
        raise HTTPException(status_code=502, detail=str(e)) from e
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        raise HTTPException(
            status_code=503,
            detail=f"Service configuration error: {e}",
        ) from e
    except SQLAlchemyError as e:
        logger.exception("Database error while recording inquiry: %s", e)
        raise HTTPException(
            status_code=503,
            detail="Database unavailable: the inquiry could not be recorded",
        ) from e
    except Exception as e:
        logger.exception("Consolidation pipeline failed: %s", e)
        raise HTTPException(
            status_code=502,
            detail=f"LLM service error: {e}",
        ) from e

    # Generated thread ids only become known here
    http_request.state.audit_thread_id = result.thread_id

    return AskResponse(
        inquiry_id=result.inquiry_id,
        thread_id=result.thread_id,
        question=result.question,
        consolidated_answer=result.consolidated_answer,
        provider_results=[
            ProviderResultSummary(
                provider=a.provider, model=a.model, latency_ms=a.latency_ms,
            )
            for a in result.answers
        ],
        timestamp=result.timestamp,
    )


# ---------------------------------------------------------------------------
# GET /chat/inquiries — Decision trail of one thread
# ---------------------------------------------------------------------------


@router.get(
    "/inquiries",
    response_model=InquiriesResponse,
    summary="List the inquiries of a conversation thread",
)
async def list_inquiries(
    http_request: Request,
    thread_id: str = Query(..., min_length=1, max_length=100),
    trail: AuditTrail = Depends(get_audit_trail),
) -> InquiriesResponse:
    http_request.state.audit_thread_id = thread_id

    inquiries = await trail.load_thread(thread_id)

    views = []
    for inquiry in inquiries:
        consolidated = inquiry.consolidated_answer
        views.append(InquiryTrailResponse(
            id=inquiry.id,
            question=inquiry.question,
            created_at=inquiry.created_at,
            consolidated_answer=consolidated.answer if consolidated else None,
            answer_created_at=consolidated.created_at if consolidated else None,
            provider_answers=[
                ProviderAnswerView.model_validate(a)
                for a in inquiry.provider_answers
            ],
            provider_ratings=[
                ProviderRatingView.model_validate(r)
                for r in inquiry.provider_ratings
            ],
        ))

    return InquiriesResponse(thread_id=thread_id, inquiries=views, count=len(views))
