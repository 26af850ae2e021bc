# =============================================================================
# Audit Logging Middleware — Request/Response Lifecycle Logging
# =============================================================================
#
# Writes one audit_logs row per API request: which thread was touched, what
# was asked, from where, with what status and how long it took.
#
# Starlette middleware rather than a dependency: it wraps the whole request
# lifecycle, so it sees the final status code and timing, and no endpoint
# has to opt in. Endpoint handlers enrich the row through request.state:
#   request.state.audit_thread_id
#   request.state.audit_question
#
# The row is written after the response is produced, in its own session.
# A failed write is logged and never fails the request.
# =============================================================================

from __future__ import annotations

import logging
import time

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.middleware.base import (
    BaseHTTPMiddleware,
    RequestResponseEndpoint,
)
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from finconsensus.config import settings
from finconsensus.db.engine import async_session_factory
from finconsensus.db.models import AuditLog

logger = logging.getLogger(__name__)

# Endpoints to skip audit logging (health check, docs)
_SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

_MAX_QUESTION_CHARS = 500


class AuditLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware that logs all API requests to the audit_logs table."""

    def __init__(
        self,
        app: ASGIApp,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        super().__init__(app)
        self._session_factory = session_factory or async_session_factory

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        if not settings.audit_logging_enabled:
            return await call_next(request)

        if request.url.path in _SKIP_PATHS:
            return await call_next(request)

        start_time = time.monotonic()
        response = await call_next(request)
        elapsed_ms = int((time.monotonic() - start_time) * 1000)

        thread_id = getattr(request.state, "audit_thread_id", None)
        question = getattr(request.state, "audit_question", None)

        client_ip = request.client.host if request.client else None

        # "/chat/ask" → "chat"
        path_parts = request.url.path.strip("/").split("/")
        endpoint_name = path_parts[0] if path_parts else ""

        try:
            async with self._session_factory() as session:
                session.add(AuditLog(
                    endpoint=endpoint_name,
                    method=request.method,
                    path=str(request.url.path),
                    thread_id=thread_id,
                    question=question[:_MAX_QUESTION_CHARS] if question else None,
                    client_ip=client_ip,
                    status_code=response.status_code,
                    response_time_ms=elapsed_ms,
                ))
                await session.commit()
        except Exception as e:
            logger.warning("Failed to write audit log: %s", e)

        return response
