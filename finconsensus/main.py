# =============================================================================
# Application Entry Point — FastAPI App Assembly
# =============================================================================
#
# Run locally:
#   uvicorn finconsensus.main:app --reload
#
# STARTUP (lifespan):
#   1. Configure logging at settings.log_level
#   2. Create any missing tables (Base.metadata.create_all)
#
# ROUTERS:
#   /chat/*             → api/chat.py
#   /providers          → api/providers.py
#   /metrics/providers  → api/providers.py
#   /health             → defined here
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from finconsensus.api import chat, providers
from finconsensus.api.audit import AuditLoggingMiddleware
from finconsensus.config import settings
from finconsensus.db.engine import async_engine, init_models
from finconsensus.models.responses import HealthResponse

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("Starting %s v%s", settings.app_name, settings.app_version)
    await init_models()
    yield
    await async_engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)

app.add_middleware(AuditLoggingMiddleware)

app.include_router(chat.router)
app.include_router(providers.router)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health() -> HealthResponse:
    return HealthResponse(version=settings.app_version, service=settings.app_name)
