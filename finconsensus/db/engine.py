# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# Async SQLAlchemy engine (asyncpg on PostgreSQL). All queries are awaited;
# nothing blocks the event loop.
#
# SESSION PATTERN: self-managed (async_session_factory() directly).
#   Used by the audit trail repository and the audit middleware. Each
#   write opens its own short session so one failed insert never rolls
#   back another record. These MUST commit explicitly.
# =============================================================================

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from finconsensus.config import settings
from finconsensus.db.models import Base


def _engine_kwargs(url: str) -> dict:
    """Pool sizing applies to server databases only."""
    if url.startswith("sqlite"):
        return {}
    return {"pool_size": 5, "max_overflow": 10}


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for `url`."""
    return create_async_engine(url, echo=echo, **_engine_kwargs(url))


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Session factory bound to `engine`.

    expire_on_commit=False keeps loaded attributes readable after commit,
    which async code needs (no lazy refresh outside a session).
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# ---------------------------------------------------------------------------
# Application Engine & Session Factory
# ---------------------------------------------------------------------------
async_engine = build_engine(settings.database_url, echo=settings.debug)
async_session_factory = build_session_factory(async_engine)


async def init_models(engine: AsyncEngine | None = None) -> None:
    """Create all tables that don't exist yet."""
    target = engine or async_engine
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
