# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# The consolidation audit trail. Every table is append-only: rows are
# written once and never updated or deleted by the application.
#
# SCHEMA OVERVIEW:
#
# ┌──────────────┐       ┌──────────────────────────────┐
# │  inquiries   │       │  provider_answers            │
# ├──────────────┤       ├──────────────────────────────┤
# │ id (PK)      │──1:N─▶│ id (PK)                      │
# │ thread_id    │       │ inquiry_id (FK)              │
# │ question     │       │ provider, model, answer      │
# │ created_at   │       │ latency_ms, tokens           │
# └──────────────┘       └──────────────────────────────┘
#        │                              │
#        │ 1:0..1                       │ 1:0..1
#        ▼                              ▼
# ┌──────────────────────┐   ┌──────────────────────────────┐
# │ consolidated_answers │   │  provider_ratings            │
# ├──────────────────────┤   ├──────────────────────────────┤
# │ id (PK)              │   │ id (PK)                      │
# │ inquiry_id (FK, UQ)  │   │ inquiry_id (FK)              │
# │ answer               │   │ provider_answer_id (FK)      │
# │ judge_provider/model │   │ provider, model              │
# │ sources_used         │   │ score (0..100), justification│
# └──────────────────────┘   └──────────────────────────────┘
#
# INVARIANTS:
# - A consolidated answer exists only if ≥1 provider answer exists for the
#   same inquiry (enforced by the pipeline; the unique index caps it at one).
# - A rating references an existing provider answer of the same inquiry.
# - Scores are integers in [0, 100] (CHECK constraint backs the clamp).
#
# Column types are portable (Uuid, JSON) so the same models run against
# PostgreSQL in production and SQLite in tests.
# =============================================================================

import uuid
from datetime import UTC, datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    desc,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class for all ORM models."""

    pass


def _utcnow() -> datetime:
    return datetime.now(UTC)


# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Inquiry(Base):
    """
    One user question that passed the topic guard.

    Created before the answer round starts; groups into a conversation
    by the caller-supplied (or generated) thread_id.
    """

    __tablename__ = "inquiries"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )

    # Opaque conversation key owned by the caller
    thread_id: Mapped[str] = mapped_column(String(100), nullable=False)

    question: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        nullable=False,
    )

    # ---------------------------------------------------------------------------
    # Relationships — read side of the audit trail
    # ---------------------------------------------------------------------------
    # lazy="selectin" loads each collection in one extra query per batch of
    # inquiries, which works inside AsyncSession without implicit IO.
    # Ratings come back highest score first.
    # ---------------------------------------------------------------------------
    provider_answers: Mapped[list["ProviderAnswer"]] = relationship(
        "ProviderAnswer",
        back_populates="inquiry",
        lazy="selectin",
        order_by="ProviderAnswer.created_at",
    )
    consolidated_answer: Mapped[Optional["ConsolidatedAnswer"]] = relationship(
        "ConsolidatedAnswer",
        back_populates="inquiry",
        lazy="selectin",
        uselist=False,
    )
    provider_ratings: Mapped[list["ProviderRating"]] = relationship(
        "ProviderRating",
        back_populates="inquiry",
        lazy="selectin",
        order_by=lambda: (desc(ProviderRating.score), ProviderRating.created_at),
    )

    def __repr__(self) -> str:
        return f"<Inquiry(id={self.id}, thread_id='{self.thread_id}')>"


class ProviderAnswer(Base):
    """One backend's raw answer to an inquiry. Only successes are stored."""

    __tablename__ = "provider_answers"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    inquiry_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("inquiries.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Provider type ("openai", "anthropic", ...) and model identifier
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    model: Mapped[str] = mapped_column(String(200), nullable=False)

    answer: Mapped[str] = mapped_column(Text, nullable=False)

    # Wall-clock latency of the backend call, measured by the fan-out job
    latency_ms: Mapped[int] = mapped_column(Integer, nullable=False)

    # Usage metadata when the backend reports it
    finish_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)
    input_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
    output_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        nullable=False,
    )

    inquiry: Mapped["Inquiry"] = relationship(
        "Inquiry", back_populates="provider_answers",
    )

    def __repr__(self) -> str:
        return (
            f"<ProviderAnswer(id={self.id}, provider='{self.provider}', "
            f"model='{self.model}', latency={self.latency_ms}ms)>"
        )


class ConsolidatedAnswer(Base):
    """The judge's single synthesised answer for an inquiry."""

    __tablename__ = "consolidated_answers"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    inquiry_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("inquiries.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    answer: Mapped[str] = mapped_column(Text, nullable=False)

    judge_provider: Mapped[str | None] = mapped_column(String(50), nullable=True)
    judge_model: Mapped[str | None] = mapped_column(String(200), nullable=True)

    # Number of panel answers fed into the synthesis prompt
    sources_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    processing_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Labels of the panel answers consolidated, e.g. ["openai/gpt-4o"]
    metadata_: Mapped[dict | None] = mapped_column(
        "metadata", JSONType, nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        nullable=False,
    )

    inquiry: Mapped["Inquiry"] = relationship(
        "Inquiry", back_populates="consolidated_answer",
    )

    def __repr__(self) -> str:
        return (
            f"<ConsolidatedAnswer(id={self.id}, inquiry_id={self.inquiry_id}, "
            f"sources={self.sources_used})>"
        )


class ProviderRating(Base):
    """A judge's 0–100 score for one provider answer."""

    __tablename__ = "provider_ratings"
    __table_args__ = (
        CheckConstraint("score >= 0 AND score <= 100", name="ck_rating_score_range"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    inquiry_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("inquiries.id", ondelete="CASCADE"),
        nullable=False,
    )
    provider_answer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("provider_answers.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    # Snapshot of the rated answer's provider/model
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    model: Mapped[str] = mapped_column(String(200), nullable=False)

    score: Mapped[int] = mapped_column(Integer, nullable=False)
    justification: Mapped[str] = mapped_column(Text, nullable=False)

    # Who rated it
    judge_provider: Mapped[str | None] = mapped_column(String(50), nullable=True)
    judge_model: Mapped[str | None] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        nullable=False,
    )

    inquiry: Mapped["Inquiry"] = relationship(
        "Inquiry", back_populates="provider_ratings",
    )

    def __repr__(self) -> str:
        return (
            f"<ProviderRating(id={self.id}, provider='{self.provider}', "
            f"model='{self.model}', score={self.score})>"
        )


# =============================================================================
# Request Audit Log
# =============================================================================
#
# One row per HTTP request (who asked what, when, with what outcome),
# written by AuditLoggingMiddleware in its own session. Failures to write
# are logged and never fail the request.
# =============================================================================


class AuditLog(Base):
    """Immutable request log for the HTTP surface."""

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )

    endpoint: Mapped[str] = mapped_column(String(200), nullable=False)
    method: Mapped[str] = mapped_column(String(10), nullable=False)
    path: Mapped[str] = mapped_column(String(500), nullable=False)

    # Conversation touched by the request, when known
    thread_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    question: Mapped[str | None] = mapped_column(Text, nullable=True)

    # IPv6-safe: max 45 chars
    client_ip: Mapped[str | None] = mapped_column(String(45), nullable=True)

    status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        nullable=False,
    )


# =============================================================================
# Indexes
# =============================================================================

inquiry_thread_idx = Index(
    "idx_inquiry_thread_created",
    Inquiry.thread_id,
    Inquiry.created_at,
)

provider_answer_inquiry_idx = Index(
    "idx_provider_answer_inquiry",
    ProviderAnswer.inquiry_id,
)

provider_answer_model_idx = Index(
    "idx_provider_answer_provider_model",
    ProviderAnswer.provider,
    ProviderAnswer.model,
)

provider_rating_inquiry_idx = Index(
    "idx_provider_rating_inquiry",
    ProviderRating.inquiry_id,
)

audit_log_thread_idx = Index(
    "idx_audit_log_thread_created",
    AuditLog.thread_id,
    AuditLog.created_at,
)
