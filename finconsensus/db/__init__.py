# =============================================================================
# Database Package
# =============================================================================
# Provides async SQLAlchemy engine, session management, and ORM models.
#
# Key exports:
#   - Base: SQLAlchemy declarative base for ORM models
#   - Inquiry, ProviderAnswer, ConsolidatedAnswer, ProviderRating, AuditLog
# =============================================================================
