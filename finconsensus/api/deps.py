# =============================================================================
# Shared Dependencies — FastAPI Dependency Injection
# =============================================================================
#
# get_audit_trail() hands route handlers the AuditTrail repository bound to
# the application session factory. Tests swap it for one bound to a
# throwaway SQLite database via app.dependency_overrides.
# =============================================================================

from finconsensus.db.engine import async_session_factory
from finconsensus.services.trail import AuditTrail


def get_audit_trail() -> AuditTrail:
    """FastAPI dependency providing the audit trail repository."""
    return AuditTrail(async_session_factory)
