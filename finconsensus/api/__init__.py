# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
# Each module defines a FastAPI APIRouter for a specific feature:
#   - chat.py: Ask the panel, list a thread's inquiries
#   - providers.py: Panel configuration and per-provider metrics
#   - audit.py: Request audit logging middleware
#   - deps.py: Shared dependencies
# =============================================================================
