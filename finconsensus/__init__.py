# =============================================================================
# Financial Answer Consolidation Service
# =============================================================================
# Sends one finance question to several LLM providers at once, consolidates
# the successful answers into a single response, rates every answer, and
# persists the whole decision trail per conversation thread.
#
# Package structure:
#   finconsensus/
#   ├── api/          → FastAPI route handlers (chat, providers) + audit log
#   ├── agents/       → Answer panel, consolidator, rater, LangGraph pipeline
#   ├── db/           → Database engine, session, and ORM models
#   ├── models/       → Pydantic V2 request/response schemas
#   └── services/     → LLM backends, fan-out, context truncation, topic
#                        guard, audit trail repository
# =============================================================================
