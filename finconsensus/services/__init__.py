# =============================================================================
# Services Package — Business Logic
# =============================================================================
#   - llm.py: Multi-provider LLM abstraction (Anthropic, OpenAI-compatible)
#   - context.py: Token estimation and context truncation
#   - fanout.py: Wait-all concurrent jobs with failure isolation
#   - topic_guard.py: Finance keyword scope check
#   - trail.py: Audit trail persistence and retrieval
# =============================================================================
