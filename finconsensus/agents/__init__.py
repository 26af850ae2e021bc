# =============================================================================
# Agents Package — Answer, Consolidate, Rate
# =============================================================================
#   - panel.py: Answer round, the same question to every configured provider
#   - consolidator.py: Judge synthesis of the successful answers
#   - rater.py: Judge scoring (0-100) of each answer
#   - pipeline.py: LangGraph graph wiring the three stages together
# =============================================================================
