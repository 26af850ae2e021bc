# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Request/response schemas for the API, kept separate from the ORM models
# in finconsensus/db/models.py.
# =============================================================================
