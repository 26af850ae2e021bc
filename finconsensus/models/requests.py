# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# Shapes of data coming INTO the API. FastAPI validates request bodies
# against these (automatic 422 on invalid input) and publishes them in the
# OpenAPI schema at /docs.
# =============================================================================

from pydantic import BaseModel, ConfigDict, Field


class AskRequest(BaseModel):
    """
    Request body for POST /chat/ask.

    Example:
        {
            "thread_id": "3f6c2e8a-...",
            "question": "Should I rebalance my portfolio toward bonds?"
        }
    """

    # Opaque conversation key. A new one is generated when omitted.
    thread_id: str | None = Field(
        default=None,
        max_length=100,
        description="Conversation thread to append to. Generated if omitted.",
    )

    question: str = Field(
        ...,
        min_length=3,
        max_length=2000,
        description="A finance-related question",
        examples=["What is a good long-term investment strategy for an index fund?"],
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"question": "How do rising interest rates affect the bond market?"},
                {
                    "thread_id": "my-thread-1",
                    "question": "Is dividend stock investing suitable for retirement?",
                },
            ]
        }
    )
