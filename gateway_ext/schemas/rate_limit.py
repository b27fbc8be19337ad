"""Pydantic schema for the rate limit rejection body."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class RateLimitExceededResponse(BaseModel):
    """Body returned with HTTP 429 when a caller is blocked."""

    model_config = ConfigDict(populate_by_name=True)

    error: str = Field(
        "Too Many Requests",
        description="Machine-readable reason, distinct from regular error envelopes.",
    )
    message: str = Field(
        "Rate limit exceeded. Please try again later.",
        description="Human-readable explanation.",
    )
    retry_after: int = Field(
        ...,
        alias="retryAfter",
        ge=0,
        description="Seconds until the caller may send requests again.",
    )
