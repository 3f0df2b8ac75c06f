"""Request DTOs for API endpoints."""

from typing import Any

from pydantic import BaseModel, Field


class FingerprintRequest(BaseModel):
    """Request DTO identifying an AI request by its inputs.

    The handler will convert this to internal calls to the service layer.
    """

    prompt: str = Field(..., description="The prompt sent to the AI service", min_length=1)
    model: str = Field(..., description="Model name", min_length=1)
    params: dict[str, Any] = Field(
        default_factory=dict,
        description="Generation parameters (order does not matter)",
    )


class LookupCacheRequest(FingerprintRequest):
    """Request DTO for looking up a cached response."""


class StoreCacheRequest(FingerprintRequest):
    """Request DTO for storing an AI response."""

    response_data: Any = Field(..., description="The AI response payload to cache")
    tokens_used: int | None = Field(None, description="Tokens consumed upstream", ge=0)
    cost_usd: float | None = Field(None, description="Upstream cost in USD", ge=0.0)
    ttl_seconds: int | None = Field(
        None,
        description="Time-to-live in seconds (defaults to the endpoint TTL)",
        gt=0,
    )
    endpoint: str | None = Field(
        None,
        description="Logical endpoint, used to pick the default TTL",
    )
    tags: list[str] = Field(
        default_factory=list,
        description="Labels for invalidating related entries together",
    )


class AdmitRequest(BaseModel):
    """Request DTO for a rate limiter admission check."""

    identifier: str = Field(..., description="Caller ID or IP address", min_length=1)
    endpoint: str = Field(..., description="Logical operation name", min_length=1)
    limit: int | None = Field(None, description="Requests per window (defaults to settings)", ge=1)
    window_seconds: int | None = Field(
        None,
        description="Window length in seconds (defaults to settings)",
        gt=0,
    )
