"""Pydantic schemas for API request and response validation."""

from api.schemas.correction import (
    CorrectionRequest,
    CorrectionResponse,
    EnrichmentResponse,
    ErrorResponse,
    MovedCounts,
)

__all__ = [
    "CorrectionRequest",
    "CorrectionResponse",
    "EnrichmentResponse",
    "ErrorResponse",
    "MovedCounts",
]
