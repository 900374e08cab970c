"""
Correction and enrichment Pydantic schemas.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class CorrectionRequest(BaseModel):
    """Body of a correction request. Ids are validated by the resolver."""

    tempId: Optional[Any] = Field(None, description="Placeholder movie id")
    newId: Optional[Any] = Field(None, description="Canonical TMDB movie id")


class MovedCounts(BaseModel):
    """Fact rows now filed under the canonical id."""

    revenues: int
    showings: int


class CorrectionResponse(BaseModel):
    """Successful correction."""

    ok: bool = True
    newId: int
    redirect: str
    moved: MovedCounts


class EnrichmentResponse(BaseModel):
    """Successful re-enrichment."""

    ok: bool = True
    movieId: int
    inserted: Dict[str, int]


class ErrorResponse(BaseModel):
    """Error body. 500 responses carry the diagnostic fields."""

    error: str
    hint: Optional[str] = None
    got: Optional[Dict[str, Any]] = None
    kind: Optional[str] = None
    details: Optional[str] = None
    constraint: Optional[str] = None
    code: Optional[int] = None
    function: Optional[str] = None
    timestamp: Optional[str] = None
