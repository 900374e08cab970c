"""
Custom exceptions and error handlers for the API.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from boxoffice_pipeline.exceptions import CorrectionError

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}


class APIError(HTTPException):
    """Base API error with structured error response."""

    def __init__(
        self,
        status_code: int,
        error: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.error = error
        self.details = details
        super().__init__(status_code=status_code, detail=error)


class MethodNotAllowedError(APIError):
    """HTTP method not supported by the endpoint."""

    def __init__(self):
        super().__init__(status_code=405, error="Method Not Allowed")


class MalformedBodyError(APIError):
    """Request body is not a JSON object."""

    def __init__(self, message: str = "Request body must be a JSON object"):
        super().__init__(status_code=400, error=message)


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Handle APIError exceptions and return structured JSON response."""
    content = {"error": exc.error}
    if exc.details:
        content.update(exc.details)
    return JSONResponse(status_code=exc.status_code, content=content, headers=CORS_HEADERS)


async def correction_error_handler(request: Request, exc: CorrectionError) -> JSONResponse:
    """Map pipeline errors to their HTTP status and diagnostic body."""
    function = getattr(request.state, "function_name", "correct_movie_id")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(function=function),
        headers=CORS_HEADERS,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "kind": type(exc).__name__,
            "details": str(exc),
            "function": getattr(request.state, "function_name", "unknown"),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
        headers=CORS_HEADERS,
    )
