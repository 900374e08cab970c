"""
FastAPI application for the box-office identity pipeline.

Exposes the movie id correction endpoint and the re-enrichment
recovery endpoint. Table setup and batch re-enrichment are handled via CLI.
"""

import time

from fastapi import FastAPI, Request

from api.exceptions import (
    APIError,
    api_error_handler,
    correction_error_handler,
    generic_exception_handler,
)
from api.logging_config import generate_request_id, logger, set_request_id
from api.routers import corrections
from boxoffice_pipeline.exceptions import CorrectionError

UNLOGGED_PATHS = {"/", "/health", "/api/docs", "/api/redoc", "/api/openapi.json"}

app = FastAPI(
    title="Box-Office Identity API",
    description="Correct placeholder movie ids and enrich them from TMDB",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

app.add_exception_handler(APIError, api_error_handler)
app.add_exception_handler(CorrectionError, correction_error_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# CORS headers are attached by the routes and error handlers; each route
# answers its own OPTIONS preflight with 204.


@app.middleware("http")
async def request_logging(request: Request, call_next):
    """Tag the request with an id and log its outcome and duration."""
    request_id = generate_request_id()
    set_request_id(request_id)

    if request.url.path in UNLOGGED_PATHS:
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    route = f"{request.method} {request.url.path}"
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"{route} raised {type(e).__name__} after {(time.perf_counter() - started) * 1000:.0f}ms")
        raise

    elapsed_ms = (time.perf_counter() - started) * 1000
    status = response.status_code
    level = "error" if status >= 500 else "warning" if status >= 400 else "info"
    getattr(logger, level)(f"{route} -> {status} in {elapsed_ms:.0f}ms")

    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(corrections.router, prefix="/api/v1", tags=["Corrections"])


@app.get("/", include_in_schema=False)
async def root():
    return {"message": "Box-Office Identity API", "docs": "/api/docs"}


@app.get("/health", include_in_schema=False)
async def health():
    """Simple health check endpoint."""
    return {"status": "ok"}
