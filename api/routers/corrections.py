"""
Movie id correction endpoints.

POST re-keys a placeholder movie onto its TMDB id; OPTIONS answers CORS
preflight; any other method is rejected with 405.
"""

from fastapi import APIRouter, Depends, Request, Response
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from api.dependencies import get_resolver
from api.exceptions import CORS_HEADERS, MalformedBodyError, MethodNotAllowedError
from api.logging_config import logger
from api.schemas.correction import (
    CorrectionRequest,
    CorrectionResponse,
    EnrichmentResponse,
    ErrorResponse,
)
from boxoffice_pipeline.resolver import IdentityResolver

router = APIRouter()

CORRECTION_PATH = "/correct-movie-id"
ENRICH_PATH = "/movies/{movie_id}/enrich"

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


async def _read_correction_body(request: Request) -> CorrectionRequest:
    raw = await request.body()
    if not raw:
        return CorrectionRequest()
    try:
        return CorrectionRequest.model_validate_json(raw)
    except ValidationError as e:
        logger.warning(f"Malformed correction body: {e.error_count()} errors")
        raise MalformedBodyError()


@router.options(CORRECTION_PATH, include_in_schema=False)
@router.options(ENRICH_PATH, include_in_schema=False)
async def preflight():
    """CORS preflight."""
    return Response(status_code=204, headers=CORS_HEADERS)


@router.post(CORRECTION_PATH, response_model=CorrectionResponse, responses=ERROR_RESPONSES)
async def correct_movie_id(
    request: Request,
    response: Response,
    resolver: IdentityResolver = Depends(get_resolver),
):
    """
    Re-key placeholder ``tempId`` onto canonical ``newId``.

    Revenue and showing rows follow the movie; its genre, country, studio,
    crew and cast links are dropped and rebuilt from TMDB.
    """
    request.state.function_name = "correct_movie_id"
    body = await _read_correction_body(request)

    result = await run_in_threadpool(resolver.correct, body.tempId, body.newId)
    response.headers.update(CORS_HEADERS)
    return result.to_dict()


@router.api_route(
    CORRECTION_PATH,
    methods=["GET", "PUT", "PATCH", "DELETE"],
    include_in_schema=False,
)
async def correction_method_not_allowed():
    """Only POST and OPTIONS are supported."""
    raise MethodNotAllowedError()


@router.post(
    ENRICH_PATH,
    response_model=EnrichmentResponse,
    responses=ERROR_RESPONSES,
)
async def enrich_movie(
    movie_id: int,
    request: Request,
    response: Response,
    resolver: IdentityResolver = Depends(get_resolver),
):
    """
    Re-run TMDB enrichment for a movie.

    Idempotent; use it to repair a correction whose enrichment step failed.
    """
    request.state.function_name = "enrich_movie"
    result = await run_in_threadpool(resolver.reenrich, movie_id)
    response.headers.update(CORS_HEADERS)
    return result.to_dict()
