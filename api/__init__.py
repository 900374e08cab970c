"""
Box-office identity REST API.

FastAPI application exposing the movie id correction workflow and the
TMDB re-enrichment recovery endpoint.
"""

from api.main import app

__all__ = ["app"]
