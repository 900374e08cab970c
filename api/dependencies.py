"""
Dependency injection for the API.

Provides dependencies for database access, the TMDB client and the resolver.
"""

from functools import lru_cache

from boxoffice_pipeline.client import TMDBClient
from boxoffice_pipeline.config import Config
from boxoffice_pipeline.database import DatabaseManager
from boxoffice_pipeline.resolver import IdentityResolver


@lru_cache()
def get_config() -> Config:
    """Get cached configuration instance."""
    return Config.from_env()


@lru_cache()
def get_db() -> DatabaseManager:
    """Get cached DatabaseManager instance."""
    return DatabaseManager(get_config())


@lru_cache()
def get_tmdb_client() -> TMDBClient:
    """Get cached TMDBClient instance."""
    return TMDBClient(get_config())


@lru_cache()
def get_resolver() -> IdentityResolver:
    """Build a resolver on the shared gateway and client."""
    return IdentityResolver(get_db(), get_tmdb_client(), get_config())
