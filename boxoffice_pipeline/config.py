"""
Configuration management for the box-office identity pipeline.

Loads configuration from environment variables and provides
a centralized Config dataclass for all settings.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


@dataclass
class Config:
    """Centralized configuration from environment variables."""

    # TMDB API (at least one of the two is required)
    api_key: str = ""
    bearer_token: str = ""
    base_url: str = "https://api.themoviedb.org/3"

    # Database
    db_host: str = "localhost"
    db_port: int = 3306
    db_user: str = ""
    db_password: str = ""
    db_name: str = ""

    # External call policy
    request_timeout: float = 10.0
    max_retries: int = 3
    backoff_base: float = 1.0
    rate_limit_per_second: int = 35
    max_workers: int = 3

    # Enrichment settings
    preferred_locale: str = "fr"
    secondary_locale: str = "en"
    details_language: str = "en-US"
    max_cast_members: int = 9

    # Plausible range for canonical TMDB ids (exclusive upper bound)
    max_canonical_id: int = 10_000_000

    # Paths
    project_dir: Path = field(default_factory=Path.cwd)
    log_dir: Path = field(default_factory=lambda: Path.cwd() / "logs")

    @classmethod
    def from_env(cls, env_path: Optional[str] = None) -> "Config":
        """
        Load configuration from environment variables.

        Args:
            env_path: Optional path to .env file. If not provided,
                     looks for .env in the project root, then current directory.

        Returns:
            Config instance with loaded values.

        Raises:
            ValueError: If required environment variables are missing.
        """
        if env_path:
            load_dotenv(env_path)
        else:
            root_env = Path(__file__).parent.parent / ".env"
            if root_env.exists():
                load_dotenv(root_env)
            else:
                load_dotenv()

        # Required variables
        api_key = os.getenv("TMDB_API_KEY", "")
        bearer_token = os.getenv("TMDB_BEARER_TOKEN", "")

        if not api_key and not bearer_token:
            raise ValueError("TMDB_API_KEY or TMDB_BEARER_TOKEN environment variable is required")

        db_host = os.getenv("SQL_HOST", "localhost")
        db_port = int(os.getenv("SQL_PORT", "3306"))
        db_user = os.getenv("SQL_USER", "")
        db_password = os.getenv("SQL_PASS", "")
        db_name = os.getenv("SQL_DB", "")

        if not db_user or not db_name:
            raise ValueError("SQL_USER and SQL_DB environment variables are required")

        # Optional settings
        base_url = os.getenv("BASE_URL", "https://api.themoviedb.org/3")
        project_dir = Path(os.getenv("PROJECT_DIR", Path.cwd()))

        request_timeout = float(os.getenv("TMDB_TIMEOUT", "10"))
        max_retries = int(os.getenv("TMDB_MAX_RETRIES", "3"))
        preferred_locale = os.getenv("TMDB_PREFERRED_LOCALE", "fr")
        secondary_locale = os.getenv("TMDB_SECONDARY_LOCALE", "en")

        return cls(
            api_key=api_key,
            bearer_token=bearer_token,
            base_url=base_url,
            db_host=db_host,
            db_port=db_port,
            db_user=db_user,
            db_password=db_password,
            db_name=db_name,
            request_timeout=request_timeout,
            max_retries=max_retries,
            preferred_locale=preferred_locale,
            secondary_locale=secondary_locale,
            project_dir=project_dir,
            log_dir=project_dir / "logs",
        )

    def get_db_url(self) -> str:
        """Get SQLAlchemy database URL."""
        return (
            f"mysql+pymysql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    def get_headers(self) -> dict:
        """Get headers for TMDB API requests."""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.bearer_token:
            headers["Authorization"] = f"Bearer {self.bearer_token}"
        return headers

    def get_auth_params(self) -> dict:
        """Query parameters for key-based auth (used when no bearer token is set)."""
        if self.bearer_token:
            return {}
        return {"api_key": self.api_key}
