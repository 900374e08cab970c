"""
TMDB API client for the enrichment pipeline.

Handles all TMDB API interactions including:
- Authentication with the provisioned key
- Client-side rate limiting
- Explicit timeout and bounded retry with exponential backoff
"""

import random
import time
from typing import Optional

import requests
from requests.adapters import HTTPAdapter

from .config import Config
from .exceptions import ExternalFetchError
from .utils import RateLimiter, setup_logger


class TMDBClient:
    """
    Handles all TMDB API interactions.

    Retry policy:
    - 5xx responses, timeouts and connection errors are retried up to
      ``config.max_retries`` times with exponential backoff and jitter
    - any 4xx is permanent and raised immediately
    - every non-2xx that is not retried surfaces as ExternalFetchError
    """

    def __init__(self, config: Config, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or self._create_session()
        self.rate_limiter = RateLimiter(config.rate_limit_per_second)
        self.logger = setup_logger("tmdb_client", config.log_dir)

    def _create_session(self) -> requests.Session:
        """Create requests session sized for the concurrent enrichment fetches."""
        session = requests.Session()

        # Retries are handled in _request so the policy stays in one place
        adapter = HTTPAdapter(pool_maxsize=max(self.config.max_workers, 10), max_retries=0)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

        session.headers.update(self.config.get_headers())
        return session

    def _calculate_backoff(self, retry_count: int) -> float:
        """
        Calculate backoff delay with exponential increase and jitter.

        Args:
            retry_count: Current retry attempt number

        Returns:
            Delay in seconds with jitter
        """
        delay = self.config.backoff_base * (2 ** retry_count)
        # Add jitter (±25%) to prevent thundering herd
        jitter = delay * 0.25 * (2 * random.random() - 1)
        return min(delay + jitter, 30)

    def _retry_or_raise(
        self,
        endpoint: str,
        params: Optional[dict],
        retry_count: int,
        url: str,
        status_code: Optional[int],
        body: str,
    ) -> dict:
        if retry_count >= self.config.max_retries:
            self.logger.error(
                f"Giving up on {endpoint} after {retry_count} retries "
                f"(status={status_code})"
            )
            raise ExternalFetchError(url, status_code, body)

        backoff = self._calculate_backoff(retry_count)
        self.logger.warning(
            f"Transient failure for {endpoint} (status={status_code}), backing off "
            f"{backoff:.1f}s (retry {retry_count + 1}/{self.config.max_retries})"
        )
        time.sleep(backoff)
        return self._request(endpoint, params, retry_count + 1)

    def _request(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        _retry_count: int = 0,
    ) -> dict:
        """
        Make a rate-limited GET request.

        Args:
            endpoint: API endpoint (e.g., '/movie/123')
            params: Query parameters
            _retry_count: Internal retry counter (do not set manually)

        Returns:
            Decoded JSON body

        Raises:
            ExternalFetchError: On a non-2xx response, a body that is not JSON,
                or exhausted retries
        """
        self.rate_limiter.acquire()

        url = f"{self.config.base_url}{endpoint}"
        query = dict(self.config.get_auth_params())
        query.update(params or {})

        try:
            response = self.session.get(url, params=query, timeout=self.config.request_timeout)
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            return self._retry_or_raise(endpoint, params, _retry_count, url, None, str(e))
        except requests.exceptions.RequestException as e:
            self.logger.error(f"Request error for {endpoint}: {e}")
            raise ExternalFetchError(url, None, str(e)) from e

        if 200 <= response.status_code < 300:
            try:
                return response.json()
            except ValueError as e:
                self.logger.error(f"Undecodable body from {endpoint} ({response.status_code})")
                raise ExternalFetchError(url, response.status_code, response.text) from e

        if response.status_code >= 500:
            return self._retry_or_raise(
                endpoint, params, _retry_count, url, response.status_code, response.text
            )

        self.logger.error(f"Client error ({response.status_code}) for {endpoint}")
        raise ExternalFetchError(url, response.status_code, response.text)

    def get_movie_details(self, movie_id: int) -> dict:
        """Primary details. Uses: /movie/{id}"""
        return self._request(
            f"/movie/{movie_id}",
            params={"language": self.config.details_language},
        )

    def get_movie_credits(self, movie_id: int) -> dict:
        """Cast and crew. Uses: /movie/{id}/credits"""
        return self._request(f"/movie/{movie_id}/credits")

    def get_movie_images(self, movie_id: int) -> dict:
        """
        Posters and backdrops for the configured locales plus textless assets.
        Uses: /movie/{id}/images?include_image_language=fr,en,null
        """
        languages = f"{self.config.preferred_locale},{self.config.secondary_locale},null"
        return self._request(
            f"/movie/{movie_id}/images",
            params={"include_image_language": languages},
        )

    def test_connection(self) -> bool:
        """Test API connection by fetching a known movie."""
        try:
            data = self._request("/movie/550")  # Fight Club
            return "title" in data
        except ExternalFetchError as e:
            self.logger.error(f"API connection test failed: {e}")
            return False
