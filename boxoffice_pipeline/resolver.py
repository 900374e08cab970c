"""
Identity resolver: orchestrates a placeholder -> canonical id correction.

validate -> ensure canonical row -> merge transaction -> enrichment
(fetch + upsert) -> title backfill -> result.

The merge is the only transactional step. Everything after it runs once the
re-keying is committed; a failure there is reported to the caller but leaves
a correctly re-keyed movie that reenrich() can repair.
"""

from typing import Any, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from .backfill import TitleBackfill
from .client import TMDBClient
from .config import Config
from .database import DatabaseManager
from .enrichment import EnrichmentFetcher, EnrichmentUpserter
from .exceptions import (
    CorrectionError,
    InvalidArgumentError,
    PersistenceError,
    PlaceholderNotFoundError,
    TransactionError,
)
from .merge import MergeTransactionEngine
from .models import CorrectionResult, EnrichmentResult
from .utils import setup_logger


def coerce_id(value: Any) -> Optional[int]:
    """Return value as an int if it is integral (int, 42.0, "42"), else None."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return None
        return int(number) if number.is_integer() else None
    return None


def validate_ids(temp_id: Any, new_id: Any, max_canonical_id: int = 10_000_000) -> Tuple[int, int]:
    """
    Validate a correction request.

    Returns:
        (temp_id, new_id) as ints

    Raises:
        InvalidArgumentError: Non-integer ids, equal ids, or an implausible canonical id
    """
    t = coerce_id(temp_id)
    n = coerce_id(new_id)

    if t is None or n is None:
        raise InvalidArgumentError(
            "tempId and newId must be integers",
            got={"tempId": temp_id, "newId": new_id},
        )

    if not 0 < n < max_canonical_id:
        raise InvalidArgumentError(
            "Bad ID roles",
            hint=(
                f"newId must be a TMDB id (0 < newId < {max_canonical_id}). "
                "tempId can be any integer different from newId."
            ),
            got={"tempId": t, "newId": n},
        )

    if t == n:
        raise InvalidArgumentError(
            "tempId and newId must differ",
            got={"tempId": t, "newId": n},
        )

    return t, n


class IdentityResolver:
    """
    Drives a correction end to end.

    Collaborators are built from the injected gateway and client unless
    passed explicitly.
    """

    def __init__(
        self,
        db: DatabaseManager,
        client: TMDBClient,
        config: Config,
        merger: Optional[MergeTransactionEngine] = None,
        fetcher: Optional[EnrichmentFetcher] = None,
        upserter: Optional[EnrichmentUpserter] = None,
        backfill: Optional[TitleBackfill] = None,
    ):
        self.db = db
        self.client = client
        self.config = config
        self.merger = merger or MergeTransactionEngine(db, config)
        self.fetcher = fetcher or EnrichmentFetcher(client, config)
        self.upserter = upserter or EnrichmentUpserter(db, config)
        self.backfill = backfill or TitleBackfill(db, config)
        self.logger = setup_logger("resolver", config.log_dir)

    def correct(self, temp_id: Any, new_id: Any) -> CorrectionResult:
        """
        Re-key placeholder temp_id onto canonical new_id.

        Raises:
            InvalidArgumentError: Invalid ids, nothing mutated
            PlaceholderNotFoundError: temp_id has no movies row
            TransactionError: Merge failed and was rolled back
            ExternalFetchError: TMDB failed after the merge committed
            PersistenceError: Upsert/backfill failed after the merge committed
        """
        t, n = validate_ids(temp_id, new_id, self.config.max_canonical_id)
        self.logger.info(f"Correction requested: {t} -> {n}")

        created = self._ensure_canonical(n)

        try:
            merge_result = self.merger.merge(t, n)
        except PlaceholderNotFoundError:
            if created:
                # Canonical row was created before the placeholder check; it stays as an empty row
                self.logger.warning(
                    f"Placeholder {t} not found; canonical row {n} was created by this "
                    f"request and is left empty"
                )
            raise

        enrichment_error: Optional[CorrectionError] = None
        try:
            self.reenrich(n)
        except CorrectionError as e:
            enrichment_error = e
            self.logger.error(
                f"Enrichment of {n} failed after merge committed ({e.kind}): {e.message}. "
                f"Run re-enrichment for {n} to repair."
            )

        # Prior titles only survive in memory now, so backfill even if enrichment failed
        self.backfill.apply(n, merge_result.prior_titles)

        if enrichment_error is not None:
            raise enrichment_error

        try:
            counts = self.db.count_facts(n)
        except SQLAlchemyError as e:
            raise PersistenceError.from_db_error(e, f"Counting facts for movie {n} failed") from e

        result = CorrectionResult(
            new_id=n,
            moved_revenues=counts.get("revenues", 0),
            moved_showings=counts.get("showings", 0),
        )
        self.logger.info(f"Correction {t} -> {n} complete: {result.to_dict()['moved']}")
        return result

    def reenrich(self, movie_id: int) -> EnrichmentResult:
        """
        Fetch TMDB metadata and merge it into an existing or new movie row.

        Safe to call any number of times; this is the recovery path for a
        correction whose enrichment step failed.

        Raises:
            InvalidArgumentError: movie_id is not a plausible TMDB id
            ExternalFetchError: TMDB request failed
            PersistenceError: Upsert failed (rolled back)
        """
        if not 0 < movie_id < self.config.max_canonical_id:
            raise InvalidArgumentError(
                f"movieId must satisfy 0 < movieId < {self.config.max_canonical_id}",
                got={"movieId": movie_id},
            )
        data = self.fetcher.fetch(movie_id)
        return self.upserter.upsert(data)

    def _ensure_canonical(self, movie_id: int) -> bool:
        try:
            return self.db.ensure_movie(movie_id)
        except SQLAlchemyError as e:
            raise TransactionError.from_db_error(
                e, f"Ensuring canonical movie {movie_id} failed"
            ) from e
