"""
Enrichment from TMDB: fetch canonical metadata and merge it into storage.

EnrichmentFetcher issues the details, credits and images requests
concurrently and flattens them into an EnrichmentData. EnrichmentUpserter
merges that data into the movies row and its relationships in one
transaction, one statement per table, without ever adding a duplicate row.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from .client import TMDBClient
from .config import Config
from .database import DatabaseManager, Transaction
from .exceptions import PersistenceError
from .models import (
    CastCredit,
    CountryData,
    DirectorCredit,
    EnrichmentData,
    EnrichmentResult,
    GenreData,
    PosterCandidate,
    StudioData,
    parse_release_date,
    positive_or_none,
)
from .utils import Timer, setup_logger


def locale_rank(locale: Optional[str], preferred: str, secondary: str) -> int:
    """Preferred locale > secondary locale > anything else."""
    if locale == preferred:
        return 3
    if locale == secondary:
        return 2
    return 1


def choose_poster(
    posters: Iterable[PosterCandidate],
    fallback: Optional[str] = None,
    preferred: str = "fr",
    secondary: str = "en",
) -> Optional[str]:
    """
    Pick the best poster path.

    Ranks by locale first, then by vote count. Among equal ranks the
    provider's order is kept. Falls back to the details poster, then None.
    """
    best = None
    best_key = None
    for poster in posters:
        if not poster.file_path:
            continue
        key = (locale_rank(poster.locale, preferred, secondary), poster.vote_count)
        if best_key is None or key > best_key:
            best, best_key = poster, key

    if best is not None:
        return best.file_path
    return fallback or None


def _unique(items: Iterable, key) -> list:
    seen = set()
    result = []
    for item in items:
        k = key(item)
        if k is None or k in seen:
            continue
        seen.add(k)
        result.append(item)
    return result


class EnrichmentFetcher:
    """Retrieves and normalizes TMDB metadata for one movie id."""

    def __init__(self, client: TMDBClient, config: Config):
        self.client = client
        self.config = config
        self.logger = setup_logger("enrichment", config.log_dir)

    def fetch(self, movie_id: int) -> EnrichmentData:
        """
        Fetch details, credits and images concurrently.

        Raises:
            ExternalFetchError: If any of the three requests fails
        """
        with Timer(f"Fetch {movie_id}") as timer:
            with ThreadPoolExecutor(max_workers=3) as executor:
                details_future = executor.submit(self.client.get_movie_details, movie_id)
                credits_future = executor.submit(self.client.get_movie_credits, movie_id)
                images_future = executor.submit(self.client.get_movie_images, movie_id)

                details = details_future.result()
                credits = credits_future.result()
                images = images_future.result()

        self.logger.info(str(timer))
        return self.normalize(movie_id, details, credits, images)

    def normalize(self, movie_id: int, details: dict, credits: dict, images: dict) -> EnrichmentData:
        """Flatten the three TMDB payloads."""
        posters = [PosterCandidate.from_tmdb(p) for p in images.get("posters") or []]
        poster_path = choose_poster(
            posters,
            fallback=details.get("poster_path"),
            preferred=self.config.preferred_locale,
            secondary=self.config.secondary_locale,
        )

        genres = _unique(
            (GenreData.from_tmdb(g) for g in details.get("genres") or []),
            key=lambda g: g.id,
        )
        countries = _unique(
            (CountryData.from_tmdb(c) for c in details.get("production_countries") or []),
            key=lambda c: c.code,
        )
        studios = _unique(
            (StudioData.from_tmdb(s) for s in details.get("production_companies") or []),
            key=lambda s: s.id,
        )

        # Only directing credits are stored from the crew
        directors = _unique(
            (
                DirectorCredit.from_tmdb(c)
                for c in credits.get("crew") or []
                if c.get("job") == "Director"
            ),
            key=lambda d: d.id,
        )

        cast = sorted(
            (CastCredit.from_tmdb(c) for c in credits.get("cast") or [] if c.get("id") is not None),
            key=lambda c: c.order,
        )[: self.config.max_cast_members]

        return EnrichmentData(
            movie_id=movie_id,
            title=details.get("title"),
            release_date=parse_release_date(details.get("release_date")),
            popularity=details.get("popularity"),
            poster_path=poster_path,
            backdrop_path=details.get("backdrop_path"),
            budget=positive_or_none(details.get("budget")),
            runtime=positive_or_none(details.get("runtime")),
            genres=genres,
            countries=countries,
            studios=studios,
            directors=directors,
            cast=cast,
        )


class EnrichmentUpserter:
    """Merges EnrichmentData into storage. Idempotent."""

    def __init__(self, db: DatabaseManager, config: Config):
        self.db = db
        self.logger = setup_logger("enrichment", config.log_dir)

    @staticmethod
    def batches(data: EnrichmentData) -> List[Tuple[str, List[dict]]]:
        """
        Rows to insert-or-ignore, per table.

        Reference entities come before the associations pointing at them.
        """
        movie_id = data.movie_id
        return [
            ("genres", [g.to_dict() for g in data.genres]),
            ("movie_genres", [{"movie_id": movie_id, "genre_id": g.id} for g in data.genres]),
            ("countries", [c.to_dict() for c in data.countries]),
            ("movie_countries", [{"movie_id": movie_id, "country_code": c.code} for c in data.countries]),
            ("studios", [s.to_dict() for s in data.studios]),
            ("movie_studio", [{"movie_id": movie_id, "studio_id": s.id} for s in data.studios]),
            ("crew", [d.to_dict() for d in data.directors]),
            ("movie_crew", [{"movie_id": movie_id, "crew_id": d.id, "job": d.job} for d in data.directors]),
            ("actors", _unique((a.to_dict() for a in data.cast), key=lambda row: row["id"])),
            ("movie_actors", [{"movie_id": movie_id, "actor_id": a.id, "order": a.order} for a in data.cast]),
        ]

    def upsert(self, data: EnrichmentData) -> EnrichmentResult:
        """
        Merge fetched metadata in a single transaction.

        Raises:
            PersistenceError: On any database failure (transaction rolled back)
        """
        try:
            tx = self.db.begin()
        except SQLAlchemyError as e:
            raise PersistenceError.from_db_error(
                e, f"Enrichment upsert for movie {data.movie_id} failed"
            ) from e

        try:
            inserted = self._apply(tx, data)
            tx.commit()
        except SQLAlchemyError as e:
            tx.rollback()
            self.logger.error(f"Enrichment upsert for {data.movie_id} rolled back: {e}")
            raise PersistenceError.from_db_error(
                e, f"Enrichment upsert for movie {data.movie_id} failed"
            ) from e
        finally:
            tx.close()

        result = EnrichmentResult(movie_id=data.movie_id, inserted=inserted)
        self.logger.info(f"Enriched {data.movie_id}: {result.total_inserted} new rows {inserted}")
        return result

    def _apply(self, tx: Transaction, data: EnrichmentData) -> Dict[str, int]:
        self.db.upsert_movie(tx, data.movie_row())
        inserted = {}
        for table, rows in self.batches(data):
            inserted[table] = self.db.insert_ignore(tx, table, rows)
        return inserted
