"""
Post-commit localized title backfill.

Enrichment never assigns fr_title, so after a correction the canonical
movie's localized title is filled from the placeholder's prior titles
(preferring its fr_title over its title) when it is still empty.
"""

from sqlalchemy.exc import SQLAlchemyError

from .config import Config
from .database import DatabaseManager
from .exceptions import PersistenceError
from .models import PriorTitles
from .utils import setup_logger


class TitleBackfill:
    """Fills a still-null fr_title. Idempotent."""

    def __init__(self, db: DatabaseManager, config: Config):
        self.db = db
        self.logger = setup_logger("backfill", config.log_dir)

    def apply(self, movie_id: int, prior: PriorTitles) -> bool:
        """
        Returns:
            True if the statement touched the row

        Raises:
            PersistenceError: On database failure
        """
        if prior.fallback() is None:
            return False

        try:
            changed = self.db.backfill_localized_title(movie_id, prior)
        except SQLAlchemyError as e:
            self.logger.error(f"Title backfill for {movie_id} failed: {e}")
            raise PersistenceError.from_db_error(e, f"Title backfill for movie {movie_id} failed") from e

        if changed:
            self.logger.info(f"Backfilled fr_title for {movie_id}")
        return changed
