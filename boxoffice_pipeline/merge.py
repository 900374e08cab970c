"""
Merge transaction: move a placeholder movie's identity onto its canonical id.

All statements run sequentially inside one transaction:

1. re-check that the placeholder still exists
2. lock both movies rows (ascending id order) and confirm the placeholder
   is still among them
3. read the placeholder's titles for the post-commit backfill
4. delete the placeholder's association and daily revenue rows
5. reassign revenue and showing rows to the canonical id
6. delete the placeholder movies row
7. commit

Any failure rolls the whole transaction back. Nothing here retries; a second
attempt against an already merged placeholder fails with
PlaceholderNotFoundError.
"""

from sqlalchemy.exc import SQLAlchemyError

from .config import Config
from .database import DatabaseManager
from .exceptions import PlaceholderNotFoundError, TransactionError
from .models import MergeResult
from .utils import setup_logger


class MergeTransactionEngine:
    """Atomically re-keys a placeholder movie onto a canonical id."""

    def __init__(self, db: DatabaseManager, config: Config):
        self.db = db
        self.logger = setup_logger("merge", config.log_dir)

    def merge(self, temp_id: int, new_id: int) -> MergeResult:
        """
        Run the merge transaction.

        Args:
            temp_id: Placeholder movie id
            new_id: Canonical movie id (its movies row must already exist)

        Returns:
            MergeResult with the placeholder's prior titles and per-table counts

        Raises:
            PlaceholderNotFoundError: The placeholder does not exist
            TransactionError: Any database failure (transaction rolled back)
        """
        try:
            tx = self.db.begin()
        except SQLAlchemyError as e:
            raise TransactionError.from_db_error(e, f"Merge {temp_id} -> {new_id} failed") from e

        try:
            if not self.db.movie_exists(temp_id, tx=tx):
                tx.rollback()
                raise PlaceholderNotFoundError(temp_id)

            locked = self.db.lock_movies(tx, (temp_id, new_id))
            if temp_id not in locked:
                # Merged away by a concurrent correction while this one waited
                tx.rollback()
                raise PlaceholderNotFoundError(temp_id)

            prior_titles = self.db.get_titles(tx, temp_id)
            deleted = self.db.delete_attachments(tx, temp_id)
            reassigned = self.db.reassign_facts(tx, temp_id, new_id)
            deleted["movies"] = self.db.delete_movie(tx, temp_id)

            tx.commit()

        except SQLAlchemyError as e:
            tx.rollback()
            self.logger.error(f"Merge {temp_id} -> {new_id} rolled back: {e}")
            raise TransactionError.from_db_error(e, f"Merge {temp_id} -> {new_id} failed") from e
        finally:
            tx.close()

        self.logger.info(
            f"Merged {temp_id} -> {new_id}: reassigned {reassigned}, discarded {deleted}"
        )
        return MergeResult(
            temp_id=temp_id,
            new_id=new_id,
            prior_titles=prior_titles,
            deleted=deleted,
            reassigned=reassigned,
        )
