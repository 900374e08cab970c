"""
Box-office identity pipeline - placeholder movie correction and TMDB enrichment.

This package provides tools for:
- Re-keying a placeholder movie onto its canonical TMDB id in one transaction
- Fetching canonical metadata, credits and imagery from TMDB
- Merging fetched metadata without clobbering trusted local values
- Backfilling localized titles carried by the placeholder
"""

from .config import Config
from .models import (
    CorrectionResult,
    EnrichmentData,
    EnrichmentResult,
    MergeResult,
    PriorTitles,
)
from .exceptions import (
    CorrectionError,
    ExternalFetchError,
    InvalidArgumentError,
    PersistenceError,
    PlaceholderNotFoundError,
    TransactionError,
)
from .client import TMDBClient
from .database import DatabaseManager, Transaction
from .merge import MergeTransactionEngine
from .enrichment import EnrichmentFetcher, EnrichmentUpserter, choose_poster
from .backfill import TitleBackfill
from .resolver import IdentityResolver, validate_ids

__version__ = "1.0.0"
__all__ = [
    "Config",
    "CorrectionResult",
    "EnrichmentData",
    "EnrichmentResult",
    "MergeResult",
    "PriorTitles",
    "CorrectionError",
    "ExternalFetchError",
    "InvalidArgumentError",
    "PersistenceError",
    "PlaceholderNotFoundError",
    "TransactionError",
    "TMDBClient",
    "DatabaseManager",
    "Transaction",
    "MergeTransactionEngine",
    "EnrichmentFetcher",
    "EnrichmentUpserter",
    "choose_poster",
    "TitleBackfill",
    "IdentityResolver",
    "validate_ids",
]
