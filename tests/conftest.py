"""
Shared fixtures for box-office pipeline tests.

Provides an in-memory database gateway, a mock TMDB client, and sample data.
"""

import copy
from datetime import date
from typing import Dict, List, Optional, Tuple

import pymysql
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import IntegrityError, OperationalError

from boxoffice_pipeline.config import Config
from boxoffice_pipeline.database import DatabaseManager
from boxoffice_pipeline.exceptions import ExternalFetchError
from boxoffice_pipeline.models import PriorTitles
from boxoffice_pipeline.policy import REVENUE_FIELD_POLICY, merge_fields
from boxoffice_pipeline.resolver import IdentityResolver

PLACEHOLDER_ID = 999999901
CANONICAL_ID = 550


# =============================================================================
# SAMPLE DATA
# =============================================================================

def create_tmdb_payload(
    movie_id: int,
    title: str,
    release_date: str = "1999-10-15",
    budget: int = 63000000,
    runtime: int = 139,
    cast_size: int = 12,
    posters: Optional[List[dict]] = None,
) -> Dict[str, dict]:
    """Details, credits and images payloads as TMDB returns them."""
    details = {
        "id": movie_id,
        "title": title,
        "release_date": release_date,
        "popularity": 61.4,
        "poster_path": f"/details_poster_{movie_id}.jpg",
        "backdrop_path": f"/backdrop_{movie_id}.jpg",
        "budget": budget,
        "runtime": runtime,
        "genres": [
            {"id": 18, "name": "Drama"},
            {"id": 53, "name": "Thriller"},
        ],
        "production_countries": [
            {"iso_3166_1": "US", "name": "United States of America"},
            {"iso_3166_1": "DE", "name": "Germany"},
        ],
        "production_companies": [
            {"id": 508, "name": "Regency Enterprises"},
            {"id": 711, "name": "Fox 2000 Pictures"},
        ],
    }

    # Billing order deliberately reversed so normalization has to sort
    cast = [
        {
            "id": 1000 + i,
            "name": f"Actor {i}",
            "order": i,
            "popularity": 10.0 + i,
            "gender": 2,
            "profile_path": f"/actor_{i}.jpg",
            "known_for_department": "Acting",
        }
        for i in reversed(range(cast_size))
    ]
    credits = {
        "id": movie_id,
        "cast": cast,
        "crew": [
            {
                "id": 7467,
                "name": "David Fincher",
                "job": "Director",
                "department": "Directing",
                "known_for_department": "Directing",
                "popularity": 20.5,
                "gender": 2,
                "profile_path": "/fincher.jpg",
            },
            {"id": 7474, "name": "Ross Grayson Bell", "job": "Producer", "department": "Production"},
            {"id": 7468, "name": "Jim Uhls", "job": "Screenplay", "department": "Writing"},
        ],
    }

    if posters is None:
        posters = [
            {"file_path": "/poster_de.jpg", "iso_639_1": "de", "vote_count": 50},
            {"file_path": "/poster_fr.jpg", "iso_639_1": "fr", "vote_count": 10},
            {"file_path": "/poster_en.jpg", "iso_639_1": "en", "vote_count": 90},
        ]
    images = {"id": movie_id, "posters": posters, "backdrops": []}

    return {"details": details, "credits": credits, "images": images}


SAMPLE_PAYLOADS = {
    CANONICAL_ID: create_tmdb_payload(CANONICAL_ID, "Fight Club"),
    27205: create_tmdb_payload(27205, "Inception", "2010-07-16", 160000000, 148),
}


def make_integrity_error(code: int, message: str) -> IntegrityError:
    """A SQLAlchemy IntegrityError wrapping a PyMySQL driver error."""
    return IntegrityError("statement", {}, pymysql.err.IntegrityError(code, message))


def make_operational_error(message: str = "Lost connection to MySQL server during query") -> OperationalError:
    return OperationalError("statement", {}, pymysql.err.OperationalError(2013, message))


# =============================================================================
# MOCK DATABASE
# =============================================================================

PRIMARY_KEYS: Dict[str, Tuple[str, ...]] = {
    "genres": ("id",),
    "countries": ("code",),
    "studios": ("id",),
    "crew": ("id",),
    "actors": ("id",),
    "movie_genres": ("movie_id", "genre_id"),
    "movie_countries": ("movie_id", "country_code"),
    "movie_studio": ("movie_id", "studio_id"),
    "movie_crew": ("movie_id", "crew_id", "job"),
    "movie_actors": ("movie_id", "actor_id", "order"),
    "revenues": ("id",),
    "showings": ("id",),
    "daily_revenues": ("date", "film_id"),
}

# association table -> (column, referenced table)
FOREIGN_KEYS: Dict[str, Tuple[str, str]] = {
    "movie_genres": ("genre_id", "genres"),
    "movie_countries": ("country_code", "countries"),
    "movie_studio": ("studio_id", "studios"),
    "movie_crew": ("crew_id", "crew"),
    "movie_actors": ("actor_id", "actors"),
}


class MockTransaction:
    """Snapshot-based transaction over MockDatabaseManager."""

    def __init__(self, db: "MockDatabaseManager"):
        self.db = db
        self._snapshot = db.snapshot()
        self.is_active = True
        self.closed = False

    def commit(self):
        self.is_active = False
        self.db.commits += 1

    def rollback(self):
        if self.is_active:
            self.db.restore(self._snapshot)
            self.is_active = False
            self.db.rollbacks += 1

    def close(self):
        self.closed = True


class MockDatabaseManager:
    """
    In-memory stand-in for DatabaseManager.

    Mirrors the gateway methods, including primary key and foreign key
    checks, so ordering mistakes surface as IntegrityError the way they
    would against MySQL. Set ``fail_on[method_name]`` to inject a failure.
    """

    ATTACHMENTS = DatabaseManager.ATTACHMENTS
    REASSIGNED_FACTS = DatabaseManager.REASSIGNED_FACTS
    MOVIE_COLUMNS = DatabaseManager.MOVIE_COLUMNS

    def __init__(self):
        self.movies: Dict[int, dict] = {}
        self.tables: Dict[str, Dict[tuple, dict]] = {t: {} for t in PRIMARY_KEYS}
        self.fail_on: Dict[str, Exception] = {}
        self.transactions: List[MockTransaction] = []
        self.lock_calls: List[Tuple[int, ...]] = []
        self.commits = 0
        self.rollbacks = 0
        self._next_id = 1

    # Snapshots
    def snapshot(self):
        return copy.deepcopy((self.movies, self.tables))

    def restore(self, snapshot):
        self.movies, self.tables = copy.deepcopy(snapshot)

    def _check_failure(self, method: str):
        if method in self.fail_on:
            raise self.fail_on[method]

    # Seeding helpers
    def add_movie(self, movie_id: int, **fields) -> dict:
        row = {c: None for c in self.MOVIE_COLUMNS}
        row.update(fields, id=movie_id)
        self.movies[movie_id] = row
        return row

    def add_row(self, table: str, **row) -> dict:
        if table in ("revenues", "showings") and "id" not in row:
            row["id"] = self._next_id
            self._next_id += 1
        key = tuple(row[c] for c in PRIMARY_KEYS[table])
        self.tables[table][key] = row
        return row

    def add_revenue(self, film_id: int, weekend_id: int, revenue_qc: int = 100000) -> dict:
        return self.add_row("revenues", weekend_id=weekend_id, film_id=film_id, revenue_qc=revenue_qc)

    def add_showing(self, movie_id: int, theater_id: int, day: date) -> dict:
        return self.add_row("showings", movie_id=movie_id, theater_id=theater_id, date=day)

    def rows(self, table: str, **where) -> List[dict]:
        return [
            r for r in self.tables[table].values()
            if all(r.get(k) == v for k, v in where.items())
        ]

    # Gateway
    def begin(self) -> MockTransaction:
        self._check_failure("begin")
        tx = MockTransaction(self)
        self.transactions.append(tx)
        return tx

    def ensure_movie(self, movie_id: int) -> bool:
        self._check_failure("ensure_movie")
        if movie_id in self.movies:
            return False
        self.add_movie(movie_id)
        return True

    def movie_exists(self, movie_id: int, tx=None) -> bool:
        self._check_failure("movie_exists")
        return movie_id in self.movies

    def get_movie(self, movie_id: int) -> Optional[dict]:
        row = self.movies.get(movie_id)
        return dict(row) if row else None

    def get_titles(self, tx, movie_id: int) -> PriorTitles:
        self._check_failure("get_titles")
        row = self.movies.get(movie_id)
        if not row:
            return PriorTitles()
        return PriorTitles(fr_title=row["fr_title"], title=row["title"])

    def lock_movies(self, tx, movie_ids) -> List[int]:
        self._check_failure("lock_movies")
        ordered = tuple(sorted(movie_ids))
        self.lock_calls.append(ordered)
        return [m for m in ordered if m in self.movies]

    def delete_attachments(self, tx, movie_id: int) -> Dict[str, int]:
        self._check_failure("delete_attachments")
        deleted = {}
        for table, column in self.ATTACHMENTS:
            keys = [k for k, r in self.tables[table].items() if r[column] == movie_id]
            for k in keys:
                del self.tables[table][k]
            deleted[table] = len(keys)
        return deleted

    def reassign_facts(self, tx, from_id: int, to_id: int) -> Dict[str, int]:
        self._check_failure("reassign_facts")
        if to_id not in self.movies:
            raise make_integrity_error(
                1452, "Cannot add or update a child row: a foreign key constraint fails "
                "(CONSTRAINT `fk_revenues_movie`)",
            )
        revenues = self.tables["revenues"]
        moved_revenues = 0
        for key, row in list(revenues.items()):
            if row["film_id"] != from_id:
                continue
            target = next(
                (k for k, r in revenues.items()
                 if r["film_id"] == to_id and r["weekend_id"] == row["weekend_id"]),
                None,
            )
            if target is None:
                row["film_id"] = to_id
            else:
                revenues[target] = merge_fields(revenues[target], row, REVENUE_FIELD_POLICY)
                del revenues[key]
            moved_revenues += 1

        moved_showings = 0
        for row in self.tables["showings"].values():
            if row["movie_id"] == from_id:
                row["movie_id"] = to_id
                moved_showings += 1
        return {"revenues": moved_revenues, "showings": moved_showings}

    def delete_movie(self, tx, movie_id: int) -> int:
        self._check_failure("delete_movie")
        if any(self.count_references(movie_id).values()):
            raise make_integrity_error(
                1451, "Cannot delete or update a parent row: a foreign key constraint fails",
            )
        return 1 if self.movies.pop(movie_id, None) else 0

    def upsert_movie(self, tx, row: dict) -> None:
        self._check_failure("upsert_movie")
        existing = self.movies.get(row["id"])
        if existing is None:
            self.add_movie(row["id"], **{k: v for k, v in row.items() if k != "id"})
        else:
            self.movies[row["id"]] = merge_fields(existing, row)

    def insert_ignore(self, tx, table: str, rows: List[dict]) -> int:
        self._check_failure("insert_ignore")
        self._check_failure(f"insert_ignore:{table}")
        inserted = 0
        for row in rows:
            if table in FOREIGN_KEYS:
                column, parent = FOREIGN_KEYS[table]
                if row["movie_id"] not in self.movies or (row[column],) not in self.tables[parent]:
                    raise make_integrity_error(
                        1452, f"Cannot add or update a child row (CONSTRAINT `fk_{table}`)",
                    )
            key = tuple(row[c] for c in PRIMARY_KEYS[table])
            if key in self.tables[table]:
                continue
            self.tables[table][key] = dict(row)
            inserted += 1
        return inserted

    def backfill_localized_title(self, movie_id: int, prior: PriorTitles) -> bool:
        self._check_failure("backfill_localized_title")
        row = self.movies.get(movie_id)
        if row is None or row["fr_title"] is not None:
            return False
        row["fr_title"] = prior.fr_title if prior.fr_title is not None else prior.title
        return True

    def count_facts(self, movie_id: int) -> Dict[str, int]:
        self._check_failure("count_facts")
        return {
            table: len(self.rows(table, **{column: movie_id}))
            for table, column in self.REASSIGNED_FACTS
        }

    def count_references(self, movie_id: int) -> Dict[str, int]:
        return {
            table: len(self.rows(table, **{column: movie_id}))
            for table, column in self.ATTACHMENTS + self.REASSIGNED_FACTS
        }

    def test_connection(self) -> bool:
        return True

    def check_and_create_tables(self) -> dict:
        return {"existing": list(DatabaseManager.ALL_TABLES), "created": [], "all_present": True}


# =============================================================================
# MOCK TMDB CLIENT
# =============================================================================

class MockTMDBClient:
    """Mock TMDB client serving canned payloads. Unknown ids answer 404."""

    def __init__(self, payloads: Optional[Dict[int, Dict[str, dict]]] = None):
        self.payloads = copy.deepcopy(payloads if payloads is not None else SAMPLE_PAYLOADS)
        self.failures: Dict[str, Exception] = {}
        self.calls: List[Tuple[str, int]] = []

    def _get(self, kind: str, movie_id: int) -> dict:
        self.calls.append((kind, movie_id))
        if kind in self.failures:
            raise self.failures[kind]
        if movie_id not in self.payloads:
            raise ExternalFetchError(
                f"https://api.themoviedb.org/3/movie/{movie_id}",
                404,
                '{"status_code":34,"status_message":"The resource you requested could not be found."}',
            )
        return copy.deepcopy(self.payloads[movie_id][kind])

    def get_movie_details(self, movie_id: int) -> dict:
        return self._get("details", movie_id)

    def get_movie_credits(self, movie_id: int) -> dict:
        return self._get("credits", movie_id)

    def get_movie_images(self, movie_id: int) -> dict:
        return self._get("images", movie_id)

    def test_connection(self) -> bool:
        return True


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def config(tmp_path_factory):
    """Test configuration with logs under the pytest temp dir."""
    log_dir = tmp_path_factory.getbasetemp() / "logs"
    return Config(
        api_key="test-key",
        db_user="test",
        db_name="boxoffice_test",
        backoff_base=0.01,
        log_dir=log_dir,
    )


@pytest.fixture
def mock_db():
    """Provide a fresh in-memory database for each test."""
    return MockDatabaseManager()


@pytest.fixture
def mock_db_with_placeholder(mock_db):
    """
    A placeholder movie with two weekend revenues, one showing, a daily
    revenue and a stale genre link.
    """
    mock_db.add_movie(PLACEHOLDER_ID, title="Fight Club", fr_title="Combat Club")
    mock_db.add_revenue(PLACEHOLDER_ID, weekend_id=1)
    mock_db.add_revenue(PLACEHOLDER_ID, weekend_id=2)
    mock_db.add_showing(PLACEHOLDER_ID, theater_id=12, day=date(1999, 11, 12))
    mock_db.add_row("daily_revenues", date=date(1999, 11, 12), film_id=PLACEHOLDER_ID, amount=5000)
    mock_db.add_row("genres", id=35, name="Comedy")
    mock_db.add_row("movie_genres", movie_id=PLACEHOLDER_ID, genre_id=35)
    return mock_db


@pytest.fixture
def mock_tmdb_client():
    """Provide mock TMDB client."""
    return MockTMDBClient()


@pytest.fixture
def resolver(mock_db_with_placeholder, mock_tmdb_client, config):
    """Resolver wired to the in-memory gateway and mock client."""
    return IdentityResolver(mock_db_with_placeholder, mock_tmdb_client, config)


@pytest.fixture
def api_client(resolver):
    """Provide FastAPI test client with mocked dependencies."""
    from api.main import app
    from api import dependencies

    # Clear any cached config/db from previous runs
    dependencies.get_config.cache_clear()
    dependencies.get_db.cache_clear()
    dependencies.get_tmdb_client.cache_clear()
    dependencies.get_resolver.cache_clear()

    app.dependency_overrides[dependencies.get_resolver] = lambda: resolver

    with TestClient(app, raise_server_exceptions=False) as client:
        yield client

    app.dependency_overrides.clear()
