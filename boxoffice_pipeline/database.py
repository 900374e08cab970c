"""
Database gateway for the box-office identity pipeline.

Handles all database operations including:
- Connection management with SQLAlchemy
- Explicit transaction boundaries handed through the pipeline
- Statements used by the merge, enrichment and backfill steps
- Table provisioning for the movie aggregate
"""

from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, CursorResult, Engine

from .config import Config
from .models import PriorTitles
from .policy import (
    MOVIE_FIELD_POLICY,
    REVENUE_FIELD_POLICY,
    build_upsert_from_select_sql,
    build_upsert_sql,
    quote,
)
from .utils import setup_logger


class Transaction:
    """
    One database transaction, opened by DatabaseManager.begin().

    Callers drive it explicitly with commit()/rollback() and must close() it.
    """

    def __init__(self, connection: Connection):
        self.connection = connection
        self._transaction = connection.begin()

    @property
    def is_active(self) -> bool:
        return self._transaction.is_active

    def execute(self, query: str, params=None) -> CursorResult:
        return self.connection.execute(text(query), params if params is not None else {})

    def commit(self) -> None:
        self._transaction.commit()

    def rollback(self) -> None:
        if self._transaction.is_active:
            self._transaction.rollback()

    def close(self) -> None:
        self.connection.close()


class DatabaseManager:
    """
    Handles all database operations.

    Statement methods that take a ``tx`` run inside the caller's transaction;
    the others open and commit their own.
    """

    MOVIE_TABLE = "movies"
    REFERENCE_TABLES = ["genres", "countries", "studios", "crew", "actors"]
    ASSOCIATION_TABLES = ["movie_genres", "movie_countries", "movie_studio", "movie_crew", "movie_actors"]
    FACT_TABLES = ["revenues", "showings", "daily_revenues"]
    ALL_TABLES = [MOVIE_TABLE] + REFERENCE_TABLES + ASSOCIATION_TABLES + FACT_TABLES

    # Rows discarded when a placeholder is merged away: (table, movie id column)
    ATTACHMENTS: List[Tuple[str, str]] = [
        ("movie_genres", "movie_id"),
        ("movie_countries", "movie_id"),
        ("movie_studio", "movie_id"),
        ("movie_crew", "movie_id"),
        ("movie_actors", "movie_id"),
        ("daily_revenues", "film_id"),
    ]

    # Observed facts conserved across a merge: (table, movie id column)
    REASSIGNED_FACTS: List[Tuple[str, str]] = [
        ("revenues", "film_id"),
        ("showings", "movie_id"),
    ]

    MOVIE_COLUMNS = [
        "id", "title", "fr_title", "release_date", "popularity",
        "poster_path", "backdrop_path", "budget", "runtime",
    ]

    REVENUE_COLUMNS = ["weekend_id", "film_id"] + list(REVENUE_FIELD_POLICY)

    def __init__(self, config: Config, engine: Optional[Engine] = None):
        self.config = config
        self.engine = engine or self._create_engine()
        self.logger = setup_logger("database", config.log_dir)

    def _create_engine(self) -> Engine:
        """Create SQLAlchemy engine with connection pooling."""
        return create_engine(
            self.config.get_db_url(),
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            pool_recycle=3600,
        )

    def _execute(self, query: str, params: dict = None) -> list:
        """Execute a query in its own transaction and return results."""
        with self.engine.begin() as conn:
            result = conn.execute(text(query), params or {})
            return result.fetchall() if result.returns_rows else []

    def begin(self) -> Transaction:
        """Open a new explicit transaction."""
        return Transaction(self.engine.connect())

    # ============ MOVIE ROWS ============

    def ensure_movie(self, movie_id: int) -> bool:
        """
        Insert a bare movies row if none exists.

        Returns:
            True if a new row was created
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                text("INSERT IGNORE INTO movies (id) VALUES (:id)"),
                {"id": movie_id},
            )
            return result.rowcount == 1

    def movie_exists(self, movie_id: int, tx: Optional[Transaction] = None) -> bool:
        """Check if a movies row exists."""
        query = "SELECT 1 FROM movies WHERE id = :id LIMIT 1"
        if tx is not None:
            return tx.execute(query, {"id": movie_id}).first() is not None
        return len(self._execute(query, {"id": movie_id})) > 0

    def get_movie(self, movie_id: int) -> Optional[dict]:
        """Get a movies row as a dict."""
        columns = ", ".join(self.MOVIE_COLUMNS)
        with self.engine.connect() as conn:
            row = conn.execute(
                text(f"SELECT {columns} FROM movies WHERE id = :id"),
                {"id": movie_id},
            ).mappings().fetchone()
        return dict(row) if row else None

    def get_titles(self, tx: Transaction, movie_id: int) -> PriorTitles:
        """Read a movie's latest committed titles inside the caller's transaction."""
        row = tx.execute(
            "SELECT fr_title, title FROM movies WHERE id = :id FOR UPDATE",
            {"id": movie_id},
        ).mappings().fetchone()
        if not row:
            return PriorTitles()
        return PriorTitles(fr_title=row["fr_title"], title=row["title"])

    def delete_movie(self, tx: Transaction, movie_id: int) -> int:
        """Delete a movies row."""
        result = tx.execute("DELETE FROM movies WHERE id = :id", {"id": movie_id})
        return result.rowcount

    # ============ MERGE STATEMENTS ============

    def lock_movies(self, tx: Transaction, movie_ids: Sequence[int]) -> List[int]:
        """
        Lock movies rows with a single SELECT ... FOR UPDATE.

        InnoDB takes the row locks in index order, and the ids are bound in
        ascending order, so two corrections sharing an id always lock in the
        same sequence.

        Returns:
            The ids that were found and locked
        """
        first, second = sorted(movie_ids)
        result = tx.execute(
            "SELECT id FROM movies WHERE id IN (:first, :second) ORDER BY id FOR UPDATE",
            {"first": first, "second": second},
        )
        return [row[0] for row in result]

    def delete_attachments(self, tx: Transaction, movie_id: int) -> Dict[str, int]:
        """Delete association and derived rows filed under a movie id."""
        deleted = {}
        for table, column in self.ATTACHMENTS:
            result = tx.execute(
                f"DELETE FROM {table} WHERE {column} = :id",
                {"id": movie_id},
            )
            deleted[table] = result.rowcount
        return deleted

    def reassign_facts(self, tx: Transaction, from_id: int, to_id: int) -> Dict[str, int]:
        """
        Move revenue and showing rows onto another movie id.

        Revenues go through INSERT ... SELECT so a weekend both ids already
        hold merges into the target's row (REVENUE_FIELD_POLICY) instead of
        tripping uq_revenues_weekend_film. The placeholder's rows are deleted
        afterwards. Showings have no such key and are re-pointed in place.

        Returns:
            Placeholder rows moved per table
        """
        params = {"to_id": to_id, "from_id": from_id}
        select_list = ", ".join(
            ":to_id AS film_id" if c == "film_id" else quote(c) for c in self.REVENUE_COLUMNS
        )
        tx.execute(
            build_upsert_from_select_sql(
                "revenues",
                self.REVENUE_COLUMNS,
                f"SELECT {select_list} FROM revenues WHERE film_id = :from_id",
                REVENUE_FIELD_POLICY,
            ),
            params,
        )
        revenues = tx.execute("DELETE FROM revenues WHERE film_id = :from_id", params)
        showings = tx.execute(
            "UPDATE showings SET movie_id = :to_id WHERE movie_id = :from_id", params
        )
        return {"revenues": revenues.rowcount, "showings": showings.rowcount}

    # ============ ENRICHMENT STATEMENTS ============

    def upsert_movie(self, tx: Transaction, row: dict) -> None:
        """Insert or merge a movies row according to MOVIE_FIELD_POLICY."""
        columns = [c for c in self.MOVIE_COLUMNS if c in row]
        tx.execute(build_upsert_sql("movies", columns, MOVIE_FIELD_POLICY), row)

    def insert_ignore(self, tx: Transaction, table: str, rows: List[dict]) -> int:
        """
        Multi-row INSERT IGNORE into one table.

        Returns:
            Number of rows actually inserted (as reported by the driver)
        """
        if not rows:
            return 0
        columns = list(rows[0].keys())
        column_list = ", ".join(f"`{c}`" for c in columns)
        placeholders = ", ".join(f":{c}" for c in columns)
        result = tx.execute(
            f"INSERT IGNORE INTO {table} ({column_list}) VALUES ({placeholders})",
            rows,
        )
        return max(result.rowcount, 0)

    # ============ BACKFILL ============

    def backfill_localized_title(self, movie_id: int, prior: PriorTitles) -> bool:
        """
        Fill a still-empty fr_title from a placeholder's prior titles.

        Returns:
            True if the row changed
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                text(
                    "UPDATE movies "
                    "SET fr_title = COALESCE(:prior_fr_title, :prior_title) "
                    "WHERE id = :id AND fr_title IS NULL"
                ),
                {
                    "id": movie_id,
                    "prior_fr_title": prior.fr_title,
                    "prior_title": prior.title,
                },
            )
            return result.rowcount > 0

    # ============ COUNTS ============

    def count_facts(self, movie_id: int) -> Dict[str, int]:
        """Count revenue and showing rows for a movie."""
        counts = {}
        for table, column in self.REASSIGNED_FACTS:
            result = self._execute(
                f"SELECT COUNT(*) FROM {table} WHERE {column} = :id",
                {"id": movie_id},
            )
            counts[table] = result[0][0]
        return counts

    def count_references(self, movie_id: int) -> Dict[str, int]:
        """Count every row in every table that points at a movie id."""
        counts = {}
        for table, column in self.ATTACHMENTS + self.REASSIGNED_FACTS:
            result = self._execute(
                f"SELECT COUNT(*) FROM {table} WHERE {column} = :id",
                {"id": movie_id},
            )
            counts[table] = result[0][0]
        return counts

    # ============ SETUP OPERATIONS ============

    def test_connection(self) -> bool:
        """Run a trivial query."""
        try:
            self._execute("SELECT 1")
            return True
        except Exception as e:
            self.logger.error(f"Database connection test failed: {e}")
            return False

    def table_exists(self, table_name: str) -> bool:
        """Check if a specific table exists."""
        result = self._execute(
            """SELECT COUNT(*) FROM information_schema.tables
               WHERE table_schema = :db AND table_name = :table""",
            {"db": self.config.db_name, "table": table_name},
        )
        return result[0][0] > 0

    def check_and_create_tables(self) -> dict:
        """
        Check which tables exist and create any that are missing.

        Tables are visited in dependency order so foreign keys resolve.

        Returns:
            {"existing": List[str], "created": List[str], "all_present": bool}
        """
        result = {"existing": [], "created": [], "all_present": False}

        for table in self.ALL_TABLES:
            if self.table_exists(table):
                result["existing"].append(table)
            elif self._create_table(table):
                result["created"].append(table)

        present = len(result["existing"]) + len(result["created"])
        result["all_present"] = present == len(self.ALL_TABLES)
        return result

    def _create_table(self, table: str) -> bool:
        """Create a specific table with its keys."""
        try:
            self._execute(TABLE_DDL[table])
            self.logger.info(f"Created table: {table}")
            return True
        except Exception as e:
            self.logger.error(f"Error creating table {table}: {e}")
            return False


_TABLE_OPTIONS = "ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_unicode_ci"

TABLE_DDL: Dict[str, str] = {
    "movies": f"""
        CREATE TABLE IF NOT EXISTS movies (
            id INT PRIMARY KEY,
            title VARCHAR(255),
            fr_title VARCHAR(255),
            release_date DATE,
            popularity FLOAT,
            poster_path VARCHAR(255),
            backdrop_path VARCHAR(255),
            budget BIGINT,
            runtime INT,
            INDEX idx_movies_release_date (release_date)
        ) {_TABLE_OPTIONS}
    """,
    "genres": f"""
        CREATE TABLE IF NOT EXISTS genres (
            id INT PRIMARY KEY,
            name VARCHAR(100) NOT NULL
        ) {_TABLE_OPTIONS}
    """,
    "countries": f"""
        CREATE TABLE IF NOT EXISTS countries (
            code CHAR(2) PRIMARY KEY,
            fr_name VARCHAR(255)
        ) {_TABLE_OPTIONS}
    """,
    "studios": f"""
        CREATE TABLE IF NOT EXISTS studios (
            id INT PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            popularity FLOAT
        ) {_TABLE_OPTIONS}
    """,
    "crew": f"""
        CREATE TABLE IF NOT EXISTS crew (
            id INT PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            known_for_department VARCHAR(100),
            popularity FLOAT,
            gender INT,
            image_path VARCHAR(255)
        ) {_TABLE_OPTIONS}
    """,
    "actors": f"""
        CREATE TABLE IF NOT EXISTS actors (
            id INT PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            popularity FLOAT,
            gender INT,
            profile_path VARCHAR(255),
            known_for_department VARCHAR(100)
        ) {_TABLE_OPTIONS}
    """,
    "movie_genres": f"""
        CREATE TABLE IF NOT EXISTS movie_genres (
            movie_id INT NOT NULL,
            genre_id INT NOT NULL,
            PRIMARY KEY (movie_id, genre_id),
            CONSTRAINT fk_movie_genres_movie FOREIGN KEY (movie_id) REFERENCES movies (id),
            CONSTRAINT fk_movie_genres_genre FOREIGN KEY (genre_id) REFERENCES genres (id)
        ) {_TABLE_OPTIONS}
    """,
    "movie_countries": f"""
        CREATE TABLE IF NOT EXISTS movie_countries (
            movie_id INT NOT NULL,
            country_code CHAR(2) NOT NULL,
            PRIMARY KEY (movie_id, country_code),
            CONSTRAINT fk_movie_countries_movie FOREIGN KEY (movie_id) REFERENCES movies (id),
            CONSTRAINT fk_movie_countries_country FOREIGN KEY (country_code) REFERENCES countries (code)
        ) {_TABLE_OPTIONS}
    """,
    "movie_studio": f"""
        CREATE TABLE IF NOT EXISTS movie_studio (
            movie_id INT NOT NULL,
            studio_id INT NOT NULL,
            PRIMARY KEY (movie_id, studio_id),
            CONSTRAINT fk_movie_studio_movie FOREIGN KEY (movie_id) REFERENCES movies (id),
            CONSTRAINT fk_movie_studio_studio FOREIGN KEY (studio_id) REFERENCES studios (id)
        ) {_TABLE_OPTIONS}
    """,
    "movie_crew": f"""
        CREATE TABLE IF NOT EXISTS movie_crew (
            movie_id INT NOT NULL,
            crew_id INT NOT NULL,
            job VARCHAR(100) NOT NULL,
            PRIMARY KEY (movie_id, crew_id, job),
            CONSTRAINT fk_movie_crew_movie FOREIGN KEY (movie_id) REFERENCES movies (id),
            CONSTRAINT fk_movie_crew_crew FOREIGN KEY (crew_id) REFERENCES crew (id)
        ) {_TABLE_OPTIONS}
    """,
    "movie_actors": f"""
        CREATE TABLE IF NOT EXISTS movie_actors (
            movie_id INT NOT NULL,
            actor_id INT NOT NULL,
            `order` INT NOT NULL,
            PRIMARY KEY (movie_id, actor_id, `order`),
            CONSTRAINT fk_movie_actors_movie FOREIGN KEY (movie_id) REFERENCES movies (id),
            CONSTRAINT fk_movie_actors_actor FOREIGN KEY (actor_id) REFERENCES actors (id)
        ) {_TABLE_OPTIONS}
    """,
    "revenues": f"""
        CREATE TABLE IF NOT EXISTS revenues (
            id INT AUTO_INCREMENT PRIMARY KEY,
            weekend_id INT NOT NULL,
            film_id INT NOT NULL,
            `rank` INT,
            revenue_qc BIGINT,
            revenue_us BIGINT,
            theater_count INT,
            cumulatif_qc_to_date BIGINT,
            cumulatif_us_to_date BIGINT,
            change_qc FLOAT,
            change_us FLOAT,
            week_count INT,
            data_source VARCHAR(50),
            UNIQUE KEY uq_revenues_weekend_film (weekend_id, film_id),
            CONSTRAINT fk_revenues_movie FOREIGN KEY (film_id) REFERENCES movies (id)
        ) {_TABLE_OPTIONS}
    """,
    "showings": f"""
        CREATE TABLE IF NOT EXISTS showings (
            id INT AUTO_INCREMENT PRIMARY KEY,
            movie_id INT NOT NULL,
            theater_id INT NOT NULL,
            date DATE NOT NULL,
            time TIME,
            INDEX idx_showings_movie_id (movie_id),
            CONSTRAINT fk_showings_movie FOREIGN KEY (movie_id) REFERENCES movies (id)
        ) {_TABLE_OPTIONS}
    """,
    "daily_revenues": f"""
        CREATE TABLE IF NOT EXISTS daily_revenues (
            date DATE NOT NULL,
            film_id INT NOT NULL,
            amount BIGINT,
            source VARCHAR(50),
            PRIMARY KEY (date, film_id),
            CONSTRAINT fk_daily_revenues_movie FOREIGN KEY (film_id) REFERENCES movies (id)
        ) {_TABLE_OPTIONS}
    """,
}
