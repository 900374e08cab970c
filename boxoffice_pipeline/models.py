"""
Data models for the box-office identity pipeline.

Provides dataclasses for type-safe data handling throughout the pipeline.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional


def parse_release_date(value: Optional[str]) -> Optional[date]:
    """Parse a TMDB 'YYYY-MM-DD' string, returning None when absent or malformed."""
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except (ValueError, TypeError):
        return None


def positive_or_none(value) -> Optional[int]:
    """Treat a missing or zero amount as unknown."""
    if not value or value <= 0:
        return None
    return int(value)


@dataclass
class GenreData:
    """Genre reference entity."""

    id: int
    name: str

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}

    @classmethod
    def from_tmdb(cls, data: dict) -> "GenreData":
        return cls(id=data.get("id"), name=data.get("name"))


@dataclass
class CountryData:
    """Production country, keyed by ISO 3166-1 code."""

    code: str
    name: Optional[str] = None

    def to_dict(self) -> dict:
        return {"code": self.code, "fr_name": self.name}

    @classmethod
    def from_tmdb(cls, data: dict) -> "CountryData":
        return cls(code=data.get("iso_3166_1"), name=data.get("name"))


@dataclass
class StudioData:
    """Production company."""

    id: int
    name: str

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "popularity": None}

    @classmethod
    def from_tmdb(cls, data: dict) -> "StudioData":
        return cls(id=data.get("id"), name=data.get("name"))


@dataclass
class DirectorCredit:
    """Crew member credited with the job 'Director'."""

    id: int
    name: str
    job: str = "Director"
    known_for_department: Optional[str] = None
    popularity: Optional[float] = None
    gender: Optional[int] = None  # 0=unknown, 1=female, 2=male, 3=non-binary
    profile_path: Optional[str] = None

    def to_dict(self) -> dict:
        """Row for the crew table."""
        return {
            "id": self.id,
            "name": self.name,
            "known_for_department": self.known_for_department,
            "popularity": self.popularity,
            "gender": self.gender,
            "image_path": self.profile_path,
        }

    @classmethod
    def from_tmdb(cls, data: dict) -> "DirectorCredit":
        return cls(
            id=data.get("id"),
            name=data.get("name", "Unknown"),
            job=data.get("job", "Director"),
            known_for_department=data.get("known_for_department"),
            popularity=data.get("popularity"),
            gender=data.get("gender"),
            profile_path=data.get("profile_path"),
        )


@dataclass
class CastCredit:
    """Cast member with on-screen billing order."""

    id: int
    name: str
    order: int
    popularity: Optional[float] = None
    gender: Optional[int] = None
    profile_path: Optional[str] = None
    known_for_department: Optional[str] = None

    def to_dict(self) -> dict:
        """Row for the actors table."""
        return {
            "id": self.id,
            "name": self.name,
            "popularity": self.popularity,
            "gender": self.gender,
            "profile_path": self.profile_path,
            "known_for_department": self.known_for_department,
        }

    @classmethod
    def from_tmdb(cls, data: dict) -> "CastCredit":
        return cls(
            id=data.get("id"),
            name=data.get("name", "Unknown"),
            order=data.get("order") if data.get("order") is not None else 999,
            popularity=data.get("popularity"),
            gender=data.get("gender"),
            profile_path=data.get("profile_path"),
            known_for_department=data.get("known_for_department"),
        )


@dataclass
class PosterCandidate:
    """A poster asset returned by the images endpoint."""

    file_path: str
    locale: Optional[str] = None  # iso_639_1, None for textless posters
    vote_count: int = 0

    @classmethod
    def from_tmdb(cls, data: dict) -> "PosterCandidate":
        return cls(
            file_path=data.get("file_path"),
            locale=data.get("iso_639_1"),
            vote_count=data.get("vote_count") or 0,
        )


@dataclass
class EnrichmentData:
    """Canonical metadata for one movie, flattened from details, credits and images."""

    movie_id: int
    title: Optional[str] = None
    release_date: Optional[date] = None
    popularity: Optional[float] = None
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    budget: Optional[int] = None
    runtime: Optional[int] = None

    # Related data
    genres: List[GenreData] = field(default_factory=list)
    countries: List[CountryData] = field(default_factory=list)
    studios: List[StudioData] = field(default_factory=list)
    directors: List[DirectorCredit] = field(default_factory=list)
    cast: List[CastCredit] = field(default_factory=list)

    def movie_row(self) -> dict:
        """Convert to a movies row. The localized title is never provider-assigned."""
        return {
            "id": self.movie_id,
            "title": self.title,
            "fr_title": None,
            "release_date": self.release_date,
            "popularity": self.popularity,
            "poster_path": self.poster_path,
            "backdrop_path": self.backdrop_path,
            "budget": self.budget,
            "runtime": self.runtime,
        }


@dataclass
class PriorTitles:
    """Titles held by a placeholder record before it was merged away."""

    fr_title: Optional[str] = None
    title: Optional[str] = None

    def fallback(self) -> Optional[str]:
        """Prefer the curated localized title over the original one."""
        return self.fr_title if self.fr_title is not None else self.title


@dataclass
class MergeResult:
    """Outcome of a committed merge transaction."""

    temp_id: int
    new_id: int
    prior_titles: PriorTitles = field(default_factory=PriorTitles)
    deleted: Dict[str, int] = field(default_factory=dict)
    reassigned: Dict[str, int] = field(default_factory=dict)


@dataclass
class EnrichmentResult:
    """Rows inserted by one enrichment run, per table."""

    movie_id: int
    inserted: Dict[str, int] = field(default_factory=dict)

    @property
    def total_inserted(self) -> int:
        return sum(self.inserted.values())

    def to_dict(self) -> dict:
        return {"ok": True, "movieId": self.movie_id, "inserted": dict(self.inserted)}


@dataclass
class CorrectionResult:
    """Success payload of a correction."""

    new_id: int
    moved_revenues: int = 0
    moved_showings: int = 0

    @property
    def redirect(self) -> str:
        return f"/movie/{self.new_id}"

    def to_dict(self) -> dict:
        return {
            "ok": True,
            "newId": self.new_id,
            "redirect": self.redirect,
            "moved": {
                "revenues": self.moved_revenues,
                "showings": self.moved_showings,
            },
        }
