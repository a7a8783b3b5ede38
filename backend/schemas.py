"""
Domain schemas

Pydantic models for everything the core stores, derives or receives from
the metadata provider. Construction validates; invalid films never reach
the collection store.
"""
from __future__ import annotations

import math
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from config import PLACEHOLDER_POSTER, TMDB_IMAGE_BASE_URL
from errors import ValidationError
from utils import now, today, year_from_release_date

MIN_FILM_YEAR = 1888


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------

class Film(BaseModel):
    """
    A film the user has watched.
    Only rating, watched_date, watched_time and platform are editable after creation,
    and edits go through model_copy so every change is validated and persisted.
    """
    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Unique per user; the TMDb id when known")
    title: str
    year: int
    genres: List[str] = Field(default_factory=list)
    runtime_minutes: Optional[int] = Field(None, description="None when the provider has no runtime")
    director: str = ""
    cast: List[str] = Field(default_factory=list)
    synopsis: str = ""
    rating: float = Field(0, description="User rating 0-10 scale")
    watched_date: date = Field(default_factory=today)
    watched_time: Optional[time] = Field(None, description="Time of day the viewing started")
    platform: str = ""
    poster_url: str = PLACEHOLDER_POSTER

    @field_validator("title")
    @classmethod
    def title_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValidationError("title", "Title is required")
        return value

    @field_validator("year")
    @classmethod
    def year_in_range(cls, value: int) -> int:
        current_year = today().year
        if value < MIN_FILM_YEAR or value > current_year:
            raise ValidationError("year", f"Valid year is required ({MIN_FILM_YEAR}-{current_year}), got {value}")
        return value

    @field_validator("rating")
    @classmethod
    def rating_in_range(cls, value: float) -> float:
        if math.isnan(value) or value < 0 or value > 10:
            raise ValidationError("rating", f"Rating must be between 0 and 10, got {value}")
        return value

    @field_validator("runtime_minutes")
    @classmethod
    def runtime_positive(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value <= 0:
            raise ValidationError("runtime_minutes", f"Runtime must be a positive number of minutes, got {value}")
        return value

    @field_validator("genres")
    @classmethod
    def unique_genres(cls, value: List[str]) -> List[str]:
        # Genres are a set; keep first-seen order for stable display
        seen = []
        for genre in value:
            genre = genre.strip()
            if genre and genre not in seen:
                seen.append(genre)
        return seen

    @field_validator("poster_url")
    @classmethod
    def poster_or_placeholder(cls, value: str) -> str:
        return value or PLACEHOLDER_POSTER

    def identity_key(self) -> tuple:
        """(title, director, year) compared case-insensitively, used for duplicate detection."""
        return (self.title.casefold(), (self.director or "").strip().casefold(), self.year)

    def watched_after_midnight(self) -> bool:
        return self.watched_time is not None and self.watched_time.hour < 5


EDITABLE_FILM_FIELDS = ("rating", "watched_date", "watched_time", "platform")


# ---------------------------------------------------------------------------
# Watchlist
# ---------------------------------------------------------------------------

class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


PRIORITY_ORDER = {Priority.HIGH: 3, Priority.MEDIUM: 2, Priority.LOW: 1}


class WatchlistItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Source film id (TMDb)")
    title: str
    poster_path: Optional[str] = None
    year: Optional[int] = None
    director: str = "Unknown"
    added_date: datetime = Field(default_factory=now)
    priority: Priority = Priority.MEDIUM
    notes: Optional[str] = None


# ---------------------------------------------------------------------------
# Metadata provider boundary
# ---------------------------------------------------------------------------

class CrewMember(BaseModel):
    name: str
    job: str = ""


class MovieMetadata(BaseModel):
    """
    Movie details as returned by the provider, with every optional field
    default-filled so consumers never have to probe a raw dict.
    """
    id: int
    title: str
    overview: str = ""
    release_date: Optional[str] = None
    runtime_minutes: Optional[int] = None
    poster_path: Optional[str] = None
    genres: List[str] = Field(default_factory=list)
    cast: List[str] = Field(default_factory=list)
    crew: List[CrewMember] = Field(default_factory=list)

    @property
    def year(self) -> Optional[int]:
        return year_from_release_date(self.release_date)

    @property
    def director(self) -> Optional[str]:
        for person in self.crew:
            if person.job == 'Director':
                return person.name
        return None

    def poster_url(self, size: str = "w500") -> str:
        if not self.poster_path:
            return PLACEHOLDER_POSTER
        return f"{TMDB_IMAGE_BASE_URL}/{size}{self.poster_path}"

    @classmethod
    def from_tmdb(cls, data: Dict[str, Any]) -> "MovieMetadata":
        """Build metadata from a raw TMDb /movie/{id} response (with append_to_response=credits)."""
        credits = data.get('credits') or {}
        runtime = data.get('runtime')
        return cls(
            id=data.get('id'),
            title=data.get('title') or data.get('original_title') or "",
            overview=data.get('overview') or "",
            release_date=data.get('release_date') or None,
            runtime_minutes=runtime if runtime and runtime > 0 else None,
            poster_path=data.get('poster_path') or None,
            genres=[genre.get('name') for genre in data.get('genres') or [] if genre.get('name')],
            cast=[person.get('name') for person in credits.get('cast') or [] if person.get('name')],
            crew=[
                CrewMember(name=person.get('name'), job=person.get('job') or "")
                for person in credits.get('crew') or []
                if person.get('name')
            ],
        )


class MovieSummary(BaseModel):
    id: int
    title: str
    release_date: Optional[str] = None
    poster_path: Optional[str] = None
    overview: str = ""

    @property
    def year(self) -> Optional[int]:
        return year_from_release_date(self.release_date)

    @classmethod
    def from_tmdb(cls, data: Dict[str, Any]) -> "MovieSummary":
        return cls(
            id=data.get('id'),
            title=data.get('title') or data.get('original_title') or "",
            release_date=data.get('release_date') or None,
            poster_path=data.get('poster_path') or None,
            overview=data.get('overview') or "",
        )


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------

class SortKey(str, Enum):
    DATE_DESC = "date-desc"
    DATE_ASC = "date-asc"
    TITLE_ASC = "title-asc"
    TITLE_DESC = "title-desc"
    RATING_DESC = "rating-desc"
    RATING_ASC = "rating-asc"
    YEAR_DESC = "year-desc"
    YEAR_ASC = "year-asc"
    RUNTIME_DESC = "runtime-desc"
    RUNTIME_ASC = "runtime-asc"


DEFAULT_SORT = SortKey.DATE_DESC


class FilterState(BaseModel):
    platform: Optional[str] = None
    genre: Optional[str] = None
    year_min: Optional[int] = None
    year_max: Optional[int] = None
    sort: SortKey = DEFAULT_SORT

    @field_validator("platform", "genre")
    @classmethod
    def blank_means_unset(cls, value: Optional[str]) -> Optional[str]:
        # Select boxes send "" for "all"
        return value or None


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

class TotalTime(BaseModel):
    hours: float = 0
    days: float = 0


class YearlyStat(BaseModel):
    year: int
    count: int = 0
    height: int = Field(0, description="Bar height as a percentage of the busiest year")


class PersonStat(BaseModel):
    name: str
    count: int
    image: Optional[str] = None


class CategoryStat(BaseModel):
    name: str
    count: int
    percentage: int


class FilmRecord(BaseModel):
    id: int = 0
    title: str = "No film"
    year: int = 0
    runtime_minutes: int = 0
    director: str = ""
    poster_url: str = PLACEHOLDER_POSTER

    @classmethod
    def from_film(cls, film: Film) -> "FilmRecord":
        return cls(
            id=film.id,
            title=film.title,
            year=film.year,
            runtime_minutes=film.runtime_minutes or 0,
            director=film.director,
            poster_url=film.poster_url,
        )


EMPTY_RECORD = FilmRecord()


class Records(BaseModel):
    shortest: FilmRecord = Field(default_factory=FilmRecord)
    longest: FilmRecord = Field(default_factory=FilmRecord)


class BadgeSummary(BaseModel):
    badge_id: str
    name: str
    icon: str
    unlocked: bool


class DashboardStats(BaseModel):
    films_count: int = 0
    total_runtime_minutes: int = 0
    total_time: TotalTime = Field(default_factory=TotalTime)
    average_runtime_minutes: float = 0
    average_rating: float = 0
    yearly_stats: List[YearlyStat] = Field(default_factory=list)
    top_directors: List[PersonStat] = Field(default_factory=list)
    top_actors: List[PersonStat] = Field(default_factory=list)
    genre_stats: List[CategoryStat] = Field(default_factory=list)
    platform_stats: List[CategoryStat] = Field(default_factory=list)
    top_rated_films: List[Film] = Field(default_factory=list)
    records: Records = Field(default_factory=Records)
    badges: List[BadgeSummary] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------

class BadgeMetric(str, Enum):
    FILM_COUNT = "film_count"
    GENRE_COUNT = "genre_count"
    SAME_DAY_COUNT = "same_day_count"
    AFTER_MIDNIGHT = "after_midnight"


class Badge(BaseModel):
    id: str
    name: str
    description: str
    icon: str
    requirement: int
    category: str
    metric: BadgeMetric
    genre: Optional[str] = None


class BadgeProgress(BaseModel):
    user_id: int
    badge_id: str
    progress: int = 0
    completed: bool = False
    completed_date: Optional[datetime] = None
