"""
Shared fixtures: an in-memory store, an event bus, a scripted metadata
provider and a film factory.
"""
import itertools
from datetime import date
from typing import Dict, List

import pytest

from badges import BadgeTracker
from collection_store import CollectionStore
from errors import LookupFailure, StorageFailure
from events import EventBus
from schemas import CrewMember, Film, MovieMetadata, MovieSummary
from storage import InMemoryStore
from tmdb_client import MetadataProvider
from watchlist import WatchlistManager


class FakeProvider(MetadataProvider):
    """Metadata provider answering from a dict; ids in failing_ids raise LookupFailure."""

    def __init__(self):
        self.movies: Dict[int, MovieMetadata] = {}
        self.failing_ids = set()
        self.failing_people = set()
        self.images: Dict[str, str] = {}
        self.lookups: List[int] = []

    def add(self, metadata: MovieMetadata) -> MovieMetadata:
        self.movies[metadata.id] = metadata
        return metadata

    def search_movies(self, query: str) -> List[MovieSummary]:
        return [
            MovieSummary(id=movie.id, title=movie.title, release_date=movie.release_date)
            for movie in self.movies.values()
            if query.lower() in movie.title.lower()
        ]

    def lookup_movie(self, movie_id: int) -> MovieMetadata:
        self.lookups.append(movie_id)
        if movie_id in self.failing_ids or movie_id not in self.movies:
            raise LookupFailure(f"No movie {movie_id}")
        return self.movies[movie_id]

    def get_person_image(self, name: str) -> str:
        if name in self.failing_people:
            raise LookupFailure(f"No image for {name}")
        return self.images.get(name, f"https://images.example/{name.replace(' ', '_')}.jpg")


class FlakyStore(InMemoryStore):
    """In-memory store whose writes to chosen keys fail a given number of times."""

    def __init__(self):
        super().__init__()
        self.failures: Dict[str, int] = {}

    def set(self, key, value):
        if self.failures.get(key, 0) > 0:
            self.failures[key] -= 1
            raise StorageFailure(key, "disk full")
        super().set(key, value)


def build_metadata(movie_id, title, release_date="2010-07-16", runtime=148, genres=("Action",),
                   director="Christopher Nolan", cast=("Leonardo DiCaprio", "Elliot Page")):
    return MovieMetadata(
        id=movie_id,
        title=title,
        overview=f"Overview of {title}",
        release_date=release_date,
        runtime_minutes=runtime,
        poster_path="/poster.jpg",
        genres=list(genres),
        cast=list(cast),
        crew=[CrewMember(name=director, job="Director"), CrewMember(name="Hans Zimmer", job="Original Music Composer")],
    )


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def store():
    return FlakyStore()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def make_metadata():
    return build_metadata


@pytest.fixture
def collection(store, bus):
    return CollectionStore(store, bus)


@pytest.fixture
def badge_tracker(store, bus):
    return BadgeTracker(store, bus)


@pytest.fixture
def watchlist(store, bus, provider, collection):
    return WatchlistManager(store, bus, provider, collection)


@pytest.fixture
def make_film():
    counter = itertools.count(1)

    def _make(**overrides) -> Film:
        n = next(counter)
        data = dict(
            id=n,
            title=f"Film {n}",
            year=2010,
            genres=["Drama"],
            runtime_minutes=120,
            director=f"Director {n}",
            cast=[],
            rating=5,
            watched_date=date(2024, 1, 1),
            platform="Netflix",
        )
        data.update(overrides)
        return Film(**data)

    return _make


@pytest.fixture
def recorder(bus):
    """Collects every event of the given types published on the bus, in order."""
    events = []

    def _record(*event_types):
        for event_type in event_types:
            bus.subscribe(event_type, events.append)
        return events

    return _record
