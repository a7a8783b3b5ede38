"""
Watchlist: films the user intends to watch, ordered by priority.

Marking an item as watched promotes it into the collection in two steps:
the film is added to the collection first, then the item is removed from the
watchlist. The add is what counts; if the removal keeps failing it is logged
and the item stays behind, but the film is never added twice.
"""
import asyncio
import logging
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from collection_store import CollectionStore
from config import WATCHLIST_REMOVE_RETRIES
from database import user_key
from errors import LookupFailure, NotFound, StorageFailure
from events import EventBus, WatchlistChanged
from schemas import Film, MovieMetadata, PRIORITY_ORDER, Priority, WatchlistItem
from storage import KeyValueStore
from tmdb_client import MetadataProvider
from utils import now

logger = logging.getLogger(__name__)

WATCHLIST_KEY = "watchlist"
CAST_LIMIT = 5


def build_film_from_metadata(
    metadata: MovieMetadata,
    watched_at: Union[datetime, date],
    platform: str = "",
    rating: float = 0,
    fallback: Optional[WatchlistItem] = None,
) -> Film:
    """
    Turn provider metadata into a Film. The rating starts at 0 until the user
    rates the film. A plain date leaves the viewing time unknown.
    Raises LookupFailure when no release year is known at all.
    """
    year = metadata.year or (fallback.year if fallback else None)
    if not year:
        raise LookupFailure(f"No release year known for movie {metadata.id}")

    if isinstance(watched_at, datetime):
        watched_date, watched_time = watched_at.date(), watched_at.time().replace(microsecond=0)
    else:
        watched_date, watched_time = watched_at, None

    directors = [person.name for person in metadata.crew if person.job == 'Director']
    return Film(
        id=metadata.id,
        title=metadata.title or (fallback.title if fallback else ""),
        year=year,
        genres=metadata.genres,
        runtime_minutes=metadata.runtime_minutes,
        director=", ".join(directors),
        cast=metadata.cast[:CAST_LIMIT],
        synopsis=metadata.overview,
        rating=rating,
        watched_date=watched_date,
        watched_time=watched_time,
        platform=platform,
        poster_url=metadata.poster_url(),
    )


class WatchlistManager:
    def __init__(
        self,
        store: KeyValueStore,
        bus: EventBus,
        provider: MetadataProvider,
        collection: CollectionStore,
        remove_retries: int = WATCHLIST_REMOVE_RETRIES,
        clock: Callable[[], datetime] = now,
    ):
        self.store = store
        self.bus = bus
        self.provider = provider
        self.collection = collection
        self.remove_retries = max(1, remove_retries)
        self.clock = clock
        self._items: Dict[int, List[WatchlistItem]] = {}

    def load(self, user_id: int) -> List[WatchlistItem]:
        """Items in insertion order. Nothing stored means an empty watchlist."""
        if user_id not in self._items:
            items = []
            for entry in self.store.get(user_key(user_id, WATCHLIST_KEY)) or []:
                try:
                    items.append(WatchlistItem.model_validate(entry))
                except PydanticValidationError as e:
                    logger.warning(f"Skipping invalid watchlist item for user {user_id}: {str(e)}")
            self._items[user_id] = items
        return list(self._items[user_id])

    def items(self, user_id: int) -> List[WatchlistItem]:
        """Display order: high before medium before low, newest first within a priority."""
        by_date = sorted(self.load(user_id), key=lambda item: item.added_date, reverse=True)
        return sorted(by_date, key=lambda item: PRIORITY_ORDER[item.priority], reverse=True)

    def contains(self, user_id: int, movie_id: int) -> bool:
        return any(item.id == movie_id for item in self.load(user_id))

    def get(self, user_id: int, movie_id: int) -> WatchlistItem:
        for item in self.load(user_id):
            if item.id == movie_id:
                return item
        raise NotFound("Watchlist item", movie_id)

    async def add(
        self,
        user_id: int,
        movie_id: int,
        priority: Union[Priority, str] = Priority.MEDIUM,
        notes: Optional[str] = None,
    ) -> bool:
        """
        Look the movie up and add it. Returns False without doing anything if it
        is already on the watchlist. Lookup failures propagate.
        """
        priority = Priority(priority)
        if self.contains(user_id, movie_id):
            logger.info(f"Movie {movie_id} already on watchlist of user {user_id}")
            return False

        metadata = await asyncio.to_thread(self.provider.lookup_movie, movie_id)

        # Another add may have completed while the lookup was in flight
        if self.contains(user_id, movie_id):
            logger.info(f"Movie {movie_id} was added to watchlist of user {user_id} concurrently")
            return False

        item = WatchlistItem(
            id=movie_id,
            title=metadata.title,
            poster_path=metadata.poster_path,
            year=metadata.year,
            director=metadata.director or "Unknown",
            added_date=self.clock(),
            priority=priority,
            notes=notes.strip() if notes and notes.strip() else None,
        )
        self._commit(user_id, self.load(user_id) + [item])
        logger.info(f"Added movie {movie_id}: {item.title} to watchlist of user {user_id}")
        return True

    def remove(self, user_id: int, movie_id: int) -> None:
        items = self.load(user_id)
        remaining = [item for item in items if item.id != movie_id]
        if len(remaining) == len(items):
            raise NotFound("Watchlist item", movie_id)
        self._commit(user_id, remaining)
        logger.info(f"Removed movie {movie_id} from watchlist of user {user_id}")

    def set_priority(self, user_id: int, movie_id: int, priority: Union[Priority, str]) -> WatchlistItem:
        return self._replace(user_id, movie_id, priority=Priority(priority))

    def set_notes(self, user_id: int, movie_id: int, notes: Optional[str]) -> WatchlistItem:
        return self._replace(user_id, movie_id, notes=notes.strip() if notes and notes.strip() else None)

    def replace_all(self, user_id: int, items: List[WatchlistItem]) -> int:
        """Swap the whole watchlist for items in one write, keeping the first of each id."""
        known = set()
        kept = []
        for item in items:
            if item.id not in known:
                known.add(item.id)
                kept.append(item)
        self._commit(user_id, kept)
        return len(kept)

    def import_items(self, user_id: int, items: List[WatchlistItem]) -> int:
        """Append items whose id is not on the watchlist yet. Returns how many were added."""
        current = self.load(user_id)
        known = {item.id for item in current}
        new_items = []
        for item in items:
            if item.id not in known:
                known.add(item.id)
                new_items.append(item)
        if new_items:
            self._commit(user_id, current + new_items)
        return len(new_items)

    async def mark_watched(
        self,
        user_id: int,
        movie_id: int,
        platform: str = "",
        watched_at: Optional[datetime] = None,
    ) -> Film:
        """
        Promote a watchlist item into the collection.

        Raises NotFound if the item is not on the watchlist and lets a
        LookupFailure propagate; in both cases the watchlist is untouched.
        """
        item = self.get(user_id, movie_id)
        metadata = await asyncio.to_thread(self.provider.lookup_movie, movie_id)
        film = build_film_from_metadata(metadata, watched_at or self.clock(), platform, fallback=item)

        if not self.collection.add(user_id, film):
            logger.info(f"Movie {movie_id} already in collection of user {user_id}; only clearing watchlist")

        self._remove_with_retry(user_id, movie_id)
        return film

    def _remove_with_retry(self, user_id: int, movie_id: int) -> bool:
        for attempt in range(1, self.remove_retries + 1):
            try:
                self.remove(user_id, movie_id)
                return True
            except NotFound:
                return True
            except StorageFailure as e:
                logger.warning(
                    f"Could not remove movie {movie_id} from watchlist of user {user_id} "
                    f"(attempt {attempt}/{self.remove_retries}): {str(e)}"
                )
        logger.error(f"Movie {movie_id} is in the collection but still on the watchlist of user {user_id}")
        return False

    def _replace(self, user_id: int, movie_id: int, **changes) -> WatchlistItem:
        items = self.load(user_id)
        for index, item in enumerate(items):
            if item.id == movie_id:
                items[index] = item.model_copy(update=changes)
                self._commit(user_id, items)
                logger.info(f"Updated watchlist item {movie_id} of user {user_id}: {changes}")
                return items[index]
        raise NotFound("Watchlist item", movie_id)

    def _commit(self, user_id: int, items: List[WatchlistItem]) -> None:
        self.store.set(user_key(user_id, WATCHLIST_KEY), [item.model_dump(mode="json") for item in items])
        self._items[user_id] = items
        self.bus.publish(WatchlistChanged(user_id=user_id, items=list(items)))
