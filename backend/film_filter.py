"""
Filtering and sorting of a user's collection for display.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from events import CollectionChanged, EventBus
from schemas import Film, FilterState
from utils import title_sort_key

logger = logging.getLogger(__name__)

# Sort field name (first half of a SortKey value) -> key function
SORT_FIELDS: Dict[str, Callable[[Film], Any]] = {
    "date": lambda film: film.watched_date,
    "title": lambda film: title_sort_key(film.title),
    "rating": lambda film: film.rating,
    "year": lambda film: film.year,
    "runtime": lambda film: film.runtime_minutes or 0,
}


def matches(film: Film, state: FilterState) -> bool:
    """True when the film satisfies every active filter. Unset filters match everything."""
    if state.platform and film.platform != state.platform:
        return False
    if state.genre and state.genre not in film.genres:
        return False
    if state.year_min is not None and film.year < state.year_min:
        return False
    if state.year_max is not None and film.year > state.year_max:
        return False
    return True


def apply(films: List[Film], filter_state: Optional[Union[FilterState, Dict[str, Any]]] = None) -> List[Film]:
    """
    Return a new list holding the films that pass the filters, ordered by the
    sort key. The input list is never modified. Ties keep their input order.
    """
    if filter_state is None:
        state = FilterState()
    elif isinstance(filter_state, dict):
        state = FilterState(**filter_state)
    else:
        state = filter_state

    field, direction = state.sort.value.split("-")
    filtered = [film for film in films if matches(film, state)]
    return sorted(filtered, key=SORT_FIELDS[field], reverse=direction == "desc")


class CollectionView:
    """
    Display-ready view of each user's collection.

    Keeps the unfiltered snapshot from the last CollectionChanged and always
    rebuilds the visible list from it, never from a previously filtered list.
    """

    def __init__(self, bus: Optional[EventBus] = None):
        self._films: Dict[int, List[Film]] = {}
        self._filters: Dict[int, FilterState] = {}
        self._results: Dict[int, List[Film]] = {}
        if bus is not None:
            bus.subscribe(CollectionChanged, self.on_collection_changed)

    def on_collection_changed(self, event: CollectionChanged) -> None:
        self.set_films(event.user_id, event.films)

    def set_films(self, user_id: int, films: List[Film]) -> None:
        self._films[user_id] = list(films)
        self._recompute(user_id)

    def filter_state(self, user_id: int) -> FilterState:
        return self._filters.get(user_id) or FilterState()

    def set_filter(self, user_id: int, **changes: Any) -> List[Film]:
        """Change one or more filter fields (or sort) and return the new visible list."""
        state = FilterState(**{**self.filter_state(user_id).model_dump(), **changes})
        self._filters[user_id] = state
        logger.debug(f"Filter for user {user_id} is now {state.model_dump(mode='json')}")
        return self._recompute(user_id)

    def reset_filters(self, user_id: int) -> List[Film]:
        """Clear platform/genre/year filters; the chosen sort is kept."""
        self._filters[user_id] = FilterState(sort=self.filter_state(user_id).sort)
        return self._recompute(user_id)

    def results(self, user_id: int) -> List[Film]:
        return list(self._results.get(user_id, []))

    def available_platforms(self, user_id: int) -> List[str]:
        return sorted({film.platform for film in self._films.get(user_id, []) if film.platform}, key=title_sort_key)

    def available_genres(self, user_id: int) -> List[str]:
        genres = {genre for film in self._films.get(user_id, []) for genre in film.genres}
        return sorted(genres, key=title_sort_key)

    def _recompute(self, user_id: int) -> List[Film]:
        results = apply(self._films.get(user_id, []), self.filter_state(user_id))
        self._results[user_id] = results
        return list(results)
