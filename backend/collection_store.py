"""
Collection store: the authoritative list of films a user has watched.

Every mutation persists the full collection, then swaps the in-memory copy,
then publishes CollectionChanged. If persisting fails the in-memory copy is
left as it was and the StorageFailure propagates.
"""
import logging
from typing import Any, Dict, List

from pydantic import ValidationError as PydanticValidationError

from database import user_key
from errors import NotFound, ValidationError
from events import CollectionChanged, EventBus
from schemas import EDITABLE_FILM_FIELDS, Film
from storage import KeyValueStore

logger = logging.getLogger(__name__)

COLLECTION_KEY = "collection"


class CollectionStore:
    def __init__(self, store: KeyValueStore, bus: EventBus):
        self.store = store
        self.bus = bus
        self._films: Dict[int, List[Film]] = {}

    def load(self, user_id: int) -> List[Film]:
        """
        Return the user's collection. A user with nothing stored has an empty
        collection; that is not an error.
        """
        if user_id not in self._films:
            raw_films = self.store.get(user_key(user_id, COLLECTION_KEY)) or []
            films = []
            for entry in raw_films:
                try:
                    films.append(Film.model_validate(entry))
                except (ValidationError, PydanticValidationError) as e:
                    logger.warning(f"Skipping invalid stored film for user {user_id}: {str(e)}")
            self._films[user_id] = films
            logger.debug(f"Loaded {len(films)} film(s) for user {user_id}")
        return list(self._films[user_id])

    def get(self, user_id: int, film_id: int) -> Film:
        for film in self.load(user_id):
            if film.id == film_id:
                return film
        raise NotFound("Film", film_id)

    def add(self, user_id: int, film: Film) -> bool:
        """
        Append a film. Returns False, changing nothing, when the same id or the
        same (title, director, year) is already in the collection.
        """
        films = self.load(user_id)
        identity = film.identity_key()
        for existing in films:
            if existing.id == film.id or existing.identity_key() == identity:
                logger.info(f"Film {film.title} ({film.year}) already in collection of user {user_id}")
                return False

        self._commit(user_id, films + [film])
        logger.info(f"Added film {film.id}: {film.title} for user {user_id}")
        return True

    def add_many(self, user_id: int, films: List[Film]) -> List[Film]:
        """
        Add several films with a single write and a single notification.
        Duplicates (against the collection or earlier films in the batch) are
        skipped. Returns the films that were added.
        """
        current = self.load(user_id)
        seen_ids = {film.id for film in current}
        seen_keys = {film.identity_key() for film in current}
        added = []
        for film in films:
            if film.id in seen_ids or film.identity_key() in seen_keys:
                logger.debug(f"Skipping duplicate film {film.title} ({film.year}) for user {user_id}")
                continue
            seen_ids.add(film.id)
            seen_keys.add(film.identity_key())
            added.append(film)

        if added:
            self._commit(user_id, current + added)
        logger.info(f"Added {len(added)} of {len(films)} film(s) for user {user_id}")
        return added

    def update(self, user_id: int, film: Film) -> Film:
        """
        Apply the editable fields of film to the stored entry with the same id.
        Title, year, director and the other metadata fields stay as they were logged.
        """
        films = self.load(user_id)
        index = self._index_of(films, film.id)
        existing = films[index]

        locked_changes = [
            field for field in Film.model_fields
            if field not in EDITABLE_FILM_FIELDS and getattr(existing, field) != getattr(film, field)
        ]
        if locked_changes:
            logger.debug(f"Ignoring changes to locked fields {locked_changes} of film {film.id}")

        updated = existing.model_copy(update={field: getattr(film, field) for field in EDITABLE_FILM_FIELDS})
        films[index] = updated
        self._commit(user_id, films)
        logger.info(f"Updated film {film.id}: {updated.title} for user {user_id}")
        return updated

    def edit(self, user_id: int, film_id: int, **changes: Any) -> Film:
        """
        Change individual editable fields, e.g. edit(1, 27205, rating=9).
        Values are validated exactly as at construction.
        """
        for field in changes:
            if field not in EDITABLE_FILM_FIELDS:
                raise ValidationError(field, "This field cannot be changed once the film is logged")
        existing = self.get(user_id, film_id)
        edited = Film.model_validate({**existing.model_dump(), **changes})
        return self.update(user_id, edited)

    def remove(self, user_id: int, film_id: int) -> None:
        films = self.load(user_id)
        index = self._index_of(films, film_id)
        removed = films.pop(index)
        self._commit(user_id, films)
        logger.info(f"Removed film {film_id}: {removed.title} for user {user_id}")

    def replace_all(self, user_id: int, films: List[Film]) -> List[Film]:
        """
        Swap the whole collection for films in one write. Duplicates within
        films are dropped, first one wins. If the write fails the previous
        collection stays in place. Returns the films now stored.
        """
        seen_ids = set()
        seen_keys = set()
        kept = []
        for film in films:
            if film.id in seen_ids or film.identity_key() in seen_keys:
                logger.debug(f"Skipping duplicate film {film.title} ({film.year}) for user {user_id}")
                continue
            seen_ids.add(film.id)
            seen_keys.add(film.identity_key())
            kept.append(film)

        self._commit(user_id, kept)
        logger.info(f"Replaced collection of user {user_id} with {len(kept)} film(s)")
        return list(kept)

    @staticmethod
    def _index_of(films: List[Film], film_id: int) -> int:
        for index, film in enumerate(films):
            if film.id == film_id:
                return index
        raise NotFound("Film", film_id)

    def _commit(self, user_id: int, films: List[Film]) -> None:
        self.store.set(
            user_key(user_id, COLLECTION_KEY),
            [film.model_dump(mode="json") for film in films]
        )
        self._films[user_id] = films
        self.bus.publish(CollectionChanged(user_id=user_id, films=list(films)))
