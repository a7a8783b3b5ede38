"""
Tests for collection_store.py: add/update/remove, duplicates, persistence, notifications
"""
from datetime import date

import pytest
from pydantic import ValidationError as PydanticValidationError

from collection_store import CollectionStore
from database import user_key
from errors import NotFound, StorageFailure, ValidationError
from events import CollectionChanged


class TestLoad:

    def test_unknown_user_has_empty_collection(self, collection):
        assert collection.load(42) == []

    def test_reloads_persisted_films(self, store, bus, collection, make_film):
        collection.add(1, make_film(title="Heat", year=1995))
        fresh = CollectionStore(store, bus)
        assert [film.title for film in fresh.load(1)] == ["Heat"]

    def test_invalid_stored_entries_are_skipped(self, store, bus):
        store.set(user_key(1, "collection"), [
            {"id": 1, "title": "Good", "year": 2000},
            {"id": 2, "title": "", "year": 2000},
        ])
        assert [film.title for film in CollectionStore(store, bus).load(1)] == ["Good"]

    def test_users_are_isolated(self, collection, make_film):
        collection.add(1, make_film())
        assert collection.load(2) == []

    def test_loaded_films_cannot_be_changed_in_place(self, collection, make_film):
        film = make_film(rating=5)
        collection.add(1, film)

        with pytest.raises(PydanticValidationError):
            collection.load(1)[0].rating = 42

        assert collection.get(1, film.id).rating == 5


class TestAdd:

    def test_add_returns_true_and_persists(self, store, collection, make_film):
        film = make_film()
        assert collection.add(1, film) is True
        assert store.get(user_key(1, "collection"))[0]["id"] == film.id

    def test_duplicate_title_director_year_is_rejected(self, collection, make_film):
        """Scenario: adding the same logical film twice leaves the collection unchanged"""
        collection.add(1, make_film(title="Inception", director="Christopher Nolan", year=2010))
        duplicate = make_film(title="inception", director="CHRISTOPHER NOLAN", year=2010)

        assert collection.add(1, duplicate) is False
        assert len(collection.load(1)) == 1

    def test_same_title_different_year_is_not_duplicate(self, collection, make_film):
        collection.add(1, make_film(title="Dune", director="X", year=1984))
        assert collection.add(1, make_film(title="Dune", director="X", year=2021)) is True

    def test_duplicate_id_is_rejected(self, collection, make_film):
        collection.add(1, make_film(id=7, title="A"))
        assert collection.add(1, make_film(id=7, title="B")) is False

    def test_duplicate_does_not_notify(self, collection, make_film, recorder):
        collection.add(1, make_film(title="A", director="D", year=2000))
        events = recorder(CollectionChanged)
        collection.add(1, make_film(title="A", director="D", year=2000))
        assert events == []

    def test_notifies_with_full_collection(self, collection, make_film, recorder):
        events = recorder(CollectionChanged)
        first, second = make_film(), make_film()
        collection.add(1, first)
        collection.add(1, second)
        assert [len(event.films) for event in events] == [1, 2]
        assert events[-1].user_id == 1

    def test_storage_failure_leaves_state_and_skips_notification(self, store, collection, make_film, recorder):
        collection.add(1, make_film(title="Kept"))
        events = recorder(CollectionChanged)
        store.failures[user_key(1, "collection")] = 1

        with pytest.raises(StorageFailure):
            collection.add(1, make_film(title="Lost"))

        assert [film.title for film in collection.load(1)] == ["Kept"]
        assert events == []

    def test_add_many_skips_duplicates_and_notifies_once(self, collection, make_film, recorder):
        collection.add(1, make_film(title="A", director="D", year=2000))
        events = recorder(CollectionChanged)
        added = collection.add_many(1, [
            make_film(title="a", director="d", year=2000),
            make_film(title="B", director="D", year=2000),
            make_film(title="B", director="D", year=2000),
        ])
        assert [film.title for film in added] == ["B"]
        assert len(events) == 1
        assert len(collection.load(1)) == 2


class TestUpdate:

    def test_update_applies_editable_fields(self, collection, make_film):
        film = make_film(rating=5, platform="Netflix")
        collection.add(1, film)

        edited = film.model_copy(update={"rating": 9.5, "platform": "Cinema", "watched_date": date(2024, 2, 2)})
        updated = collection.update(1, edited)

        assert updated.rating == 9.5
        assert collection.get(1, film.id).platform == "Cinema"
        assert collection.get(1, film.id).watched_date == date(2024, 2, 2)

    def test_update_keeps_locked_fields(self, collection, make_film):
        film = make_film(title="Original", year=2001, director="Someone")
        collection.add(1, film)

        collection.update(1, film.model_copy(update={"title": "Renamed", "year": 1999, "rating": 7}))

        stored = collection.get(1, film.id)
        assert (stored.title, stored.year, stored.director, stored.rating) == ("Original", 2001, "Someone", 7)

    def test_update_missing_id_raises_not_found(self, collection, make_film):
        with pytest.raises(NotFound):
            collection.update(1, make_film())

    def test_update_notifies(self, collection, make_film, recorder):
        film = make_film()
        collection.add(1, film)
        events = recorder(CollectionChanged)
        collection.update(1, film.model_copy(update={"rating": 8}))
        assert events[0].films[0].rating == 8

    def test_edit_validates_values(self, collection, make_film):
        film = make_film()
        collection.add(1, film)
        with pytest.raises(ValidationError):
            collection.edit(1, film.id, rating=12)
        assert collection.get(1, film.id).rating == film.rating

    def test_edit_rejects_locked_fields(self, collection, make_film):
        film = make_film()
        collection.add(1, film)
        with pytest.raises(ValidationError) as exc_info:
            collection.edit(1, film.id, title="Other")
        assert exc_info.value.field == "title"

    def test_edit_single_field(self, collection, make_film):
        film = make_film(rating=3)
        collection.add(1, film)
        assert collection.edit(1, film.id, rating=6).rating == 6


class TestRemove:

    def test_remove(self, collection, make_film, recorder):
        keep, drop = make_film(), make_film()
        collection.add(1, keep)
        collection.add(1, drop)
        events = recorder(CollectionChanged)

        collection.remove(1, drop.id)

        assert [film.id for film in collection.load(1)] == [keep.id]
        assert [film.id for film in events[0].films] == [keep.id]

    def test_remove_missing_raises_not_found(self, collection):
        with pytest.raises(NotFound) as exc_info:
            collection.remove(1, 999)
        assert exc_info.value.entity_id == 999

    def test_get_missing_raises_not_found(self, collection):
        with pytest.raises(NotFound):
            collection.get(1, 5)


class TestReplaceAll:

    def test_swaps_collection_in_one_write(self, collection, make_film, recorder):
        collection.add(1, make_film(title="Old"))
        events = recorder(CollectionChanged)

        kept = collection.replace_all(1, [make_film(title="New")])

        assert [film.title for film in kept] == ["New"]
        assert [film.title for film in collection.load(1)] == ["New"]
        assert len(events) == 1

    def test_duplicates_in_batch_are_dropped(self, collection, make_film):
        first = make_film(title="Heat", director="Michael Mann", year=1995)
        same_id = make_film(id=first.id, title="Heat (copy)")
        same_identity = make_film(title="heat", director="michael mann", year=1995)

        kept = collection.replace_all(1, [first, same_id, same_identity])

        assert [film.title for film in kept] == ["Heat"]

    def test_failed_write_keeps_previous_collection(self, store, collection, make_film):
        collection.add(1, make_film(title="Keep me"))
        store.failures[user_key(1, "collection")] = 1

        with pytest.raises(StorageFailure):
            collection.replace_all(1, [make_film(title="New")])

        assert [film.title for film in collection.load(1)] == ["Keep me"]


class TestSubscriberIsolation:

    def test_failing_subscriber_does_not_abort_mutation(self, bus, collection, make_film):
        def broken(event):
            raise RuntimeError("boom")

        seen = []
        bus.subscribe(CollectionChanged, broken)
        bus.subscribe(CollectionChanged, seen.append)

        assert collection.add(1, make_film()) is True
        assert len(seen) == 1

    def test_unsubscribe(self, bus, collection, make_film):
        seen = []
        unsubscribe = bus.subscribe(CollectionChanged, seen.append)
        unsubscribe()
        collection.add(1, make_film())
        assert seen == []
