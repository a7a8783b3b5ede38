"""
Tests for main.py: wiring of the services around one event bus
"""
import asyncio
from datetime import datetime

import pytest

from main import MovieTracker, create_app
from storage import InMemoryStore


@pytest.fixture
def tracker(provider):
    return MovieTracker(store=InMemoryStore(), provider=provider, debounce_seconds=0.01)


class TestMovieTracker:

    def test_adding_a_film_updates_every_view(self, tracker, make_film):
        tracker.collection.add(1, make_film(genres=["Horror"], platform="Shudder"))

        assert len(tracker.view.results(1)) == 1
        assert tracker.view.available_platforms(1) == ["Shudder"]
        assert tracker.badges.get_progress(1, "horror_fan").progress == 1
        dashboard = tracker.dashboard.latest(1)
        assert dashboard.films_count == 1
        assert {badge.badge_id for badge in dashboard.badges if badge.unlocked} == {"first_movie"}

    def test_mark_watched_flows_through(self, tracker, provider, make_metadata):
        provider.add(make_metadata(7, "Inception"))

        async def flow():
            await tracker.watchlist.add(1, 7)
            await tracker.watchlist.mark_watched(1, 7, watched_at=datetime(2024, 3, 2, 21, 0))
            await tracker.dashboard.wait_idle()

        asyncio.run(flow())

        assert [film.id for film in tracker.view.results(1)] == [7]
        assert tracker.watchlist.load(1) == []
        assert tracker.dashboard.latest(1).top_directors[0].name == "Christopher Nolan"

    def test_session_restores_persisted_state(self, provider, make_film):
        store = InMemoryStore()
        MovieTracker(store=store, provider=provider).collection.add(1, make_film(title="Heat"))

        restarted = MovieTracker(store=store, provider=provider)
        films = restarted.start_session(1)

        assert [film.title for film in films] == ["Heat"]
        assert [film.title for film in restarted.view.results(1)] == ["Heat"]
        assert restarted.badges.get_progress(1, "first_movie").completed
        assert restarted.dashboard.latest(1).films_count == 1


def test_create_app_with_injected_store(provider):
    app = create_app(store=InMemoryStore(), provider=provider)
    assert isinstance(app, MovieTracker)
    assert app.watchlist.collection is app.collection
