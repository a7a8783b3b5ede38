"""
Tests for stats_aggregator.py: dashboard numbers, breakdowns, records and portrait enrichment
"""
import asyncio
from datetime import date

import pytest

from config import PLACEHOLDER_PERSON_IMAGE
from schemas import EMPTY_RECORD
from stats_aggregator import (
    calculate_category_stats,
    calculate_top_people,
    collection_fingerprint,
    compute_stats,
    empty_stats,
    enrich_people,
)
from utils import round_half_up

TODAY = date(2024, 6, 1)


@pytest.fixture
def three_films(make_film):
    return [
        make_film(title="Inception", rating=9, runtime_minutes=148, year=2010,
                  watched_date=date(2024, 1, 1), genres=["SciFi"]),
        make_film(title="The Dark Knight", rating=10, runtime_minutes=152, year=2008,
                  watched_date=date(2024, 1, 2), genres=["Action"]),
        make_film(title="Pulp Fiction", rating=8, runtime_minutes=154, year=1994,
                  watched_date=date(2024, 1, 3), genres=["Drama"]),
    ]


class TestComputeStats:

    def test_totals_and_averages(self, three_films):
        stats = compute_stats(three_films, today=TODAY)

        assert stats.films_count == 3
        assert stats.total_runtime_minutes == 454
        assert stats.average_rating == 9.0
        assert stats.average_runtime_minutes == 151.3
        assert stats.total_time.hours == 7.6
        assert stats.total_time.days == 0.32
        assert stats.top_rated_films[0].rating == 10

    def test_shared_director_tops_the_list(self, make_film):
        films = [make_film(director="X"), make_film(director="Y"), make_film(director="X")]
        top = compute_stats(films, today=TODAY).top_directors[0]
        assert (top.name, top.count) == ("X", 2)

    def test_does_not_mutate_input(self, three_films):
        snapshot = [film.model_copy() for film in three_films]
        compute_stats(three_films, today=TODAY)
        assert three_films == snapshot

    def test_missing_runtime_counts_as_zero_total_and_is_left_out_of_average(self, make_film):
        films = [make_film(runtime_minutes=100), make_film(runtime_minutes=None)]
        stats = compute_stats(films, today=TODAY)
        assert stats.total_runtime_minutes == 100
        assert stats.average_runtime_minutes == 100

    def test_top_rated_limited_to_top_k(self, make_film):
        films = [make_film(rating=rating) for rating in (1, 9, 3, 7, 5, 10)]
        stats = compute_stats(films, today=TODAY, top_k=3)
        assert [film.rating for film in stats.top_rated_films] == [10, 9, 7]

    def test_actors_count_each_credit(self, make_film):
        films = [
            make_film(cast=["Al Pacino", "Robert De Niro"]),
            make_film(cast=["Robert De Niro"]),
            make_film(cast=["Val Kilmer"]),
        ]
        actors = compute_stats(films, today=TODAY).top_actors
        assert [(actor.name, actor.count) for actor in actors] == [
            ("Robert De Niro", 2), ("Al Pacino", 1), ("Val Kilmer", 1)
        ]

    def test_records(self, three_films, make_film):
        films = three_films + [make_film(title="Unknown length", runtime_minutes=None)]
        records = compute_stats(films, today=TODAY).records
        assert records.shortest.title == "Inception"
        assert records.shortest.runtime_minutes == 148
        assert records.longest.title == "Pulp Fiction"

    def test_records_without_any_runtime(self, make_film):
        records = compute_stats([make_film(runtime_minutes=None)], today=TODAY).records
        assert records.shortest == EMPTY_RECORD
        assert records.longest == EMPTY_RECORD


class TestEmptyCollection:

    def test_everything_zero(self):
        stats = compute_stats([], today=TODAY)
        assert stats == empty_stats(TODAY)
        assert stats.films_count == 0
        assert stats.average_rating == 0
        assert stats.top_directors == []
        assert stats.genre_stats == []
        assert stats.records.shortest.title == "No film"

    def test_yearly_window_is_filled(self):
        yearly = compute_stats([], today=TODAY).yearly_stats
        assert [entry.year for entry in yearly] == [2024, 2023, 2022, 2021, 2020]
        assert all(entry.count == 0 and entry.height == 0 for entry in yearly)


class TestYearlyStats:

    def test_counts_by_viewing_year_with_relative_height(self, make_film):
        films = [
            make_film(year=1990, watched_date=date(2024, 1, 1)),
            make_film(year=1991, watched_date=date(2024, 2, 1)),
            make_film(year=1992, watched_date=date(2022, 5, 1)),
            make_film(year=1993, watched_date=date(2015, 5, 1)),
        ]
        yearly = compute_stats(films, today=TODAY).yearly_stats
        assert [(entry.year, entry.count, entry.height) for entry in yearly] == [
            (2024, 2, 100), (2023, 0, 0), (2022, 1, 50), (2021, 0, 0), (2020, 0, 0)
        ]

    def test_custom_window(self, three_films):
        yearly = compute_stats(three_films, today=TODAY, window=2).yearly_stats
        assert [entry.year for entry in yearly] == [2024, 2023]


class TestCategoryStats:

    def test_percentages_use_total_label_occurrences(self):
        stats = calculate_category_stats(["Action", "Drama", "Action"])
        assert [(s.name, s.count, s.percentage) for s in stats] == [("Action", 2, 67), ("Drama", 1, 33)]

    def test_multi_genre_films_count_once_per_genre(self, make_film):
        films = [make_film(genres=["Action", "Sci-Fi"]), make_film(genres=["Action"])]
        genres = compute_stats(films, today=TODAY).genre_stats
        assert [(g.name, g.count, g.percentage) for g in genres] == [("Action", 2, 67), ("Sci-Fi", 1, 33)]

    def test_empty_platform_is_ignored(self, make_film):
        films = [make_film(platform="Netflix"), make_film(platform="")]
        platforms = compute_stats(films, today=TODAY).platform_stats
        assert [(p.name, p.percentage) for p in platforms] == [("Netflix", 100)]

    def test_percentage_rounds_half_up(self):
        labels = ["A"] * 1 + ["B"] * 7
        stats = {s.name: s.percentage for s in calculate_category_stats(labels)}
        # 1/8 = 12.5%
        assert stats["A"] == 13


class TestTopPeople:

    def test_ties_keep_first_seen_order(self):
        people = calculate_top_people(["B", "A", "C", "A", "B"], limit=3)
        assert [(p.name, p.count) for p in people] == [("B", 2), ("A", 2), ("C", 1)]

    def test_blank_names_are_ignored(self):
        assert [p.name for p in calculate_top_people(["", "Nolan"])] == ["Nolan"]


class TestRounding:

    @pytest.mark.parametrize("value, digits, expected", [
        (2.5, 0, 3), (0.125, 2, 0.13), (9.05, 1, 9.1), (7.56, 1, 7.6),
    ])
    def test_half_up(self, value, digits, expected):
        assert round_half_up(value, digits) == expected


class TestFingerprint:

    def test_equal_collections_share_fingerprint(self, three_films):
        assert collection_fingerprint(three_films) == collection_fingerprint(list(three_films))

    def test_edit_changes_fingerprint(self, three_films):
        edited = [three_films[0].model_copy(update={"rating": 1})] + three_films[1:]
        assert collection_fingerprint(three_films) != collection_fingerprint(edited)


class TestEnrichPeople:

    def test_attaches_images_and_leaves_input_untouched(self, make_film):
        stats = compute_stats(
            [make_film(director="Christopher Nolan", cast=["Michael Caine"])], today=TODAY
        )
        enriched = asyncio.run(enrich_people(stats, lambda name: f"https://img/{name}.jpg"))

        assert enriched.top_directors[0].image == "https://img/Christopher Nolan.jpg"
        assert enriched.top_actors[0].image == "https://img/Michael Caine.jpg"
        assert stats.top_directors[0].image is None

    def test_failed_lookup_falls_back_to_placeholder(self, make_film):
        def lookup(name):
            if name == "Broken":
                raise RuntimeError("provider down")
            return f"https://img/{name}.jpg"

        stats = compute_stats([make_film(director="Broken", cast=["Fine"])], today=TODAY)
        enriched = asyncio.run(enrich_people(stats, lookup))

        assert enriched.top_directors[0].image == PLACEHOLDER_PERSON_IMAGE
        assert enriched.top_actors[0].image == "https://img/Fine.jpg"

    def test_one_lookup_per_distinct_name(self, make_film):
        calls = []

        def lookup(name):
            calls.append(name)
            return ""

        # Same person directs and acts
        stats = compute_stats([make_film(director="Clint Eastwood", cast=["Clint Eastwood"])], today=TODAY)
        enriched = asyncio.run(enrich_people(stats, lookup))

        assert calls == ["Clint Eastwood"]
        assert enriched.top_actors[0].image == PLACEHOLDER_PERSON_IMAGE

    def test_nothing_to_enrich(self):
        stats = empty_stats(TODAY)
        assert asyncio.run(enrich_people(stats, lambda name: "x")) is stats
