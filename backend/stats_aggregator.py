"""
Dashboard statistics.

compute_stats() is pure and synchronous: it aggregates whatever films it is
given (the full collection or a filtered subset). enrich_people() is the
asynchronous follow-up that attaches portraits to the top directors and
actors.
"""
import asyncio
import hashlib
import json
import logging
from collections import Counter
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional

from config import PLACEHOLDER_PERSON_IMAGE, STATS_TOP_K, STATS_YEARLY_WINDOW
from schemas import (
    CategoryStat,
    DashboardStats,
    EMPTY_RECORD,
    Film,
    FilmRecord,
    PersonStat,
    Records,
    TotalTime,
    YearlyStat,
)
from utils import round_half_up, today as current_date

logger = logging.getLogger(__name__)


def window_years(today: date, window: int = STATS_YEARLY_WINDOW) -> List[int]:
    """The trailing window of years, most recent first, current year included."""
    return [today.year - offset for offset in range(window)]


def empty_stats(today: Optional[date] = None, window: int = STATS_YEARLY_WINDOW) -> DashboardStats:
    """
    Stats for an empty collection: zero everywhere, the yearly window filled
    with zero counts, both records set to EMPTY_RECORD.
    """
    today = today or current_date()
    return DashboardStats(
        yearly_stats=[YearlyStat(year=year, count=0, height=0) for year in window_years(today, window)],
        records=Records(shortest=EMPTY_RECORD, longest=EMPTY_RECORD),
    )


def compute_stats(
    films: List[Film],
    today: Optional[date] = None,
    top_k: int = STATS_TOP_K,
    window: int = STATS_YEARLY_WINDOW,
) -> DashboardStats:
    today = today or current_date()
    if not films:
        return empty_stats(today, window)

    films_count = len(films)
    total_runtime = sum(film.runtime_minutes or 0 for film in films)
    known_runtimes = [film.runtime_minutes for film in films if film.runtime_minutes]
    total_rating = sum(film.rating or 0 for film in films)

    return DashboardStats(
        films_count=films_count,
        total_runtime_minutes=total_runtime,
        total_time=TotalTime(
            hours=round_half_up(total_runtime / 60, 1),
            days=round_half_up(total_runtime / (60 * 24), 2),
        ),
        average_runtime_minutes=(
            round_half_up(sum(known_runtimes) / len(known_runtimes), 1) if known_runtimes else 0
        ),
        average_rating=round_half_up(total_rating / films_count, 1),
        yearly_stats=calculate_yearly_stats(films, today, window),
        top_directors=calculate_top_people((film.director for film in films), top_k),
        top_actors=calculate_top_people((actor for film in films for actor in film.cast), top_k),
        genre_stats=calculate_category_stats(genre for film in films for genre in film.genres),
        platform_stats=calculate_category_stats(film.platform for film in films),
        top_rated_films=calculate_top_rated_films(films, top_k),
        records=calculate_records(films),
    )


def calculate_yearly_stats(films: List[Film], today: date, window: int = STATS_YEARLY_WINDOW) -> List[YearlyStat]:
    """Films per viewing year (not release year) over the trailing window."""
    year_counts: Dict[int, int] = {year: 0 for year in window_years(today, window)}
    for film in films:
        viewing_year = film.watched_date.year
        if viewing_year in year_counts:
            year_counts[viewing_year] += 1

    max_count = max(year_counts.values())
    return [
        YearlyStat(
            year=year,
            count=count,
            height=int(round_half_up(count / max_count * 100)) if max_count > 0 else 0,
        )
        for year, count in year_counts.items()
    ]


def calculate_top_people(names: Iterable[str], limit: int = STATS_TOP_K) -> List[PersonStat]:
    """
    Count every credit (an actor in N films counts N times). Equal counts keep
    the order in which the names were first seen.
    """
    counts = Counter(name for name in names if name)
    return [PersonStat(name=name, count=count) for name, count in counts.most_common(limit)]


def calculate_category_stats(labels: Iterable[str]) -> List[CategoryStat]:
    """
    Breakdown of category labels. A film with three genres adds one to each of
    them and three to the denominator.
    """
    counts = Counter(label for label in labels if label)
    total = sum(counts.values())
    return [
        CategoryStat(name=name, count=count, percentage=int(round_half_up(count / total * 100)))
        for name, count in counts.most_common()
    ]


def calculate_top_rated_films(films: List[Film], limit: int = STATS_TOP_K) -> List[Film]:
    return sorted(films, key=lambda film: film.rating or 0, reverse=True)[:limit]


def calculate_records(films: List[Film]) -> Records:
    valid_films = [film for film in films if film.runtime_minutes and film.runtime_minutes > 0]
    if not valid_films:
        return Records(shortest=EMPTY_RECORD, longest=EMPTY_RECORD)

    return Records(
        shortest=FilmRecord.from_film(min(valid_films, key=lambda film: film.runtime_minutes)),
        longest=FilmRecord.from_film(max(valid_films, key=lambda film: film.runtime_minutes)),
    )


def collection_fingerprint(films: List[Film]) -> str:
    """Stable digest of a collection, used to skip recomputing identical input."""
    payload = json.dumps([film.model_dump(mode="json") for film in films], sort_keys=True)
    return hashlib.sha256(payload.encode('utf-8')).hexdigest()


async def _fetch_person_image(image_lookup: Callable[[str], str], name: str) -> str:
    try:
        image = await asyncio.to_thread(image_lookup, name)
    except Exception as e:
        logger.warning(f"Could not fetch image for {name}: {str(e)}")
        return PLACEHOLDER_PERSON_IMAGE
    return image or PLACEHOLDER_PERSON_IMAGE


async def enrich_people(stats: DashboardStats, image_lookup: Callable[[str], str]) -> DashboardStats:
    """
    Attach a portrait to each top director and actor. Lookups run concurrently
    (one per distinct name) and are all joined before the new stats are returned.
    The input stats object is not modified.
    """
    names = list(dict.fromkeys(person.name for person in stats.top_directors + stats.top_actors))
    if not names:
        return stats

    images = await asyncio.gather(*(_fetch_person_image(image_lookup, name) for name in names))
    image_by_name = dict(zip(names, images))
    logger.debug(f"Fetched {len(image_by_name)} person image(s)")

    return stats.model_copy(update={
        "top_directors": [
            person.model_copy(update={"image": image_by_name[person.name]}) for person in stats.top_directors
        ],
        "top_actors": [
            person.model_copy(update={"image": image_by_name[person.name]}) for person in stats.top_actors
        ],
    })
