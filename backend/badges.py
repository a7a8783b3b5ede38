"""
Achievement badges.

Each badge maps a metric of the collection to a requirement. Progress is
recomputed from the live collection on every change, but unlocking is a
one-way latch: once completed, a badge stays completed with its original
completion date even if the films that earned it are removed.
"""
import logging
from collections import Counter
from datetime import datetime
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from database import user_key
from errors import NotFound
from events import BadgeUnlocked, CollectionChanged, EventBus
from schemas import Badge, BadgeMetric, BadgeProgress, BadgeSummary, Film
from storage import KeyValueStore
from utils import now

logger = logging.getLogger(__name__)

BADGES_KEY = "badges"

COLLECTION_BADGES = [
    Badge(id="first_movie", name="First Steps", description="Add your first film",
          icon="🎬", requirement=1, category="collection", metric=BadgeMetric.FILM_COUNT),
    Badge(id="movie_collector_bronze", name="Bronze Collector", description="Add 25 films",
          icon="🥉", requirement=25, category="collection", metric=BadgeMetric.FILM_COUNT),
    Badge(id="movie_collector_silver", name="Silver Collector", description="Add 50 films",
          icon="🥈", requirement=50, category="collection", metric=BadgeMetric.FILM_COUNT),
    Badge(id="movie_collector_gold", name="Gold Collector", description="Add 100 films",
          icon="🥇", requirement=100, category="collection", metric=BadgeMetric.FILM_COUNT),
]

GENRE_BADGES = [
    Badge(id="horror_fan", name="Horror Fan", description="Watch 10 horror films",
          icon="👻", requirement=10, category="genres", metric=BadgeMetric.GENRE_COUNT, genre="Horror"),
    Badge(id="action_hero", name="Action Hero", description="Watch 20 action films",
          icon="💪", requirement=20, category="genres", metric=BadgeMetric.GENRE_COUNT, genre="Action"),
    Badge(id="romantic_soul", name="Romantic Soul", description="Watch 15 romance films",
          icon="❤️", requirement=15, category="genres", metric=BadgeMetric.GENRE_COUNT, genre="Romance"),
]

SPECIAL_BADGES = [
    Badge(id="marathon_master", name="Marathon Master", description="Watch 5 films in one day",
          icon="⚡", requirement=5, category="special", metric=BadgeMetric.SAME_DAY_COUNT),
    Badge(id="night_owl", name="Night Owl", description="Watch a film after midnight",
          icon="🦉", requirement=1, category="special", metric=BadgeMetric.AFTER_MIDNIGHT),
]

BADGES: List[Badge] = COLLECTION_BADGES + GENRE_BADGES + SPECIAL_BADGES


def measure(badge: Badge, films: List[Film]) -> int:
    """Raw value of the badge's metric for a collection."""
    if badge.metric == BadgeMetric.FILM_COUNT:
        return len(films)
    if badge.metric == BadgeMetric.GENRE_COUNT:
        return sum(1 for film in films if badge.genre in film.genres)
    if badge.metric == BadgeMetric.SAME_DAY_COUNT:
        per_day = Counter(film.watched_date for film in films)
        return max(per_day.values(), default=0)
    if badge.metric == BadgeMetric.AFTER_MIDNIGHT:
        return sum(1 for film in films if film.watched_after_midnight())
    return 0


class BadgeTracker:
    def __init__(
        self,
        store: KeyValueStore,
        bus: EventBus,
        catalogue: Optional[List[Badge]] = None,
        clock: Callable[[], datetime] = now,
    ):
        self.store = store
        self.bus = bus
        self.catalogue = list(catalogue or BADGES)
        self.clock = clock
        self._progress: Dict[int, Dict[str, BadgeProgress]] = {}
        bus.subscribe(CollectionChanged, self.on_collection_changed)

    def on_collection_changed(self, event: CollectionChanged) -> None:
        self.check_and_update(event.user_id, event.films)

    def load_progress(self, user_id: int) -> Dict[str, BadgeProgress]:
        """Persisted progress rows by badge id (rows are created lazily, at zero, on first check)."""
        if user_id not in self._progress:
            rows = {}
            for entry in self.store.get(user_key(user_id, BADGES_KEY)) or []:
                try:
                    row = BadgeProgress.model_validate(entry)
                except PydanticValidationError as e:
                    logger.warning(f"Skipping invalid badge progress for user {user_id}: {str(e)}")
                    continue
                rows[row.badge_id] = row
            self._progress[user_id] = rows
        return dict(self._progress[user_id])

    def check_and_update(self, user_id: int, films: List[Film]) -> List[Badge]:
        """
        Recompute every badge against the current collection, persist the table
        and announce badges unlocked by this pass. Returns the newly unlocked badges.
        """
        current = self.load_progress(user_id)
        updated: Dict[str, BadgeProgress] = {}
        newly_unlocked: List[Badge] = []

        for badge in self.catalogue:
            previous = current.get(badge.id) or BadgeProgress(user_id=user_id, badge_id=badge.id)
            progress = min(measure(badge, films), badge.requirement)

            if previous.completed:
                updated[badge.id] = previous.model_copy(update={"progress": progress})
            elif progress >= badge.requirement:
                updated[badge.id] = previous.model_copy(update={
                    "progress": progress,
                    "completed": True,
                    "completed_date": self.clock(),
                })
                newly_unlocked.append(badge)
            else:
                updated[badge.id] = previous.model_copy(update={"progress": progress})

        # Rows for badges no longer in the catalogue are history; keep them
        for badge_id, row in current.items():
            updated.setdefault(badge_id, row)

        self.store.set(user_key(user_id, BADGES_KEY), [row.model_dump(mode="json") for row in updated.values()])
        self._progress[user_id] = updated

        for badge in newly_unlocked:
            logger.info(f"User {user_id} unlocked badge {badge.id}")
            self.bus.publish(BadgeUnlocked(user_id=user_id, badge=badge))

        return newly_unlocked

    def get_progress(self, user_id: int, badge_id: str) -> BadgeProgress:
        if not any(badge.id == badge_id for badge in self.catalogue):
            raise NotFound("Badge", badge_id)
        return self.load_progress(user_id).get(badge_id) or BadgeProgress(user_id=user_id, badge_id=badge_id)

    def summary(self, user_id: int) -> List[BadgeSummary]:
        progress = self.load_progress(user_id)
        return [
            BadgeSummary(
                badge_id=badge.id,
                name=badge.name,
                icon=badge.icon,
                unlocked=bool(progress.get(badge.id) and progress[badge.id].completed),
            )
            for badge in self.catalogue
        ]

    def completed_count(self, user_id: int) -> int:
        return sum(1 for row in self.load_progress(user_id).values() if row.completed)

    def import_progress(self, user_id: int, rows: List[BadgeProgress]) -> None:
        """
        Merge rows from a profile import. Completed rows win over locked ones,
        so importing can unlock badges but never re-lock them.
        """
        current = self.load_progress(user_id)
        for row in rows:
            existing = current.get(row.badge_id)
            if existing and existing.completed:
                continue
            current[row.badge_id] = row.model_copy(update={"user_id": user_id})
        self.store.set(user_key(user_id, BADGES_KEY), [row.model_dump(mode="json") for row in current.values()])
        self._progress[user_id] = current
