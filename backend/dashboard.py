"""
Dashboard service: keeps the published DashboardStats of each user current.

A burst of CollectionChanged events within the debounce window collapses
into one recomputation of the last collection seen. Every trigger bumps a
per-user generation counter and a computation only publishes if its
generation is still the newest, so a slow, superseded computation can never
overwrite a newer result.
"""
import asyncio
import logging
from collections import defaultdict
from datetime import date
from typing import Callable, Dict, List, Optional, Set, Tuple

from badges import BadgeTracker
from config import DASHBOARD_DEBOUNCE_SECONDS
from events import CollectionChanged, DashboardUpdated, EventBus
from schemas import DashboardStats, Film
from stats_aggregator import collection_fingerprint, compute_stats, empty_stats, enrich_people
from utils import today

logger = logging.getLogger(__name__)


class DashboardService:
    def __init__(
        self,
        bus: EventBus,
        image_lookup: Optional[Callable[[str], str]] = None,
        badge_tracker: Optional[BadgeTracker] = None,
        debounce_seconds: float = DASHBOARD_DEBOUNCE_SECONDS,
        clock: Callable[[], date] = today,
    ):
        self.bus = bus
        self.image_lookup = image_lookup
        self.badge_tracker = badge_tracker
        self.debounce_seconds = debounce_seconds
        self.clock = clock

        self._generation: Dict[int, int] = defaultdict(int)
        self._pending: Dict[int, asyncio.TimerHandle] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._published: Dict[int, DashboardStats] = {}
        # user -> ((date, fingerprint of the collection), enriched stats computed from them)
        self._memo: Dict[int, Tuple[Tuple[date, str], DashboardStats]] = {}

        bus.subscribe(CollectionChanged, self.on_collection_changed)

    def on_collection_changed(self, event: CollectionChanged) -> None:
        self.schedule(event.user_id, event.films)

    def schedule(self, user_id: int, films: List[Film]) -> None:
        """
        Debounced recomputation. Outside a running event loop there is nothing
        to debounce on, so the numeric stats are computed and published now.
        """
        generation = self._next_generation(user_id)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop; computing dashboard for user {user_id} synchronously")
            self._publish(user_id, generation, compute_stats(films, self.clock()))
            return

        pending = self._pending.pop(user_id, None)
        if pending:
            pending.cancel()
        self._pending[user_id] = loop.call_later(self.debounce_seconds, self._start, user_id, generation, list(films))

    async def refresh(self, user_id: int, films: List[Film]) -> DashboardStats:
        """Recompute right away, skipping the debounce. Returns the latest published stats."""
        pending = self._pending.pop(user_id, None)
        if pending:
            pending.cancel()
        generation = self._next_generation(user_id)
        await self._run(user_id, generation, list(films))
        return self.latest(user_id)

    def latest(self, user_id: int) -> DashboardStats:
        return self._published.get(user_id) or empty_stats(self.clock())

    async def wait_idle(self) -> None:
        """Wait until no recomputation is scheduled or running."""
        while self._pending or self._tasks:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(self.debounce_seconds / 2 or 0.001)

    def _next_generation(self, user_id: int) -> int:
        self._generation[user_id] += 1
        return self._generation[user_id]

    def _start(self, user_id: int, generation: int, films: List[Film]) -> None:
        self._pending.pop(user_id, None)
        task = asyncio.get_running_loop().create_task(self._run(user_id, generation, films))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, user_id: int, generation: int, films: List[Film]) -> None:
        # The yearly window depends on the date, so the memo is only valid for the same day
        key = (self.clock(), collection_fingerprint(films))
        memo = self._memo.get(user_id)
        if memo and memo[0] == key:
            logger.debug(f"Collection of user {user_id} unchanged; reusing dashboard stats")
            self._publish(user_id, generation, memo[1])
            return

        stats = compute_stats(films, key[0])
        if self.image_lookup is not None:
            stats = await enrich_people(stats, self.image_lookup)

        if self._publish(user_id, generation, stats):
            self._memo[user_id] = (key, stats)

    def _publish(self, user_id: int, generation: int, stats: DashboardStats) -> bool:
        if generation != self._generation[user_id]:
            logger.debug(
                f"Discarding stale dashboard for user {user_id} "
                f"(generation {generation}, latest {self._generation[user_id]})"
            )
            return False

        if self.badge_tracker is not None:
            stats = stats.model_copy(update={"badges": self.badge_tracker.summary(user_id)})
        self._published[user_id] = stats
        logger.info(f"Published dashboard for user {user_id}: {stats.films_count} film(s)")
        self.bus.publish(DashboardUpdated(user_id=user_id, stats=stats))
        return True
