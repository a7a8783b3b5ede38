from typing import List, Optional
import logging

from badges import BadgeTracker
from collection_store import CollectionStore
from config import DASHBOARD_DEBOUNCE_SECONDS, LOG_LEVEL, TMDB_API_KEY
from dashboard import DashboardService
from database import init_db
from events import EventBus
from film_filter import CollectionView
from schemas import Film
from storage import KeyValueStore, SqlAlchemyStore
from tmdb_client import MetadataProvider, TMDbClient
from watchlist import WatchlistManager

logging.basicConfig(level=LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


class MovieTracker:
    """
    Composition root: one instance of every service, wired to one event bus.

    Subscription order matters: the badge tracker is created before the
    dashboard so a synchronous dashboard publish already sees fresh badges.
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        provider: Optional[MetadataProvider] = None,
        debounce_seconds: float = DASHBOARD_DEBOUNCE_SECONDS,
    ):
        self.bus = EventBus()
        self.store = store or SqlAlchemyStore()
        self.provider = provider or TMDbClient(TMDB_API_KEY)

        self.collection = CollectionStore(self.store, self.bus)
        self.view = CollectionView(self.bus)
        self.badges = BadgeTracker(self.store, self.bus)
        self.dashboard = DashboardService(
            self.bus,
            image_lookup=self.provider.get_person_image,
            badge_tracker=self.badges,
            debounce_seconds=debounce_seconds,
        )
        self.watchlist = WatchlistManager(self.store, self.bus, self.provider, self.collection)

    def start_session(self, user_id: int) -> List[Film]:
        """
        Load a user's persisted state and seed every derived view from it.
        Badge progress is reloaded, not rebuilt, so earned badges survive a pruned collection.
        """
        films = self.collection.load(user_id)
        self.view.set_films(user_id, films)
        self.badges.load_progress(user_id)
        self.watchlist.load(user_id)
        self.dashboard.schedule(user_id, films)
        logger.info(f"Session started for user {user_id} with {len(films)} film(s)")
        return films


def create_app(store: Optional[KeyValueStore] = None, provider: Optional[MetadataProvider] = None) -> MovieTracker:
    if store is None:
        init_db()
        logger.info("Database initialized")
    return MovieTracker(store=store, provider=provider)
