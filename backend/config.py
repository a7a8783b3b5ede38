import os
from dotenv import load_dotenv

load_dotenv()

TMDB_API_KEY = os.getenv("TMDB_API_KEY", "")
TMDB_BASE_URL = "https://api.themoviedb.org/3"
TMDB_IMAGE_BASE_URL = "https://image.tmdb.org/t/p"
TMDB_LANGUAGE = os.getenv("TMDB_LANGUAGE", "en-US")

# TMDb client behaviour
TMDB_CACHE_SECONDS = int(os.getenv("TMDB_CACHE_SECONDS", str(24 * 60 * 60)))
TMDB_RETRY_ATTEMPTS = int(os.getenv("TMDB_RETRY_ATTEMPTS", "3"))
TMDB_RETRY_DELAY_SECONDS = float(os.getenv("TMDB_RETRY_DELAY_SECONDS", "1.0"))

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./movie_tracker.db")

# Dashboard / statistics
STATS_TOP_K = int(os.getenv("STATS_TOP_K", "5"))
STATS_YEARLY_WINDOW = int(os.getenv("STATS_YEARLY_WINDOW", "5"))
DASHBOARD_DEBOUNCE_SECONDS = float(os.getenv("DASHBOARD_DEBOUNCE_SECONDS", "0.3"))

WATCHLIST_REMOVE_RETRIES = int(os.getenv("WATCHLIST_REMOVE_RETRIES", "3"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

PLACEHOLDER_POSTER = "https://via.placeholder.com/400x600?text=No+Poster"
PLACEHOLDER_PERSON_IMAGE = "https://via.placeholder.com/200x300?text=No+Image"
