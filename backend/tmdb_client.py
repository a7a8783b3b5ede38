import requests
import logging
import time
from typing import Any, Dict, List, Optional, Tuple
from config import (
    TMDB_BASE_URL,
    TMDB_IMAGE_BASE_URL,
    TMDB_LANGUAGE,
    TMDB_CACHE_SECONDS,
    TMDB_RETRY_ATTEMPTS,
    TMDB_RETRY_DELAY_SECONDS,
    PLACEHOLDER_PERSON_IMAGE,
)
from errors import LookupFailure
from schemas import MovieMetadata, MovieSummary

logger = logging.getLogger(__name__)

SUGGESTION_MIN_CHARS = 2
SUGGESTION_LIMIT = 5


class MetadataProvider:
    """
    What the core needs from a movie database. TMDbClient is the real one;
    tests substitute their own.
    """

    def search_movies(self, query: str) -> List[MovieSummary]:
        raise NotImplementedError

    def lookup_movie(self, movie_id: int) -> MovieMetadata:
        raise NotImplementedError

    def get_person_image(self, name: str) -> str:
        raise NotImplementedError


class TMDbClient(MetadataProvider):
    def __init__(
        self,
        api_key: str,
        session: Optional[requests.Session] = None,
        cache_seconds: int = TMDB_CACHE_SECONDS,
        retry_attempts: int = TMDB_RETRY_ATTEMPTS,
        retry_delay: float = TMDB_RETRY_DELAY_SECONDS,
    ):
        self.api_key = api_key
        self.base_url = TMDB_BASE_URL
        self.session = session or requests.Session()
        self.cache_seconds = cache_seconds
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay
        # cache key -> (expires_at, data)
        self._cache: Dict[str, Tuple[float, Any]] = {}

    @staticmethod
    def _cache_key(endpoint: str, params: Dict[str, Any]) -> str:
        sorted_params = '&'.join(f"{key}={params[key]}" for key in sorted(params))
        return f"{endpoint}?{sorted_params}"

    def _request(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict:
        """
        GET an endpoint with caching and retries.
        Rate limiting (429), server errors and transport errors are retried with a
        linearly growing delay; other HTTP errors fail immediately.
        Raises LookupFailure when no data can be produced.
        """
        if not self.api_key:
            logger.warning("TMDb API key not configured")
            raise LookupFailure("TMDb API key not configured")

        params = dict(params or {})
        cache_key = self._cache_key(endpoint, params)
        cached = self._cache.get(cache_key)
        if cached and cached[0] > time.monotonic():
            logger.debug(f"Cache hit for {cache_key}")
            return cached[1]

        request_params = {'api_key': self.api_key, 'language': TMDB_LANGUAGE, **params}
        last_error = None
        for attempt in range(1, self.retry_attempts + 1):
            try:
                response = self.session.get(
                    f"{self.base_url}{endpoint}",
                    params=request_params,
                    timeout=10
                )
                if response.status_code == 429 or response.status_code >= 500:
                    last_error = LookupFailure(
                        f"TMDb returned {response.status_code} for {endpoint}",
                        status_code=response.status_code
                    )
                    logger.warning(f"TMDb {response.status_code} on {endpoint} (attempt {attempt}/{self.retry_attempts})")
                elif response.status_code >= 400:
                    logger.error(f"TMDb returned {response.status_code} for {endpoint}")
                    raise LookupFailure(
                        f"TMDb returned {response.status_code} for {endpoint}",
                        status_code=response.status_code
                    )
                else:
                    data = response.json()
                    self.clear_expired_cache()
                    self._cache[cache_key] = (time.monotonic() + self.cache_seconds, data)
                    return data
            except requests.exceptions.RequestException as e:
                last_error = LookupFailure(f"Error requesting {endpoint}: {str(e)}")
                logger.warning(f"Error requesting TMDb {endpoint} (attempt {attempt}/{self.retry_attempts}): {str(e)}")

            if attempt < self.retry_attempts:
                time.sleep(self.retry_delay * attempt)

        logger.error(f"Giving up on TMDb {endpoint} after {self.retry_attempts} attempt(s)")
        raise last_error

    def search_movies(self, query: str) -> List[MovieSummary]:
        """Search for movies by title. Returns summaries in TMDb relevance order."""
        data = self._request('/search/movie', {'query': query})
        results = data.get('results', [])
        if not results:
            logger.debug(f"No results found for '{query}'")
        return [MovieSummary.from_tmdb(movie) for movie in results if movie.get('id')]

    def lookup_movie(self, movie_id: int) -> MovieMetadata:
        """Get details (including credits) for a movie by TMDb ID."""
        data = self._request(f'/movie/{movie_id}', {'append_to_response': 'credits'})
        if not data.get('id'):
            raise LookupFailure(f"TMDb returned no movie for ID {movie_id}")
        return MovieMetadata.from_tmdb(data)

    def _search_person(self, name: str) -> List[Dict]:
        data = self._request('/search/person', {'query': name})
        return data.get('results', [])

    def get_person_image(self, name: str) -> str:
        """
        Portrait URL for the best matching person, or the placeholder when TMDb
        knows the person but has no picture. Lookup errors propagate.
        """
        results = self._search_person(name)
        if not results:
            return PLACEHOLDER_PERSON_IMAGE
        return self.get_image_url(results[0].get('profile_path'), 'w200', PLACEHOLDER_PERSON_IMAGE)

    @staticmethod
    def get_image_url(path: Optional[str], size: str = 'w500', placeholder: str = PLACEHOLDER_PERSON_IMAGE) -> str:
        if not path:
            return placeholder
        return f"{TMDB_IMAGE_BASE_URL}/{size}{path}"

    def clear_cache(self):
        self._cache.clear()

    def clear_expired_cache(self) -> int:
        now = time.monotonic()
        expired = [key for key, (expires_at, _) in self._cache.items() if expires_at <= now]
        for key in expired:
            del self._cache[key]
        return len(expired)


def suggest_movies(provider: MetadataProvider, query: str) -> List[MovieSummary]:
    """
    Autocomplete helper: nothing for very short queries, otherwise the first few matches.
    """
    query = (query or '').strip()
    if len(query) < SUGGESTION_MIN_CHARS:
        return []
    return provider.search_movies(query)[:SUGGESTION_LIMIT]
