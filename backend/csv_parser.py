import asyncio
import pandas as pd
from typing import Any, Dict, List, Optional, Union
import logging
from io import BytesIO
from collection_store import CollectionStore
from errors import LookupFailure, ValidationError
from schemas import MIN_FILM_YEAR, MovieSummary
from tmdb_client import MetadataProvider
from utils import today
from watchlist import build_film_from_metadata

logger = logging.getLogger(__name__)

ENCODINGS = ['utf-8', 'utf-8-sig', 'latin-1', 'iso-8859-1']
IMPORT_CONCURRENCY = 4


def _map_column(col_str: str) -> Optional[str]:
    lowered = col_str.lower()
    if lowered in ['name', 'title', 'movie', 'film']:
        return 'name'
    if lowered in ['year', 'release_year']:
        return 'year'
    if lowered in ['watched date', 'watched_date', 'watched']:
        return 'watched_date'
    if lowered in ['date', 'logged', 'date logged']:
        return 'date'
    if lowered in ['rating', 'stars']:
        return 'rating'
    if 'letterboxd' in lowered and ('uri' in lowered or 'url' in lowered):
        return 'letterboxd_uri'
    return None


def parse_diary_csv(file_path: Union[str, BytesIO]) -> List[Dict[str, Any]]:
    """
    Parse a Letterboxd diary export (Date, Name, Year, Letterboxd URI, Rating, ..., Watched Date).

    Ratings are converted from Letterboxd's 0-5 stars to the 0-10 scale.
    Rows with no name or an invalid year are skipped.
    Returns list of dicts with: name, year, watched_date (date or None), rating (float or None), letterboxd_uri
    """
    try:
        df = None
        for encoding in ENCODINGS:
            try:
                if isinstance(file_path, BytesIO):
                    file_path.seek(0)
                df = pd.read_csv(file_path, encoding=encoding)
                logger.info(f"Successfully read CSV with encoding: {encoding}")
                break
            except UnicodeDecodeError as e:
                logger.debug(f"Failed to read with encoding {encoding}: {e}")
                continue

        if df is None:
            raise ValueError("Could not read CSV file with any supported encoding")

        column_map = {}
        for col in df.columns:
            mapped = _map_column(str(col).strip())
            if mapped and mapped not in column_map.values():
                column_map[col] = mapped
        df = df.rename(columns=column_map)
        logger.debug(f"Column mapping: {column_map}")

        missing_columns = [col for col in ['name', 'year'] if col not in df.columns]
        if missing_columns:
            error_msg = f"CSV is missing required columns: {missing_columns}. Found: {list(column_map.keys()) or list(df.columns)}"
            logger.error(error_msg)
            raise ValueError(error_msg)

        current_year = today().year
        rows = []
        for idx, row in df.iterrows():
            name = str(row['name']).strip() if pd.notna(row['name']) else ''
            if not name:
                logger.warning(f"Row {idx + 1}: Missing name, skipping")
                continue

            try:
                year = int(row['year'])
                if year < MIN_FILM_YEAR or year > current_year:
                    logger.warning(f"Row {idx + 1}: Invalid year {year}, skipping")
                    continue
            except (ValueError, TypeError):
                logger.warning(f"Row {idx + 1}: Invalid year '{row['year']}', skipping")
                continue

            watched_date = None
            for column in ['watched_date', 'date']:
                if column in df.columns and pd.notna(row.get(column)):
                    parsed = pd.to_datetime(str(row[column]).strip(), errors='coerce')
                    if pd.notna(parsed):
                        watched_date = parsed.date()
                        break
                    logger.warning(f"Row {idx + 1}: Could not parse date '{row[column]}', ignoring")

            rating = None
            if 'rating' in df.columns and pd.notna(row.get('rating')):
                try:
                    rating = min(max(float(row['rating']) * 2, 0), 10)
                except (ValueError, TypeError):
                    logger.warning(f"Row {idx + 1}: Invalid rating '{row['rating']}', ignoring")

            uri = None
            if 'letterboxd_uri' in df.columns and pd.notna(row.get('letterboxd_uri')):
                uri = str(row['letterboxd_uri']).strip() or None

            rows.append({
                'name': name,
                'year': year,
                'watched_date': watched_date,
                'rating': rating,
                'letterboxd_uri': uri,
            })

        logger.info(f"Successfully parsed {len(rows)} diary entries from CSV")
        return rows

    except pd.errors.EmptyDataError:
        raise ValueError("CSV file is empty")
    except pd.errors.ParserError as e:
        raise ValueError(f"Error parsing CSV file: {str(e)}")


def pick_best_match(results: List[MovieSummary], title: str, year: int) -> Optional[MovieSummary]:
    """
    Choose the search result that matches the diary entry.
    Exact year wins; a year off by one is accepted only for an exact title match.
    """
    normalized_title = title.lower().strip()
    best_match = None
    best_score = -1
    for position, movie in enumerate(results):
        if movie.year is None:
            continue
        title_exact_match = movie.title.lower().strip() == normalized_title
        if movie.year == year:
            score = 20
        elif title_exact_match and abs(movie.year - year) == 1:
            score = 10
        else:
            continue
        if title_exact_match:
            score += 100
        # TMDb already orders by relevance
        score += max(0, 10 - position)
        if score > best_score:
            best_score = score
            best_match = movie
    return best_match


async def import_diary_rows(
    user_id: int,
    rows: List[Dict[str, Any]],
    provider: MetadataProvider,
    collection: CollectionStore,
    platform: str = "",
) -> Dict[str, Any]:
    """
    Resolve parsed diary rows against the metadata provider and add them to
    the collection in one batch. Rows that cannot be resolved are reported.

    Returns:
        Dict with: films_imported, films_skipped (duplicates), films_failed, errors
    """
    semaphore = asyncio.Semaphore(IMPORT_CONCURRENCY)

    async def resolve(row: Dict[str, Any]):
        async with semaphore:
            results = await asyncio.to_thread(provider.search_movies, row['name'])
            match = pick_best_match(results, row['name'], row['year'])
            if not match:
                raise LookupFailure(f"No match found for '{row['name']}' ({row['year']})")
            metadata = await asyncio.to_thread(provider.lookup_movie, match.id)
        return build_film_from_metadata(
            metadata,
            row.get('watched_date') or today(),
            platform,
            rating=row.get('rating') or 0,
        )

    results = await asyncio.gather(*(resolve(row) for row in rows), return_exceptions=True)

    films = []
    errors = []
    for row, result in zip(rows, results):
        if isinstance(result, (LookupFailure, ValidationError)):
            logger.warning(f"Could not import '{row['name']}' ({row['year']}): {str(result)}")
            errors.append(f"{row['name']} ({row['year']}): {str(result)}")
        elif isinstance(result, BaseException):
            raise result
        else:
            films.append(result)

    added = collection.add_many(user_id, films)
    return {
        'films_imported': len(added),
        'films_skipped': len(films) - len(added),
        'films_failed': len(errors),
        'errors': errors,
    }
