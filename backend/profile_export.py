"""
Profile export and import functionality.

Handles exporting a user's profile (collection, watchlist, badge progress)
to JSON/ZIP and importing it back.
"""
import json
import zipfile
import logging
from typing import Dict, List, Any
from io import BytesIO
from pydantic import ValidationError as PydanticValidationError
from badges import BadgeTracker
from collection_store import CollectionStore
from errors import ValidationError
from schemas import BadgeProgress, Film, WatchlistItem
from utils import now
from watchlist import WatchlistManager

logger = logging.getLogger(__name__)

PROFILE_VERSION = "1.0"
PROFILE_FILENAME = "profile.json"


def export_profile_to_json(
    user_id: int,
    collection: CollectionStore,
    watchlist: WatchlistManager,
    badges: BadgeTracker,
) -> Dict[str, Any]:
    """
    Build JSON structure from a user's collection, watchlist and badge progress.

    Args:
        user_id: Owner of the profile
        collection: Collection store to read films from
        watchlist: Watchlist manager to read items from
        badges: Badge tracker to read progress from

    Returns:
        Dict containing profile data ready for JSON serialization
    """
    films = collection.load(user_id)
    items = watchlist.load(user_id)
    progress = list(badges.load_progress(user_id).values())

    profile_data = {
        "version": PROFILE_VERSION,
        "exported_at": now().isoformat(),
        "user_id": user_id,
        "films": [film.model_dump(mode="json") for film in films],
        "watchlist": [item.model_dump(mode="json") for item in items],
        "badges": [row.model_dump(mode="json") for row in progress],
        "counts": {
            "films": len(films),
            "watchlist": len(items),
            "badges_completed": sum(1 for row in progress if row.completed),
        },
    }

    logger.info(f"Exported profile for user {user_id}: {len(films)} films, {len(items)} watchlist items")
    return profile_data


def create_profile_zip(json_data: Dict[str, Any]) -> BytesIO:
    """
    Create a ZIP file containing the profile JSON.
    """
    zip_buffer = BytesIO()

    with zipfile.ZipFile(zip_buffer, 'w', zipfile.ZIP_DEFLATED) as zip_file:
        json_str = json.dumps(json_data, indent=2, ensure_ascii=False)
        zip_file.writestr(PROFILE_FILENAME, json_str.encode('utf-8'))

    zip_buffer.seek(0)
    return zip_buffer


def extract_profile_zip(zip_file: BytesIO) -> Dict[str, Any]:
    """
    Extract and parse JSON from ZIP file.

    Raises:
        ValueError: If ZIP is invalid or JSON is malformed
    """
    try:
        with zipfile.ZipFile(zip_file, 'r') as zip_ref:
            if PROFILE_FILENAME not in zip_ref.namelist():
                raise ValueError(f"ZIP file does not contain {PROFILE_FILENAME}")

            json_content = zip_ref.read(PROFILE_FILENAME)
            return json.loads(json_content.decode('utf-8'))
    except zipfile.BadZipFile:
        raise ValueError("Invalid ZIP file format")
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in profile file: {str(e)}")


def import_profile_from_json(
    user_id: int,
    json_data: Dict[str, Any],
    collection: CollectionStore,
    watchlist: WatchlistManager,
    badges: BadgeTracker,
    replace: bool = True,
) -> Dict[str, Any]:
    """
    Import a profile for user_id.

    With replace=True the existing collection and watchlist are each swapped
    for the imported entries in a single write, so a failed write leaves them
    as they were. Otherwise imported entries are appended.
    Handles errors leniently - invalid entries are skipped and reported.
    Badge progress is merged so that importing never re-locks a badge.

    Returns:
        Dict with import summary: {films_imported, films_failed, watchlist_imported, errors}
    """
    if not isinstance(json_data, dict):
        raise ValueError("Profile data must be a JSON object")
    if "films" not in json_data:
        raise ValueError("Profile data missing required key: films")

    films_data = json_data.get("films", [])
    if not isinstance(films_data, list):
        raise ValueError("Profile data must contain a 'films' array")

    errors: List[str] = []
    films: List[Film] = []
    for index, entry in enumerate(films_data):
        try:
            films.append(Film.model_validate(entry))
        except (ValidationError, PydanticValidationError) as e:
            title = entry.get("title") if isinstance(entry, dict) else None
            errors.append(f"Film #{index} ({title or 'untitled'}): {str(e)}")
            logger.warning(f"Skipping film #{index} during import: {str(e)}")

    items: List[WatchlistItem] = []
    for index, entry in enumerate(json_data.get("watchlist") or []):
        try:
            items.append(WatchlistItem.model_validate(entry))
        except PydanticValidationError as e:
            errors.append(f"Watchlist item #{index}: {str(e)}")
            logger.warning(f"Skipping watchlist item #{index} during import: {str(e)}")

    progress_rows: List[BadgeProgress] = []
    for entry in json_data.get("badges") or []:
        try:
            progress_rows.append(BadgeProgress.model_validate({**entry, "user_id": user_id}))
        except (PydanticValidationError, TypeError) as e:
            errors.append(f"Badge progress: {str(e)}")

    # Badge rows first so the recomputation triggered by the collection write latches on top of them
    if progress_rows:
        badges.import_progress(user_id, progress_rows)
    if replace:
        logger.info(f"Replacing collection and watchlist of user {user_id}")
        added = collection.replace_all(user_id, films)
        watchlist_imported = watchlist.replace_all(user_id, items)
    else:
        added = collection.add_many(user_id, films)
        watchlist_imported = watchlist.import_items(user_id, items)

    films_failed = len(films_data) - len(films)
    duplicates = len(films) - len(added)
    if duplicates:
        errors.append(f"{duplicates} duplicate film(s) skipped")

    logger.info(
        f"Imported profile for user {user_id}: {len(added)} films imported, "
        f"{films_failed} failed, {watchlist_imported} watchlist items"
    )
    return {
        "films_imported": len(added),
        "films_failed": films_failed,
        "watchlist_imported": watchlist_imported,
        "errors": errors,
    }
