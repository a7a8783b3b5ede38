"""
Error taxonomy for the movie tracker core.

Every error raised on purpose by the core derives from MovieTrackerError so
that a presentation layer can catch the whole family in one place.
"""
from typing import Any, Optional


class MovieTrackerError(Exception):
    """Base class for all movie tracker errors."""


class NotFound(MovieTrackerError):
    """An update, removal or lookup referenced an id that does not exist."""

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class ValidationError(MovieTrackerError):
    """
    A Film (or other entity) was built with an invalid value.

    Raised from pydantic field validators; since it is not a ValueError,
    pydantic lets it propagate unchanged instead of wrapping it.
    """

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class LookupFailure(MovieTrackerError):
    """The metadata provider (or image lookup) could not produce a result."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class StorageFailure(MovieTrackerError):
    """Reading from or writing to the persistent store failed."""

    def __init__(self, key: str, message: str):
        self.key = key
        super().__init__(f"Storage failure for '{key}': {message}")
