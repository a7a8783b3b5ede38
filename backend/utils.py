import unicodedata
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union


def today() -> date:
    return date.today()


def now() -> datetime:
    return datetime.now()


def round_half_up(value: float, digits: int = 0) -> float:
    """
    Round like a calculator does (2.5 -> 3), not like round() (2.5 -> 2).
    """
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def title_sort_key(title: str) -> str:
    """
    Locale-aware-ish key for titles: strip accents and fold case so that
    "Élan" sorts next to "elan" rather than after "zoo".
    """
    decomposed = unicodedata.normalize('NFD', title or '')
    stripped = ''.join(c for c in decomposed if unicodedata.category(c) != 'Mn')
    return stripped.casefold().strip()


def year_from_release_date(release_date: Optional[Union[str, date]]) -> Optional[int]:
    """Extract the year from a TMDb release date (format: YYYY-MM-DD)."""
    if not release_date:
        return None
    if isinstance(release_date, date):
        return release_date.year
    try:
        return int(str(release_date)[:4])
    except (ValueError, IndexError):
        return None
