"""
services/search_service.py – Read-only queries over the master catalogue.
"""

import datetime
from typing import List

from models.game_record import GameRecord

MAX_RESULTS: int = 40

_EPOCH = datetime.datetime.min.replace(tzinfo=datetime.timezone.utc)


def search(records: List[GameRecord], query: str, limit: int = MAX_RESULTS) -> List[GameRecord]:
    """
    Case-insensitive match on name or tags, newest first.

    Parameters
    ----------
    records : Catalogue as returned by catalog_store.load_catalog().
    query   : User-supplied search string.
    limit   : Maximum number of results.

    Returns
    -------
    Matching records; the newest ones when query is empty/whitespace.
    """
    q = query.strip().lower()
    if not q:
        return newest(records, limit)
    found = [
        r for r in records
        if q in r.name.lower() or q in " ".join(r.tags).lower()
    ]
    return _by_date(found)[:limit]


def newest(records: List[GameRecord], limit: int = MAX_RESULTS) -> List[GameRecord]:
    return _by_date(records)[:limit]


def largest(records: List[GameRecord], limit: int = MAX_RESULTS) -> List[GameRecord]:
    return sorted(records, key=lambda r: r.size, reverse=True)[:limit]


def _by_date(records: List[GameRecord]) -> List[GameRecord]:
    return sorted(records, key=lambda r: r.date or _EPOCH, reverse=True)
