"""
services/reconciler.py – Decide which reference-listing entries still need a
detail scrape.

The reconciler never writes catalogue data. It compares normalised links and
appends the unseen ones to the pending queue, each with a fresh id from a
single monotonic counter.
"""

import datetime
import logging
from typing import Iterable, List, Optional

from models.game_record import CrawlCache, GameRecord, PendingEntry, ReferenceEntry, utc_now
from services import catalog_store
from services.config import Settings

logger = logging.getLogger(__name__)


def next_id_seed(
    catalog: Iterable[GameRecord],
    pending: Iterable[PendingEntry],
    cache: CrawlCache,
) -> int:
    """Highest id seen anywhere; new ids start right after it."""
    ids = [record.id for record in catalog] + [entry.id for entry in pending]
    return max(ids + [cache.last_id, 0])


def reconcile(
    catalog: List[GameRecord],
    reference: List[ReferenceEntry],
    pending: List[PendingEntry],
    cache: CrawlCache,
    now: Optional[datetime.datetime] = None,
) -> List[PendingEntry]:
    """
    Return pending entries for reference rows not yet in the catalogue or queue.

    Reference rows are visited in listing order. ``cache.last_id`` is advanced
    to the last id assigned; *catalog* and *pending* are not modified.
    """
    now = now or utc_now()
    known = {record.key for record in catalog}
    known.update(entry.key for entry in pending)
    current_id = next_id_seed(catalog, pending, cache)

    added: List[PendingEntry] = []
    for ref in reference:
        key = ref.key
        if not key or key in known:
            continue
        known.add(key)
        current_id += 1
        added.append(PendingEntry(id=current_id, name=ref.name, link=ref.link, last_checked=now))
        logger.info("New game %s found in reference listing", ref.name)

    if added:
        cache.last_id = current_id
    return added


def enqueue_missing(
    settings: Settings,
    catalog: List[GameRecord],
    cache: CrawlCache,
) -> List[PendingEntry]:
    """
    Reconcile the reference listing on disk against *catalog*.

    Newly found entries are appended to the existing queue, which is saved once
    together with the cache. Returns the full pending queue.
    """
    reference = catalog_store.load_reference(settings.reference_file)
    pending = catalog_store.load_pending(settings.pending_file)

    added = reconcile(catalog, reference, pending, cache)
    if added:
        pending = pending + added
        catalog_store.save_pending(settings.pending_file, pending)
        catalog_store.save_cache(settings.cache_file, cache)

    logger.info(
        "Reconcile summary: %d in catalogue, %d in reference, %d new, %d pending",
        len(catalog),
        len(reference),
        len(added),
        len(pending),
    )
    return pending


def count_items(settings: Settings) -> dict:
    """Read-only sizes of the three lists and how many reference games are missing."""
    catalog = []
    if settings.catalog_file.exists():
        catalog = catalog_store.load_catalog(settings.catalog_file)
    reference = catalog_store.load_reference(settings.reference_file)
    pending = catalog_store.load_pending(settings.pending_file)

    known = {record.key for record in catalog}
    missing = len({ref.key for ref in reference if ref.key not in known})

    logger.info("%d on %s", len(catalog), settings.catalog_file.name)
    logger.info("%d on %s", len(reference), settings.reference_file.name)
    logger.info("%d on %s", len(pending), settings.pending_file.name)
    logger.info("%d missing games", missing)
    return {
        "games": len(catalog),
        "complete": len(reference),
        "pending": len(pending),
        "missing": missing,
    }
