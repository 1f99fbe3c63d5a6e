"""
workers/detail_worker.py – Bounded worker pool that drains the pending queue.

Message contract
----------------
  input  : PendingEntry (a private copy per task)
  output : WorkerResult(record, verified, error)

Each task opens its own fetcher (browser or HTTP session) from the factory and
closes it before returning, so a crash in one task cannot leak into another.
Tasks never touch the catalogue; the coordinating thread commits results one
at a time through CatalogWriter, whose lock is the file-save critical section.
"""

import copy
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from models.game_record import GameRecord, PendingEntry
from services import catalog_store
from services.config import Settings
from services.detail_extractor import extract
from services.fetcher import PageFetcher, RetryingFetch

logger = logging.getLogger(__name__)

FetcherFactory = Callable[[], PageFetcher]


@dataclass
class WorkerResult:
    entry: PendingEntry
    record: Optional[GameRecord] = None
    verified: bool = False
    error: Optional[str] = None


class CatalogWriter:
    """
    Owns the in-memory catalogue and pending queue for one batch and is the
    only code path that writes either document while the pool runs.
    """

    def __init__(self, settings: Settings, catalog: List[GameRecord], pending: List[PendingEntry]) -> None:
        self._settings = settings
        self._lock = threading.Lock()
        self.catalog = list(catalog)
        self.pending = list(pending)

    def commit(self, record: GameRecord, entry: PendingEntry) -> None:
        """
        Upsert *record* into the catalogue, save it, then drop *entry* from the
        queue and save that. The catalogue is written first so a failure in
        between never loses a resolved game.
        """
        with self._lock:
            key = record.key
            for index, existing in enumerate(self.catalog):
                if existing.key == key:
                    self.catalog[index] = record
                    break
            else:
                self.catalog.append(record)
            catalog_store.save_catalog(self._settings.catalog_file, self.catalog)

            self.pending = [item for item in self.pending if item.id != entry.id]
            catalog_store.save_pending(self._settings.pending_file, self.pending)

    def finish(self) -> None:
        with self._lock:
            if self.pending:
                catalog_store.save_pending(self._settings.pending_file, self.pending)
                logger.info("%d games left in pending queue for a later run", len(self.pending))
            else:
                catalog_store.delete_pending(self._settings.pending_file)


class WorkerPool:
    """
    Runs detail extraction for every pending entry on *settings.workers*
    threads and commits the results.
    """

    def __init__(
        self,
        settings: Settings,
        fetcher_factory: FetcherFactory,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings
        self._fetcher_factory = fetcher_factory
        self._sleep = sleep

    @property
    def size(self) -> int:
        return max(1, self._settings.workers)

    def process(self, pending: List[PendingEntry], catalog: List[GameRecord]) -> List[GameRecord]:
        """
        Drain *pending* into *catalog* and return the updated catalogue.

        Raises
        ------
        StorageError if a document cannot be written; games committed before
        the failure stay in the catalogue, the rest stay queued.
        """
        if not pending:
            catalog_store.delete_pending(self._settings.pending_file)
            return catalog

        writer = CatalogWriter(self._settings, catalog, pending)
        saved = skipped = failed = 0
        logger.info("Processing %d pending games with %d workers", len(pending), self.size)

        executor = ThreadPoolExecutor(max_workers=self.size, thread_name_prefix="detail")
        try:
            futures: Dict[Future, PendingEntry] = {
                executor.submit(self._run_task, copy.deepcopy(entry)): entry for entry in pending
            }
            for future in as_completed(futures):
                entry = futures[future]
                result: WorkerResult = future.result()

                if result.error is not None:
                    failed += 1
                    logger.error("Worker failed for %s (id %d): %s", entry.name, entry.id, result.error)
                    continue

                record = result.record
                if record is None or not record.has_real_data():
                    skipped += 1
                    logger.warning("Skipping save, incomplete game data: %s (%s)", entry.name, entry.link)
                    continue

                writer.commit(record, entry)
                saved += 1
                logger.info("%s saved (size %s, verified %s)", record.name, record.size, record.verified)
        except BaseException:
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        executor.shutdown(wait=True)

        writer.finish()
        logger.info(
            "Update summary: %d saved, %d skipped, %d failed, %d in catalogue",
            saved,
            skipped,
            failed,
            len(writer.catalog),
        )
        return writer.catalog

    # ── Task body (runs on a pool thread) ─────────────────────────────────────

    def _run_task(self, entry: PendingEntry) -> WorkerResult:
        try:
            with self._fetcher_factory() as fetcher:
                retrying = RetryingFetch(
                    fetcher,
                    self._settings.max_retries,
                    self._settings.retry_delay,
                    self._sleep,
                )
                record, verified = extract(entry.to_record(), retrying)
            return WorkerResult(entry=entry, record=record, verified=verified)
        except Exception as exc:  # noqa: BLE001
            # Catch-all so one crashing task never takes the batch down.
            return WorkerResult(entry=entry, error=f"{type(exc).__name__}: {exc}")
