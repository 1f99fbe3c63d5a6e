"""
services/verifier.py – Resumable drift check of the master catalogue against
the live site.

The scan walks the catalogue from the cursor in progress.json, one record at a
time, saving the catalogue and the cursor after every record. Records already
checked today are skipped without a fetch. When the scan reaches the end the
cursor wraps to 0, so repeated runs sweep the whole catalogue over time.
"""

import datetime
import functools
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from bs4 import BeautifulSoup

from models.game_record import GameRecord, VerifierProgress, format_timestamp, is_today, same_second, utc_now
from services import catalog_store
from services.config import Settings
from services.detail_extractor import extract_date, extract_direct_links, extract_magnet
from services.fetcher import PageFetcher, RetryingFetch

logger = logging.getLogger(__name__)


@dataclass
class VerifySummary:
    total: int = 0
    started_from: int = 0
    matched: int = 0
    mismatched: int = 0
    invalid_json: int = 0
    no_website: int = 0
    fixed: int = 0
    data_changes: int = 0
    skipped: int = 0
    failed: int = 0
    processed: List[int] = field(default_factory=list)


class Verifier:
    """
    Parameters
    ----------
    settings : Runtime settings (paths, retry policy).
    fetcher  : A raw fetcher; its FetchError triggers the per-record retry.
    sleep    : Delay function between attempts.
    clock    : Source of "now".
    """

    def __init__(
        self,
        settings: Settings,
        fetcher: PageFetcher,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime.datetime] = utc_now,
    ) -> None:
        self._settings = settings
        self._fetcher = fetcher
        self._sleep = sleep
        self._clock = clock

    # ── Drift check ───────────────────────────────────────────────────────────

    def verify_batch(self, start_index: Optional[int] = None, limit: Optional[int] = None) -> VerifySummary:
        """
        Check records from the cursor (or *start_index*) to the end of the
        catalogue, or at most *limit* records.

        Raises
        ------
        ValueError   if *start_index* or *limit* is negative.
        StorageError if the catalogue exists but cannot be read.
        """
        if start_index is not None and start_index < 0:
            raise ValueError(f"start index must be >= 0, got {start_index}")
        if limit is not None and limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")

        games = catalog_store.load_catalog(self._settings.catalog_file, strict=True)
        if start_index is None:
            start_index = catalog_store.load_progress(self._settings.progress_file).last_checked_index
        if start_index >= len(games):
            logger.info("No games left to check (cursor %d of %d), resetting progress", start_index, len(games))
            start_index = 0
            self._save_cursor(0)

        end = len(games) if limit is None else min(len(games), start_index + limit)
        summary = VerifySummary(total=len(games), started_from=start_index)

        for index in range(start_index, end):
            game = games[index]
            summary.processed.append(index)

            if is_today(game.last_checked, self._clock()):
                summary.skipped += 1
                self._save_cursor(index + 1)
                continue
            if game.date is None:
                logger.warning("Invalid stored date on %s", game.name)
                summary.invalid_json += 1

            label = f"{game.name} ({game.link})"
            if not self._with_retries(label, functools.partial(self._check, games, index, summary)):
                summary.failed += 1
            self._save_cursor(index + 1)

        if end >= len(games):
            self._save_cursor(0)
            logger.info("All %d games processed, progress reset", len(games))

        logger.info(
            "From %d games: %d matched, %d were wrong, %d had invalid stored date, "
            "%d have no date on website, %d fixed, %d data changes, %d skipped, %d failed",
            summary.total,
            summary.matched,
            summary.mismatched,
            summary.invalid_json,
            summary.no_website,
            summary.fixed,
            summary.data_changes,
            summary.skipped,
            summary.failed,
        )
        return summary

    def _check(self, games: List[GameRecord], index: int, summary: VerifySummary) -> None:
        game = games[index]
        html = self._fetcher.fetch(game.link)
        if not html:
            logger.warning("No content retrieved for %s (id %d)", game.name, game.id)
            summary.no_website += 1
            return

        soup = BeautifulSoup(html, "html.parser")
        website_date = extract_date(soup)
        if website_date is None:
            logger.warning("No date found on website for %s", game.name)
            summary.no_website += 1
            return

        now = self._clock()
        if same_second(game.date, website_date):
            logger.debug("Date match for %s", game.name)
            game.last_checked = now
            catalog_store.save_catalog(self._settings.catalog_file, games)
            summary.matched += 1
            return

        summary.mismatched += 1
        magnet = extract_magnet(soup)
        direct = extract_direct_links(soup, game.link)
        changes = {"date": (format_timestamp(game.date), format_timestamp(website_date))}
        if game.magnet != magnet:
            changes["magnet"] = (game.magnet, magnet)
        if game.direct != direct:
            changes["direct"] = (game.direct, direct)
        if len(changes) > 1:
            summary.data_changes += 1

        for name, (old, new) in changes.items():
            logger.warning("%s changed for %s (id %d): %r -> %r", name, game.name, game.id, old, new)

        game.date = website_date
        game.magnet = magnet
        game.direct = direct
        game.verified = game.is_verified()
        game.last_checked = now
        catalog_store.save_catalog(self._settings.catalog_file, games)
        summary.fixed += 1

    # ── Direct-link backfill ──────────────────────────────────────────────────

    def backfill_direct_links(self) -> int:
        """
        Fetch direct links for verified games that have none. The catalogue is
        saved after every game that gains links. Returns how many did.
        """
        games = catalog_store.load_catalog(self._settings.catalog_file, strict=True)
        targets = [game for game in games if game.verified and not game.direct]
        logger.info("%d verified games without direct links", len(targets))

        retrying = RetryingFetch(self._fetcher, self._settings.max_retries, self._settings.retry_delay, self._sleep)
        updated = 0
        for game in targets:
            html = retrying.fetch(game.link)
            direct = extract_direct_links(BeautifulSoup(html, "html.parser"), game.link) if html else {}
            if not direct:
                logger.debug("No direct links found for %s", game.name)
                continue

            game.direct = direct
            game.last_checked = self._clock()
            catalog_store.save_catalog(self._settings.catalog_file, games)
            updated += 1
            logger.info("%s: direct links from %s", game.name, ", ".join(game.direct))

        if updated == 0:
            logger.info("No games needed direct link updates")
        return updated

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _with_retries(self, label: str, action: Callable[[], None]) -> bool:
        attempts = max(1, self._settings.max_retries)
        for attempt in range(1, attempts + 1):
            try:
                action()
                return True
            except Exception as exc:  # noqa: BLE001
                logger.warning("Error processing %s (attempt %d/%d): %s", label, attempt, attempts, exc)
                if attempt < attempts:
                    self._sleep(self._settings.retry_delay)
        logger.error("Giving up on %s after %d attempts", label, attempts)
        return False

    def _save_cursor(self, index: int) -> None:
        catalog_store.save_progress(self._settings.progress_file, VerifierProgress(last_checked_index=index))
