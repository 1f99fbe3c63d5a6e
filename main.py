"""
main.py – Repack catalogue command-line entry point.

Default action: pick up new games from the homepage feed, reconcile the
reference listing against the catalogue and scrape every pending game.
"""

import argparse
import logging
import sys
from typing import List, Optional

from services import catalog_store, reconciler, search_service
from services.config import Settings, load_settings
from services.crawler import Crawler
from services.exceptions import ConfigError, StorageError
from services.fetcher import create_fetcher, create_retrying_fetcher
from services.verifier import Verifier
from workers.detail_worker import WorkerPool

logger = logging.getLogger("repack_catalog")

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def _non_negative(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got '{value}'") from None
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repack-catalog",
        description="Maintain a local JSON catalogue of repacks scraped from the site.",
    )
    action = parser.add_mutually_exclusive_group()
    action.add_argument("--fetch-all", action="store_true", help="crawl the full A-Z index into complete.json")
    action.add_argument("--count-items", action="store_true", help="report catalogue, reference and pending sizes")
    action.add_argument("--check-timestamps", action="store_true", help="verify stored dates and links against the site")
    action.add_argument("--backfill-direct", action="store_true", help="add direct links to verified games lacking them")
    action.add_argument("--find", nargs="?", const="", metavar="TERM", help="search the catalogue (newest and largest without TERM)")
    parser.add_argument("--start-index", type=_non_negative, default=None, help="first page (--fetch-all) or record index (--check-timestamps)")
    parser.add_argument("--limit", type=_non_negative, default=None, help="check at most this many records (--check-timestamps)")
    parser.add_argument("--skip-newest", action="store_true", help="default run without the homepage crawl")
    return parser


# ── Actions ──────────────────────────────────────────────────────────────────


def run_pipeline(settings: Settings, skip_newest: bool = False) -> None:
    catalog = catalog_store.load_catalog(settings.catalog_file, strict=True)
    cache = catalog_store.load_cache(settings.cache_file)

    if not skip_newest:
        with create_retrying_fetcher(settings) as fetcher:
            Crawler(settings, fetcher, cache).crawl_newest()

    pending = reconciler.enqueue_missing(settings, catalog, cache)
    pool = WorkerPool(settings, lambda: create_fetcher(settings))
    pool.process(pending, catalog)


def fetch_all(settings: Settings, start_page: Optional[int]) -> None:
    with create_retrying_fetcher(settings) as fetcher:
        Crawler(settings, fetcher).crawl_full_index(start_page)


def check_timestamps(settings: Settings, start_index: Optional[int], limit: Optional[int]) -> None:
    with create_fetcher(settings) as fetcher:
        summary = Verifier(settings, fetcher).verify_batch(start_index, limit)
    if summary.mismatched or summary.invalid_json:
        logger.info("%d dates were corrected, %d stored dates were invalid", summary.mismatched, summary.invalid_json)


def backfill_direct(settings: Settings) -> None:
    with create_fetcher(settings) as fetcher:
        Verifier(settings, fetcher).backfill_direct_links()


def find(settings: Settings, term: str) -> None:
    records = catalog_store.load_catalog(settings.catalog_file)
    if term.strip():
        _log_results(f"Search '{term}'", search_service.search(records, term))
    else:
        _log_results("Newest", search_service.newest(records))
        _log_results("Largest", search_service.largest(records))


def _log_results(title: str, records: list) -> None:
    logger.info("%s: %d results", title, len(records))
    for record in records:
        logger.info(
            "  %-60s %6.1f GB  %s  %s",
            record.name,
            record.size,
            record.date.date().isoformat() if record.date else "----------",
            record.link,
        )


# ── Entry point ──────────────────────────────────────────────────────────────


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    try:
        settings = load_settings()
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return 2
    logging.getLogger().setLevel(settings.log_level)

    try:
        if args.count_items:
            reconciler.count_items(settings)
        elif args.fetch_all:
            fetch_all(settings, args.start_index)
        elif args.check_timestamps:
            check_timestamps(settings, args.start_index, args.limit)
        elif args.backfill_direct:
            backfill_direct(settings)
        elif args.find is not None:
            find(settings, args.find)
        else:
            run_pipeline(settings, args.skip_newest)
    except StorageError as exc:
        logger.error("Stopped, nothing further was written: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
