"""
services/catalog_store.py – JSON persistence for the catalogue documents.

Responsibilities
----------------
1. Load each document, tolerating absence (created or defaulted) and
   malformed JSON (logged, treated as empty, file left untouched). Rows
   whose fields have the wrong type are skipped with a warning. Writers load
   the catalogue strictly, so a damaged games.json stops the run instead of
   being overwritten.
2. Normalise catalogue records on every load (dates, sizes, verified flag).
3. Save every document as a full overwrite through a temporary sibling file
   and os.replace(), so the file on disk is always a complete snapshot.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, TypeVar

from models.game_record import (
    CrawlCache,
    CrawlState,
    GameRecord,
    PendingEntry,
    ReferenceEntry,
    VerifierProgress,
    is_today,
    utc_now,
)
from services.exceptions import StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ── Low-level JSON I/O ───────────────────────────────────────────────────────


def _read_json(path: Path) -> Optional[Any]:
    """Return the parsed document, or None when it is unreadable."""
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except (OSError, ValueError) as exc:
        logger.error("Failed to load %s: %s", path, exc)
        return None


def _write_json(path: Path, data: Any) -> None:
    """
    Overwrite *path* with *data*.

    Raises
    ------
    StorageError on any filesystem error.
    """
    tmp = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, ensure_ascii=False)
        os.replace(tmp, path)
    except OSError as exc:
        try:
            if tmp.exists():
                tmp.unlink()
        except OSError:
            pass
        raise StorageError(f"Save {path} failed: {exc}") from exc


def _rows(data: Any, path: Path) -> List[dict]:
    if not isinstance(data, list):
        logger.error("Expected a JSON array in %s, got %s", path, type(data).__name__)
        return []
    return [row for row in data if isinstance(row, dict)]


def _parse(rows: Iterable[dict], factory: Callable[[dict], T], path: Path) -> List[T]:
    """Build one object per row, skipping rows whose fields have the wrong type."""
    parsed: List[T] = []
    for row in rows:
        try:
            parsed.append(factory(row))
        except (TypeError, ValueError) as exc:
            logger.warning("Skipping malformed entry in %s: %s (%r)", path, exc, row)
    return parsed


def _parse_document(data: Any, factory: Callable[[dict], T], default: T, path: Path) -> T:
    if not isinstance(data, dict):
        return default
    try:
        return factory(data)
    except (TypeError, ValueError) as exc:
        logger.warning("Malformed %s, using defaults: %s", path, exc)
        return default


# ── Master catalogue ─────────────────────────────────────────────────────────


def normalize(record: GameRecord) -> GameRecord:
    """Apply the load-time rules to *record* in place and return it."""
    record.verified = record.verified and record.size > 0
    record.size = round(record.size, 1)
    if record.last_checked is None:
        record.last_checked = utc_now()
    return record


def load_catalog(path: Path, strict: bool = False) -> List[GameRecord]:
    """
    Load the master catalogue.

    An absent file is created empty. Entries without a link are dropped.

    Parameters
    ----------
    path   : Location of games.json.
    strict : Raise StorageError instead of returning [] when the file exists
             but cannot be read as a JSON array. Callers that write the
             catalogue back must load strictly so a damaged file is never
             replaced by a partial one.
    """
    if not path.exists():
        logger.warning("%s does not exist, creating empty file", path)
        _write_json(path, [])
        return []

    data = _read_json(path)
    if strict and not isinstance(data, list):
        raise StorageError(f"{path} is not a readable catalogue, fix or remove it before running")
    if data is None:
        return []

    rows = [row for row in _rows(data, path) if row.get("link")]
    records = [normalize(record) for record in _parse(rows, GameRecord.from_dict, path)]
    log_summary("Loaded", path, records)
    return records


def save_catalog(path: Path, records: Iterable[GameRecord]) -> None:
    records = list(records)
    _write_json(path, [record.to_dict() for record in records])
    log_summary("Saved", path, records)


def log_summary(action: str, path: Path, records: List[GameRecord]) -> None:
    with_direct = sum(1 for r in records if r.direct)
    logger.info(
        "%s %s: %d games, %d verified, %d with direct links, %d missing direct links, %d not checked today",
        action,
        path,
        len(records),
        sum(1 for r in records if r.verified),
        with_direct,
        sum(1 for r in records if r.verified and not r.direct),
        sum(1 for r in records if not is_today(r.last_checked)),
    )


# ── Pending queue ────────────────────────────────────────────────────────────


def load_pending(path: Path) -> List[PendingEntry]:
    if not path.exists():
        return []
    data = _read_json(path)
    if data is None:
        return []
    rows = [row for row in _rows(data, path) if row.get("id") and row.get("link")]
    entries = _parse(rows, PendingEntry.from_dict, path)
    logger.info("Loaded %s: %d pending games", path, len(entries))
    return entries


def save_pending(path: Path, entries: Iterable[PendingEntry]) -> None:
    entries = list(entries)
    _write_json(path, [entry.to_dict() for entry in entries])
    logger.debug("Saved %s: %d pending games", path, len(entries))


def delete_pending(path: Path) -> None:
    try:
        if path.exists():
            path.unlink()
            logger.info("Pending queue drained, removed %s", path)
    except OSError as exc:
        raise StorageError(f"Could not remove {path}: {exc}") from exc


# ── Reference listing ────────────────────────────────────────────────────────


def load_reference(path: Path) -> List[ReferenceEntry]:
    if not path.exists():
        logger.warning("%s does not exist. Hint: run with --fetch-all to build it.", path)
        return []
    data = _read_json(path)
    if data is None:
        return []
    rows = [row for row in _rows(data, path) if row.get("link")]
    entries = _parse(rows, ReferenceEntry.from_dict, path)
    logger.info("Loaded %s: %d games", path, len(entries))
    return entries


def save_reference(path: Path, entries: Iterable[ReferenceEntry]) -> None:
    _write_json(path, [entry.to_dict() for entry in entries])


# ── Small state documents ────────────────────────────────────────────────────


def load_cache(path: Path) -> CrawlCache:
    if not path.exists():
        cache = CrawlCache(last_checked=utc_now())
        logger.warning("%s does not exist, creating it with defaults", path)
        save_cache(path, cache)
        return cache
    cache = _parse_document(_read_json(path), CrawlCache.from_dict, CrawlCache(last_checked=utc_now()), path)
    logger.info(
        "Loaded cache: %d pages, last id %d, last checked %s",
        cache.pages,
        cache.last_id,
        cache.last_checked,
    )
    return cache


def save_cache(path: Path, cache: CrawlCache) -> None:
    _write_json(path, cache.to_dict())


def load_progress(path: Path) -> VerifierProgress:
    if not path.exists():
        logger.warning("%s does not exist, starting from 0", path)
        return VerifierProgress()
    progress = _parse_document(_read_json(path), VerifierProgress.from_dict, VerifierProgress(), path)
    logger.info("Loaded progress: last checked index %d", progress.last_checked_index)
    return progress


def save_progress(path: Path, progress: VerifierProgress) -> None:
    _write_json(path, progress.to_dict())


def load_state(path: Path) -> Optional[CrawlState]:
    if not path.exists():
        return None
    return _parse_document(_read_json(path), CrawlState.from_dict, None, path)


def save_state(path: Path, state: CrawlState) -> None:
    _write_json(path, state.to_dict())
